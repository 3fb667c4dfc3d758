#!/usr/bin/env python3
"""
Tests for the tiered catalog matcher
"""

import unittest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from quote_reconciler.config import ReconcilerSettings
from quote_reconciler.line_parser import LineParser
from quote_reconciler.matcher import (
    CatalogMatcher,
    CategoryMatchStrategy,
    ExactMatchStrategy,
    FuzzyMatchStrategy,
    KeywordMatchStrategy,
)
from quote_reconciler.catalog import CatalogSnapshot
from quote_reconciler.models import CatalogProduct, MatchTier, RawLine
from quote_reconciler.suggestions import SuggestionBuilder

from catalog_fixtures import sample_products, sample_snapshot


class TestCatalogMatcher(unittest.TestCase):
    """Test cases for CatalogMatcher."""

    def setUp(self):
        self.snapshot = sample_snapshot()
        self.matcher = CatalogMatcher()
        self.parser = LineParser()

    def match_line(self, line, **kwargs):
        item = self.parser.parse_line(RawLine(text=line, line_number=1))
        return self.matcher.match(item, self.snapshot, **kwargs)

    def test_exact_match_from_parsed_line(self):
        result = self.match_line("10 sq mm wire - 5")
        self.assertEqual(result.tier, MatchTier.EXACT)
        self.assertEqual(result.best.id, 'p1')
        self.assertEqual(result.confidence, 1.0)
        self.assertEqual(result.item.quantity, 5)
        self.assertFalse(result.requires_review)
        self.assertEqual(result.alternatives, ())

    def test_exact_match_on_catalog_code(self):
        result = self.match_line("SW101 - one way switch")
        self.assertEqual(result.tier, MatchTier.EXACT)
        self.assertEqual(result.best.id, 'p3')

    def test_fuzzy_match_is_accepted_but_needs_review(self):
        result = self.match_line("6 sqmm wire 12")
        self.assertEqual(result.tier, MatchTier.FUZZY)
        self.assertEqual(result.best.id, 'p2')
        self.assertGreaterEqual(result.confidence, 0.6)
        self.assertLess(result.confidence, 1.0)
        self.assertEqual(result.requires_review, result.confidence < 0.8)
        self.assertNotIn('p2', [s.product.id for s in result.alternatives])

    def test_unmatched_text(self):
        result = self.match_line("RANDOMGIBBERISHXYZ")
        self.assertEqual(result.tier, MatchTier.NONE)
        self.assertIsNone(result.best)
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.alternatives, ())
        self.assertTrue(result.requires_review)

    def test_unknown_code_falls_back_to_description(self):
        result = self.match_line("ZZ999 - fan regulator")
        self.assertEqual(result.best.id, 'p5')
        self.assertEqual(result.tier, MatchTier.EXACT)

    def test_result_invariants(self):
        lines = ["10 sq mm wire - 5", "6 sqmm wire 12", "switch for bedroom", "16a", "randomgibberishxyz"]
        for line in lines:
            with self.subTest(line=line):
                result = self.match_line(line)
                self.assertTrue(0.0 <= result.confidence <= 1.0)
                if result.best is None:
                    self.assertTrue(result.requires_review)
                if result.tier is not MatchTier.EXACT:
                    self.assertLess(result.confidence, 1.0)
                ids = [s.product.id for s in result.alternatives]
                self.assertEqual(len(ids), len(set(ids)))

    def test_always_show_alternatives(self):
        plain = self.match_line("6 sqmm wire 12")
        full = self.match_line("6 sqmm wire 12", always_show_alternatives=True)
        self.assertEqual(full.best.id, plain.best.id)
        self.assertEqual(full.tier, plain.tier)
        self.assertGreaterEqual(len(full.alternatives), len(plain.alternatives))

    def test_match_text_skips_parser(self):
        result = self.matcher.match_text("Fan Regulator", self.snapshot)
        self.assertEqual(result.best.id, 'p5')

    def test_matching_is_deterministic(self):
        first = self.match_line("6 sqmm wire 12").to_dict()
        second = self.match_line("6 sqmm wire 12").to_dict()
        self.assertEqual(first, second)

    def test_stricter_threshold_turns_match_into_suggestion(self):
        matcher = CatalogMatcher(ReconcilerSettings(fuzzy_accept_threshold=0.99))
        item = self.parser.parse_line(RawLine(text="6 sqmm wire 12", line_number=1))
        result = matcher.match(item, self.snapshot)
        self.assertIsNone(result.best)
        self.assertEqual(result.tier, MatchTier.FUZZY)
        self.assertEqual(result.alternatives[0].product.id, 'p2')
        self.assertTrue(result.requires_review)

    def test_strategy_order(self):
        matcher = CatalogMatcher(strategies=[ExactMatchStrategy(), KeywordMatchStrategy()])
        result = matcher.match_text("need 16a point", self.snapshot)
        self.assertIsNone(result.best)
        self.assertEqual(result.tier, MatchTier.KEYWORD)
        self.assertEqual(result.confidence, 0.4)
        self.assertEqual(result.alternatives[0].product.id, 'p4')

    def test_to_dict_contract(self):
        data = self.match_line("10 sq mm wire - 5").to_dict()
        self.assertEqual(data['originalText'], "10 sq mm wire - 5")
        self.assertEqual(data['cleanedText'], "10 sq mm wire")
        self.assertEqual(data['quantity'], 5)
        self.assertEqual(data['tier'], 'exact')
        self.assertEqual(data['bestMatch']['id'], 'p1')
        self.assertFalse(data['requiresReview'])


class TestStrategies(unittest.TestCase):

    def setUp(self):
        self.snapshot = sample_snapshot()

    def test_exact_match_offers_products_with_the_same_name(self):
        products = sample_products() + [
            CatalogProduct(id='p9', name='Fan Regulator', unit_price='390', catalog_code='FR300'),
        ]
        with self.assertLogs('quote_reconciler.catalog', level='WARNING'):
            snapshot = CatalogSnapshot.build(products)
        item = LineParser().parse_line(RawLine(text="Fan regulator - 2", line_number=1))
        result = CatalogMatcher().match(item, snapshot)
        self.assertEqual(result.tier, MatchTier.EXACT)
        self.assertEqual(result.best.id, 'p5')
        self.assertEqual([s.product.id for s in result.alternatives], ['p9'])
        self.assertEqual(result.alternatives[0].tier, MatchTier.EXACT)

        suggestions = SuggestionBuilder().build(result)
        self.assertEqual([s.type for s in suggestions], ['same_name_products'])
        self.assertEqual(suggestions[0].options[0]['product']['id'], 'p9')

    def test_exact_strategy_miss(self):
        self.assertIsNone(ExactMatchStrategy().attempt("10 sq mm", self.snapshot))

    def test_fuzzy_scores_stay_below_exact(self):
        attempt = FuzzyMatchStrategy().attempt("6 sq mm wires", self.snapshot)
        self.assertIsNotNone(attempt)
        for candidate in attempt.candidates:
            self.assertLessEqual(candidate.score, 0.99)
            self.assertTrue(candidate.reason.endswith('% match'))

    def test_category_strategy(self):
        attempt = CategoryMatchStrategy().attempt("switch for bedroom", self.snapshot)
        self.assertIsNone(attempt.best)
        self.assertEqual(attempt.confidence, 0.3)
        self.assertEqual([c.product.id for c in attempt.candidates], ['p3'])
        self.assertEqual(attempt.candidates[0].group, 'switch')
        self.assertEqual(attempt.candidates[0].matched_terms, ('switch',))

    def test_category_keywords_match_whole_words(self):
        self.assertIsNone(CategoryMatchStrategy().attempt("switchgear panel", self.snapshot))

    def test_keyword_strategy(self):
        attempt = KeywordMatchStrategy().attempt("need 16a point", self.snapshot)
        self.assertEqual(attempt.tier, MatchTier.KEYWORD)
        self.assertEqual([c.product.id for c in attempt.candidates], ['p4'])
        self.assertEqual(attempt.candidates[0].group, 'amperage')
        self.assertEqual(attempt.candidates[0].matched_terms, ('16a',))

    def test_keyword_strategy_prefers_more_shared_attributes(self):
        attempt = KeywordMatchStrategy().attempt("1 module 6a", self.snapshot)
        ids = [c.product.id for c in attempt.candidates]
        self.assertEqual(ids[0], 'p3')
        self.assertIn('p7', ids)


if __name__ == '__main__':
    unittest.main()
