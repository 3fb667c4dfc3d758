#!/usr/bin/env python3
"""
Catalog matcher.

Each strategy tries to map cleaned item text to catalog products and is
consulted in a fixed order: exact, fuzzy, category keywords, technical
keywords. The first strategy that accepts a single best product decides the
match; the others only contribute suggestions.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .catalog import CatalogSnapshot
from .config import ReconcilerSettings
from .models import CatalogProduct, MatchResult, MatchTier, ParsedItem, RawLine, Suggestion
from .normalization import clean_text, contains_keyword

logger = logging.getLogger(__name__)

# fuzzy scores stay below the exact tier's 1.0
FUZZY_CEILING = 0.99


@dataclass(frozen=True)
class MatchAttempt:
    """What one strategy found for one piece of text."""
    tier: MatchTier
    confidence: float
    best: Optional[CatalogProduct] = None
    candidates: Tuple[Suggestion, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.best is not None


class MatchStrategy:
    """Base class for matcher tiers."""
    tier = MatchTier.NONE

    def attempt(self, text: str, snapshot: CatalogSnapshot) -> Optional[MatchAttempt]:
        raise NotImplementedError


class ExactMatchStrategy(MatchStrategy):
    """Case-insensitive equality with a product name or catalog code."""
    tier = MatchTier.EXACT

    def attempt(self, text: str, snapshot: CatalogSnapshot) -> Optional[MatchAttempt]:
        product = snapshot.lookup_exact(text)
        if product is None:
            return None
        # other products with the same name are offered so a reviewer can switch
        candidates = tuple(
            Suggestion(product=other, score=1.0, tier=self.tier, reason="Same product name")
            for other in snapshot.same_name_as(product)
        )
        return MatchAttempt(tier=self.tier, confidence=1.0, best=product, candidates=candidates)


class FuzzyMatchStrategy(MatchStrategy):
    """
    Weighted similarity search over name, code, description and categories.
    The top candidate is accepted when it reaches accept_threshold.
    """
    tier = MatchTier.FUZZY

    def __init__(self, accept_threshold: float = 0.6, suggestion_floor: float = 0.3,
                 field_floor: float = 0.5, limit: int = 5):
        self.accept_threshold = accept_threshold
        self.suggestion_floor = suggestion_floor
        self.field_floor = field_floor
        self.limit = limit

    def attempt(self, text: str, snapshot: CatalogSnapshot) -> Optional[MatchAttempt]:
        ranked = snapshot.similarity_index.search(
            text, field_floor=self.field_floor, limit=self.limit, min_score=self.suggestion_floor)
        if not ranked:
            return None

        candidates = tuple(
            Suggestion(
                product=product,
                score=min(score, FUZZY_CEILING),
                tier=self.tier,
                reason=f"{min(score, FUZZY_CEILING) * 100:.1f}% match",
            )
            for product, score in ranked
        )
        top = candidates[0]
        best = top.product if top.score >= self.accept_threshold else None
        return MatchAttempt(tier=self.tier, confidence=top.score, best=best, candidates=candidates)


class CategoryMatchStrategy(MatchStrategy):
    """Suggest products from categories whose trigger words appear in the text."""
    tier = MatchTier.CATEGORY

    def __init__(self, confidence: float = 0.3, limit: int = 10):
        self.confidence = confidence
        self.limit = limit

    def attempt(self, text: str, snapshot: CatalogSnapshot) -> Optional[MatchAttempt]:
        text = clean_text(text)
        candidates: List[Suggestion] = []
        seen = set()

        for category, keywords in snapshot.vocabulary.category_keywords.items():
            matched = tuple(k for k in keywords if contains_keyword(text, k))
            if not matched:
                continue
            products = snapshot.products_in_category(category)[:self.limit]
            for product in products:
                if product.id in seen:
                    continue
                seen.add(product.id)
                candidates.append(Suggestion(
                    product=product,
                    score=self.confidence,
                    tier=self.tier,
                    reason=f"Matched keywords: {', '.join(matched)}",
                    matched_terms=matched,
                    group=category,
                ))

        if not candidates:
            return None
        return MatchAttempt(tier=self.tier, confidence=self.confidence, candidates=tuple(candidates))


class KeywordMatchStrategy(MatchStrategy):
    """Suggest products sharing technical attributes (amperage, modules, voltage...)."""
    tier = MatchTier.KEYWORD

    def __init__(self, confidence: float = 0.4, limit: int = 10):
        self.confidence = confidence
        self.limit = limit

    def attempt(self, text: str, snapshot: CatalogSnapshot) -> Optional[MatchAttempt]:
        text = clean_text(text)
        found: Dict[str, Tuple[str, ...]] = {}
        for attribute_type, keywords in snapshot.vocabulary.technical_keywords.items():
            tokens = tuple(clean_text(k) for k in keywords if contains_keyword(text, k))
            if tokens:
                found[attribute_type] = tokens
        if not found:
            return None

        wanted = {token for tokens in found.values() for token in tokens}
        scored = []
        for product in snapshot.products:
            shared = tuple(t for t in product.attribute_tokens if t in wanted)
            if shared:
                scored.append((len(shared), product, shared))
        if not scored:
            return None

        # products sharing more attributes first; sort is stable for ties
        scored.sort(key=lambda entry: -entry[0])
        candidates = []
        for _, product, shared in scored[:self.limit]:
            group = next(a for a, tokens in found.items() if shared[0] in tokens)
            candidates.append(Suggestion(
                product=product,
                score=self.confidence,
                tier=self.tier,
                reason=f"Matching specifications: {', '.join(shared)}",
                matched_terms=shared,
                group=group,
            ))
        return MatchAttempt(tier=self.tier, confidence=self.confidence, candidates=tuple(candidates))


def default_strategies(settings: ReconcilerSettings) -> List[MatchStrategy]:
    return [
        ExactMatchStrategy(),
        FuzzyMatchStrategy(
            accept_threshold=settings.fuzzy_accept_threshold,
            suggestion_floor=settings.suggestion_floor,
            field_floor=settings.field_floor,
            limit=settings.max_alternatives,
        ),
        CategoryMatchStrategy(confidence=settings.category_confidence,
                              limit=settings.max_alternatives),
        KeywordMatchStrategy(confidence=settings.keyword_confidence,
                             limit=settings.max_alternatives),
    ]


class CatalogMatcher:
    """
    Runs the strategies in order for a parsed item and builds its MatchResult.

    Holds no state between calls; safe to share between threads as long as
    each call is given a snapshot.
    """

    def __init__(self, settings: Optional[ReconcilerSettings] = None,
                 strategies: Optional[Sequence[MatchStrategy]] = None):
        self.settings = settings or ReconcilerSettings()
        self.strategies = list(strategies) if strategies is not None else default_strategies(self.settings)

    def match(self, item: ParsedItem, snapshot: CatalogSnapshot,
              always_show_alternatives: Optional[bool] = None) -> MatchResult:
        show_all = (self.settings.always_show_alternatives
                    if always_show_alternatives is None else always_show_alternatives)

        result = self._evaluate(item.text, snapshot, show_all)
        # a code-led line whose code is unknown may still match on its description
        if result[1] is None and item.hint:
            from_hint = self._evaluate(item.hint, snapshot, show_all)
            if from_hint[1] is not None or from_hint[2] > result[2]:
                result = from_hint

        tier, best, confidence, alternatives = result
        match = MatchResult(
            item=item,
            best=best,
            confidence=confidence,
            tier=tier,
            alternatives=alternatives,
            review_threshold=self.settings.review_threshold,
        )
        logger.debug(f"Line {item.line_number} {item.text!r}: tier={tier.value} "
                     f"confidence={match.confidence:.3f} best={best.name if best else None}")
        return match

    def match_text(self, text: str, snapshot: CatalogSnapshot,
                   always_show_alternatives: Optional[bool] = None) -> MatchResult:
        """Match free text without going through the line parser."""
        item = ParsedItem(raw=RawLine(text=text, line_number=1), display_text=text,
                          text=clean_text(text), pattern='direct')
        return self.match(item, snapshot, always_show_alternatives)

    def _evaluate(self, text: str, snapshot: CatalogSnapshot, show_all: bool
                  ) -> Tuple[MatchTier, Optional[CatalogProduct], float, Tuple[Suggestion, ...]]:
        if not text:
            return MatchTier.NONE, None, 0.0, ()

        accepted: Optional[MatchAttempt] = None
        attempts: List[MatchAttempt] = []
        for strategy in self.strategies:
            attempt = strategy.attempt(text, snapshot)
            if attempt is None:
                continue
            attempts.append(attempt)
            if accepted is None and attempt.accepted:
                accepted = attempt
                if not show_all:
                    break

        if accepted is not None:
            alternatives = self._merge_candidates(attempts, exclude=accepted.best)
            return accepted.tier, accepted.best, accepted.confidence, alternatives

        if not attempts:
            return MatchTier.NONE, None, 0.0, ()

        # the earliest tier that found anything sets the tier and confidence
        lead = attempts[0]
        return lead.tier, None, lead.confidence, self._merge_candidates(attempts)

    def _merge_candidates(self, attempts: Sequence[MatchAttempt],
                          exclude: Optional[CatalogProduct] = None) -> Tuple[Suggestion, ...]:
        seen = {exclude.id} if exclude is not None else set()
        merged = []
        for attempt in attempts:
            for candidate in attempt.candidates:
                if candidate.product.id in seen:
                    continue
                seen.add(candidate.product.id)
                merged.append(candidate)
        return tuple(merged)
