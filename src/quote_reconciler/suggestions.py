#!/usr/bin/env python3
"""
Review suggestions for matches a human should look at, and run statistics.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .models import MatchResult, MatchTier, Suggestion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewSuggestion:
    """One group of options shown to the reviewer for a line."""
    type: str
    message: str
    options: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'message': self.message, 'options': self.options}


class SuggestionBuilder:
    """
    Groups a match's alternatives into fuzzy, category and keyword suggestions.
    """

    def __init__(self, max_fuzzy_options: int = 3):
        self.max_fuzzy_options = max_fuzzy_options

    def build(self, result: MatchResult) -> List[ReviewSuggestion]:
        suggestions = []

        same_name = [s for s in result.alternatives if s.tier is MatchTier.EXACT]
        if same_name:
            suggestions.append(ReviewSuggestion(
                type='same_name_products',
                message=f"{len(same_name)} other products share this name",
                options=[{'product': s.product.to_dict(), 'reason': s.reason} for s in same_name],
            ))

        fuzzy = [s for s in result.alternatives if s.tier is MatchTier.FUZZY]
        if fuzzy:
            suggestions.append(ReviewSuggestion(
                type='fuzzy_matches',
                message=f"Found {len(fuzzy)} similar products",
                options=[
                    {
                        'product': s.product.to_dict(),
                        'confidence': round(s.score, 4),
                        'reason': f"{s.score * 100:.1f}% match",
                    }
                    for s in fuzzy[:self.max_fuzzy_options]
                ],
            ))

        categories = self._grouped(s for s in result.alternatives if s.tier is MatchTier.CATEGORY)
        if categories:
            suggestions.append(ReviewSuggestion(
                type='category_matches',
                message="Found products in related categories",
                options=[
                    {
                        'category': category,
                        'productCount': len(members),
                        'products': [m.product.to_dict() for m in members],
                        'reason': f"Matched keywords: {', '.join(members[0].matched_terms)}",
                    }
                    for category, members in categories.items()
                ],
            ))

        keywords = self._grouped(s for s in result.alternatives if s.tier is MatchTier.KEYWORD)
        if keywords:
            suggestions.append(ReviewSuggestion(
                type='keyword_matches',
                message="Found products with matching specifications",
                options=[
                    {
                        'type': attribute_type,
                        'keywords': sorted({t for m in members for t in m.matched_terms}),
                        'productCount': len(members),
                        'products': [m.product.to_dict() for m in members],
                    }
                    for attribute_type, members in keywords.items()
                ],
            ))

        if not suggestions and result.requires_review:
            suggestions.append(ReviewSuggestion(
                type='manual_entry',
                message="No matching product found; enter the item manually",
            ))
        return suggestions

    def _grouped(self, suggestions) -> "OrderedDict[str, List[Suggestion]]":
        groups: "OrderedDict[str, List[Suggestion]]" = OrderedDict()
        for suggestion in suggestions:
            groups.setdefault(suggestion.group or 'other', []).append(suggestion)
        return groups


def calculate_stats(results: Sequence[MatchResult], high_confidence: float = 0.8) -> Dict[str, Any]:
    """Summary numbers for a reconciliation run."""
    total = len(results)
    exact = sum(1 for r in results if r.tier is MatchTier.EXACT)
    confident = sum(1 for r in results if r.best is not None and r.confidence >= high_confidence)
    with_prices = sum(1 for r in results if r.best is not None and r.best.unit_price > 0)
    review = sum(1 for r in results if r.requires_review)
    average = sum(r.confidence for r in results) / total if total else 0.0

    stats = {
        'totalItems': total,
        'exactMatches': exact,
        'highConfidenceMatches': confident,
        'itemsWithPrices': with_prices,
        'itemsRequiringReview': review,
        'averageConfidence': round(average, 3),
        'processingAccuracy': round(confident / total * 100, 1) if total else 0.0,
    }
    logger.debug(f"Reconciliation stats: {stats}")
    return stats
