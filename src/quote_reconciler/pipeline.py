#!/usr/bin/env python3
"""
Reconciliation pipeline: OCR text -> parsed items -> catalog matches -> report.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .catalog import CatalogSnapshot
from .config import ReconcilerSettings
from .line_parser import LineParser
from .matcher import CatalogMatcher
from .models import CatalogProduct, ConfirmedItem, MatchResult, MatchTier, OcrMetadata, ParsedItem, Suggestion
from .suggestions import ReviewSuggestion, SuggestionBuilder, calculate_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineReconciliation:
    """Match outcome and reviewer suggestions for one input line."""
    match: MatchResult
    suggestions: Tuple[ReviewSuggestion, ...] = ()

    @property
    def item(self) -> ParsedItem:
        return self.match.item

    @property
    def original_text(self) -> str:
        return self.match.item.raw.text

    @property
    def cleaned_text(self) -> str:
        return self.match.item.text

    @property
    def quantity(self) -> int:
        return self.match.item.quantity

    @property
    def low_confidence_extraction(self) -> bool:
        return self.match.item.low_confidence_extraction

    @property
    def tier(self) -> MatchTier:
        return self.match.tier

    @property
    def confidence(self) -> float:
        return self.match.confidence

    @property
    def best(self) -> Optional[CatalogProduct]:
        return self.match.best

    @property
    def alternatives(self) -> Tuple[Suggestion, ...]:
        return self.match.alternatives

    @property
    def requires_review(self) -> bool:
        return self.match.requires_review

    @property
    def price(self) -> Decimal:
        return self.best.unit_price if self.best else Decimal('0')

    def to_dict(self) -> Dict[str, Any]:
        data = self.match.to_dict()
        data['price'] = str(self.price)
        data['suggestions'] = [s.to_dict() for s in self.suggestions]
        return data


@dataclass(frozen=True)
class ReconciliationReport:
    lines: Tuple[LineReconciliation, ...]
    stats: Dict[str, Any]
    ocr: OcrMetadata
    snapshot_version: int
    processed_at: datetime = field(default_factory=datetime.now)
    # catalog rows left out of the snapshot because they were invalid
    catalog_skipped_rows: int = 0

    @property
    def matched(self) -> List[LineReconciliation]:
        return [line for line in self.lines if line.best is not None]

    @property
    def needs_review(self) -> List[LineReconciliation]:
        return [line for line in self.lines if line.requires_review]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'originalText': self.ocr.original_text,
            'ocrConfidence': self.ocr.confidence,
            'metadata': dict(self.ocr.extra),
            'parsedItems': len(self.lines),
            'processedItems': [line.to_dict() for line in self.lines],
            'stats': self.stats,
            'catalogVersion': self.snapshot_version,
            'catalogSkippedRows': self.catalog_skipped_rows,
            'processedAt': self.processed_at.isoformat(),
        }


class ReconciliationPipeline:
    """
    Runs the parser and matcher over one OCR text against a fixed snapshot.
    """

    def __init__(self, snapshot: CatalogSnapshot, settings: Optional[ReconcilerSettings] = None,
                 parser: Optional[LineParser] = None, matcher: Optional[CatalogMatcher] = None,
                 suggestion_builder: Optional[SuggestionBuilder] = None):
        self.snapshot = snapshot
        self.settings = settings or ReconcilerSettings()
        self.parser = parser or LineParser()
        self.matcher = matcher or CatalogMatcher(self.settings)
        self.suggestion_builder = suggestion_builder or SuggestionBuilder()

    def reconcile(self, text: str, ocr_confidence: Optional[float] = None,
                  metadata: Optional[Dict[str, Any]] = None,
                  always_show_alternatives: Optional[bool] = None) -> ReconciliationReport:
        """Parse and match every line of text; output order follows input order."""
        snapshot = self.snapshot
        items = self.parser.parse(text)

        def reconcile_item(item: ParsedItem) -> LineReconciliation:
            match = self.matcher.match(item, snapshot, always_show_alternatives)
            return LineReconciliation(match=match, suggestions=tuple(self.suggestion_builder.build(match)))

        if self.settings.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
                lines = tuple(executor.map(reconcile_item, items))
        else:
            lines = tuple(reconcile_item(item) for item in items)

        stats = calculate_stats([line.match for line in lines], self.settings.review_threshold)
        logger.info(f"Reconciled {stats['totalItems']} items against catalog v{snapshot.version}: "
                    f"{stats['exactMatches']} exact, {stats['itemsRequiringReview']} need review")

        return ReconciliationReport(
            lines=lines,
            stats=stats,
            ocr=OcrMetadata(original_text=text, confidence=ocr_confidence,
                            processed_at=datetime.now(), extra=dict(metadata or {})),
            snapshot_version=snapshot.version,
            catalog_skipped_rows=len(snapshot.skipped_rows),
        )


def confirmed_items_from_report(report: ReconciliationReport,
                                min_confidence: Optional[float] = None) -> List[ConfirmedItem]:
    """
    Accept the best match of every line that has one, optionally only above
    min_confidence. Lines without an accepted product are left out.
    """
    confirmed = []
    for line in report.lines:
        if line.best is None:
            continue
        if min_confidence is not None and line.confidence < min_confidence:
            continue
        confirmed.append(ConfirmedItem(quantity=line.quantity, product_id=line.best.id,
                                       units=line.item.units))
    return confirmed
