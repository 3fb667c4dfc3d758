"""
Quote Reconciler

Turns OCR'd order lists into catalog-matched, priced quotations.
"""

__version__ = "1.0.0"

from .catalog import (
    CatalogCache,
    CatalogLoader,
    CatalogSnapshot,
    CsvCatalogSource,
    InMemoryCatalogSource,
    JsonCatalogSource,
)
from .config import MatchingVocabulary, ReconcilerSettings
from .exceptions import (
    CatalogUnavailable,
    DuplicateQuotationNumber,
    InvalidQuantityOrPrice,
    ParseAmbiguous,
    ProductNotFound,
    QuoteReconcilerError,
)
from .financial_calculator import QuotationCalculator
from .line_parser import LineParser
from .matcher import CatalogMatcher
from .models import (
    CatalogProduct,
    ConfirmedItem,
    MatchResult,
    MatchTier,
    ParsedItem,
    Quotation,
    QuotationLineItem,
    QuotationStatus,
)
from .numbering import QuotationNumberGenerator
from .pipeline import ReconciliationPipeline, confirmed_items_from_report
from .quotation_service import QuotationService, quotation_stats

__all__ = [
    "CatalogCache",
    "CatalogLoader",
    "CatalogSnapshot",
    "CsvCatalogSource",
    "InMemoryCatalogSource",
    "JsonCatalogSource",
    "MatchingVocabulary",
    "ReconcilerSettings",
    "CatalogUnavailable",
    "DuplicateQuotationNumber",
    "InvalidQuantityOrPrice",
    "ParseAmbiguous",
    "ProductNotFound",
    "QuoteReconcilerError",
    "QuotationCalculator",
    "LineParser",
    "CatalogMatcher",
    "CatalogProduct",
    "ConfirmedItem",
    "MatchResult",
    "MatchTier",
    "ParsedItem",
    "Quotation",
    "QuotationLineItem",
    "QuotationStatus",
    "QuotationNumberGenerator",
    "ReconciliationPipeline",
    "confirmed_items_from_report",
    "QuotationService",
    "quotation_stats",
]
