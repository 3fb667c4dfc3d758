"""
Data models for the quote reconciler.
"""

import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import (
    InvalidQuantityOrPrice,
    InvalidStatusTransition,
    QuotationNotEditable,
)
from .financial_calculator import (
    LineBreakdown,
    LineInput,
    QuotationCalculator,
    QuotationTotals,
    price_line,
    to_decimal,
)


class MatchTier(str, Enum):
    """Which matcher strategy produced a result."""
    EXACT = 'exact'
    FUZZY = 'fuzzy'
    CATEGORY = 'category'
    KEYWORD = 'keyword'
    NONE = 'none'


class QuotationStatus(str, Enum):
    DRAFT = 'draft'
    SENT = 'sent'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class CatalogProduct:
    """A product as it appears in one catalog snapshot."""
    id: str
    name: str
    unit_price: Decimal
    catalog_code: Optional[str] = None
    sku: Optional[str] = None
    description: str = ''
    categories: Tuple[str, ...] = ()
    attributes: Tuple[Tuple[str, str], ...] = ()
    discount_percent: Decimal = Decimal('0')
    tax_percent: Decimal = Decimal('0')
    active: bool = True
    # selling unit such as Piece, Roll or Box
    units: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'id', str(self.id))
        object.__setattr__(self, 'unit_price', to_decimal(self.unit_price, 'unit_price'))
        object.__setattr__(self, 'discount_percent', to_decimal(self.discount_percent, 'discount_percent'))
        object.__setattr__(self, 'tax_percent', to_decimal(self.tax_percent, 'tax_percent'))
        object.__setattr__(self, 'categories', tuple(self.categories))
        object.__setattr__(self, 'attributes', tuple(tuple(a) for a in self.attributes))

    @property
    def attribute_tokens(self) -> Tuple[str, ...]:
        return tuple(token for _, token in self.attributes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'catalogCode': self.catalog_code,
            'sku': self.sku,
            'description': self.description,
            'categories': list(self.categories),
            'unitPrice': str(self.unit_price),
            'discountPercent': str(self.discount_percent),
            'taxPercent': str(self.tax_percent),
            'units': self.units,
        }


@dataclass(frozen=True)
class RawLine:
    """One line of OCR output with its 1-based line number."""
    text: str
    line_number: int


@dataclass(frozen=True)
class ParsedItem:
    """A candidate line item produced by the line parser."""
    raw: RawLine
    display_text: str
    text: str
    quantity: int = 1
    low_confidence_extraction: bool = False
    pattern: str = 'fallback'
    hint: Optional[str] = None
    # unit written next to the quantity (nos, pcs, units...), if any
    units: Optional[str] = None

    @property
    def line_number(self) -> int:
        return self.raw.line_number


@dataclass(frozen=True)
class Suggestion:
    """An alternative product offered for a parsed item."""
    product: CatalogProduct
    score: float
    tier: MatchTier
    reason: str = ''
    matched_terms: Tuple[str, ...] = ()
    group: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product': self.product.to_dict(),
            'score': round(self.score, 4),
            'tier': self.tier.value,
            'reason': self.reason,
            'matchedTerms': list(self.matched_terms),
            'group': self.group,
        }


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one parsed item against the catalog."""
    item: ParsedItem
    best: Optional[CatalogProduct]
    confidence: float
    tier: MatchTier
    alternatives: Tuple[Suggestion, ...] = ()
    review_threshold: float = field(default=0.8, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'confidence', min(1.0, max(0.0, float(self.confidence))))
        object.__setattr__(self, 'alternatives', tuple(self.alternatives))

    @property
    def requires_review(self) -> bool:
        return self.best is None or self.confidence < self.review_threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            'originalText': self.item.raw.text,
            'cleanedText': self.item.text,
            'quantity': self.item.quantity,
            'units': self.item.units,
            'lineNumber': self.item.line_number,
            'lowConfidenceExtraction': self.item.low_confidence_extraction,
            'tier': self.tier.value,
            'confidence': round(self.confidence, 4),
            'bestMatch': self.best.to_dict() if self.best else None,
            'alternatives': [s.to_dict() for s in self.alternatives],
            'requiresReview': self.requires_review,
        }


@dataclass(frozen=True)
class ConfirmedItem:
    """
    A line confirmed by a reviewer.

    product_id refers to a catalog product; manual lines leave it empty and
    supply description and unit_price instead.
    """
    quantity: Any
    product_id: Optional[str] = None
    discount_percent: Any = None
    tax_percent: Any = None
    description: Optional[str] = None
    unit_price: Any = None
    units: Optional[str] = None


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class OcrMetadata:
    """OCR output carried through to the quotation, never computed here."""
    original_text: str
    confidence: Optional[float] = None
    processed_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QuotationLineItem:
    """
    A priced quotation line. The derived amounts are computed from the
    stored inputs every time they are read.
    """
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal('0')
    tax_percent: Decimal = Decimal('0')
    product: Optional[CatalogProduct] = None
    units: Optional[str] = None

    def __post_init__(self):
        pricing = price_line(self.unit_price, self.quantity, self.discount_percent, self.tax_percent)
        object.__setattr__(self, 'quantity', pricing.quantity)
        object.__setattr__(self, 'unit_price', pricing.unit_price)
        object.__setattr__(self, 'discount_percent', pricing.discount_percent)
        object.__setattr__(self, 'tax_percent', pricing.tax_percent)

    @classmethod
    def from_product(cls, product: CatalogProduct, quantity: Any, discount_percent: Any = None,
                     tax_percent: Any = None, units: Optional[str] = None) -> "QuotationLineItem":
        """Build a line with the product's catalog defaults unless overridden."""
        return cls(
            description=product.name,
            quantity=quantity,
            unit_price=product.unit_price,
            discount_percent=product.discount_percent if discount_percent is None else discount_percent,
            tax_percent=product.tax_percent if tax_percent is None else tax_percent,
            product=product,
            units=units or product.units,
        )

    @property
    def product_id(self) -> Optional[str]:
        return self.product.id if self.product else None

    @property
    def pricing(self) -> LineBreakdown:
        return price_line(self.unit_price, self.quantity, self.discount_percent, self.tax_percent)

    @property
    def net_price(self) -> Decimal:
        return self.pricing.net_price

    @property
    def tax_amount(self) -> Decimal:
        return self.pricing.tax_amount

    @property
    def line_total(self) -> Decimal:
        return self.pricing.line_total

    def as_line_input(self) -> LineInput:
        return LineInput(self.unit_price, self.quantity, self.discount_percent, self.tax_percent)

    def to_dict(self) -> Dict[str, Any]:
        pricing = self.pricing
        return {
            'productId': self.product_id,
            'description': self.description,
            'quantity': str(self.quantity),
            'units': self.units,
            'unitPrice': str(self.unit_price),
            'discountPercent': str(self.discount_percent),
            'taxPercent': str(self.tax_percent),
            'netPrice': str(pricing.net_price),
            'taxAmount': str(pricing.tax_amount),
            'lineTotal': str(pricing.line_total),
        }


FORWARD_TRANSITIONS = {
    QuotationStatus.DRAFT: {QuotationStatus.SENT},
    QuotationStatus.SENT: {QuotationStatus.APPROVED, QuotationStatus.REJECTED},
    QuotationStatus.APPROVED: {QuotationStatus.COMPLETED},
    QuotationStatus.REJECTED: set(),
    QuotationStatus.COMPLETED: set(),
}

REVERSIONS = {
    QuotationStatus.SENT: {QuotationStatus.DRAFT},
    QuotationStatus.APPROVED: {QuotationStatus.SENT},
    QuotationStatus.REJECTED: {QuotationStatus.DRAFT, QuotationStatus.SENT},
}


class Quotation:
    """
    A numbered quotation. Totals are always derived from the current items.
    """

    def __init__(self, number: str, items: List[QuotationLineItem],
                 status: QuotationStatus = QuotationStatus.DRAFT,
                 customer: Optional[CustomerInfo] = None, notes: Optional[str] = None,
                 valid_until: Optional[date] = None, ocr_data: Optional[OcrMetadata] = None,
                 created_at: Optional[datetime] = None, quotation_id: Optional[str] = None,
                 currency_code: str = 'INR'):
        if not items:
            raise InvalidQuantityOrPrice("at least one item required")
        self.number = number
        self._items = list(items)
        self.status = QuotationStatus(status)
        self.customer = customer
        self.notes = notes
        self.valid_until = valid_until
        self.ocr_data = ocr_data
        self.created_at = created_at or datetime.now()
        self.id = quotation_id or uuid.uuid4().hex
        self._calculator = QuotationCalculator(currency_code)

    def __repr__(self):
        return f"Quotation(number={self.number!r}, status={self.status.value}, items={len(self._items)})"

    @property
    def items(self) -> Tuple[QuotationLineItem, ...]:
        return tuple(self._items)

    @property
    def calculator(self) -> QuotationCalculator:
        return self._calculator

    @property
    def totals(self) -> QuotationTotals:
        return self._calculator.calculate([item.as_line_input() for item in self._items])

    @property
    def subtotal(self) -> Decimal:
        return self.totals.subtotal

    @property
    def total_discount(self) -> Decimal:
        return self.totals.total_discount

    @property
    def total_tax(self) -> Decimal:
        return self.totals.total_tax

    @property
    def grand_total(self) -> Decimal:
        return self.totals.grand_total

    def _require_draft(self):
        if self.status is not QuotationStatus.DRAFT:
            raise QuotationNotEditable(self.number, self.status.value)

    def _check_index(self, index: int):
        if not 0 <= index < len(self._items):
            raise IndexError(f"Quotation {self.number} has no item {index}")

    def add_item(self, item: QuotationLineItem) -> QuotationLineItem:
        self._require_draft()
        self._items.append(item)
        return item

    def update_item(self, index: int, **changes) -> QuotationLineItem:
        """Replace fields of one item; the new item is validated before it is stored."""
        self._require_draft()
        self._check_index(index)
        try:
            updated = replace(self._items[index], **changes)
        except InvalidQuantityOrPrice as e:
            raise InvalidQuantityOrPrice(str(e), index, e.field) from e
        self._items[index] = updated
        return updated

    def remove_item(self, index: int) -> QuotationLineItem:
        self._require_draft()
        self._check_index(index)
        if len(self._items) == 1:
            raise InvalidQuantityOrPrice("at least one item required")
        return self._items.pop(index)

    def transition_to(self, status: QuotationStatus):
        target = QuotationStatus(status)
        if target not in FORWARD_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status.value, target.value)
        self.status = target

    def revert_to(self, status: QuotationStatus):
        """Explicit, caller-requested step backwards in the status flow."""
        target = QuotationStatus(status)
        if target not in REVERSIONS.get(self.status, set()):
            raise InvalidStatusTransition(self.status.value, target.value)
        self.status = target

    def to_dict(self) -> Dict[str, Any]:
        totals = self.totals
        return {
            'id': self.id,
            'quotationNumber': self.number,
            'status': self.status.value,
            'customer': asdict(self.customer) if self.customer else None,
            'notes': self.notes,
            'validUntil': self.valid_until.isoformat() if self.valid_until else None,
            'createdAt': self.created_at.isoformat(),
            'items': [item.to_dict() for item in self._items],
            'subtotal': str(totals.subtotal),
            'totalDiscount': str(totals.total_discount),
            'totalTax': str(totals.total_tax),
            'grandTotal': str(totals.grand_total),
            'formattedGrandTotal': self._calculator.format_currency(totals.grand_total),
            'ocrData': {
                'originalText': self.ocr_data.original_text,
                'confidence': self.ocr_data.confidence,
            } if self.ocr_data else None,
        }
