#!/usr/bin/env python3
"""
Quotation creation from reviewer-confirmed items.
"""

import logging
import uuid
from collections import Counter
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Sequence

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from .catalog import CatalogSnapshot
from .config import ReconcilerSettings
from .exceptions import DuplicateQuotationNumber, InvalidQuantityOrPrice, ProductNotFound
from .financial_calculator import LineInput, QuotationCalculator
from .models import ConfirmedItem, CustomerInfo, OcrMetadata, Quotation, QuotationLineItem, QuotationStatus
from .numbering import QuotationNumberGenerator
from .storage import InMemoryQuotationRepository

logger = logging.getLogger(__name__)


class QuotationService:
    """
    Validates confirmed items against the catalog snapshot, numbers the
    quotation and persists it.
    """

    def __init__(self, repository=None, number_generator: Optional[QuotationNumberGenerator] = None,
                 settings: Optional[ReconcilerSettings] = None):
        self.settings = settings or ReconcilerSettings()
        self.repository = repository or InMemoryQuotationRepository()
        self.number_generator = number_generator or QuotationNumberGenerator(
            prefix=self.settings.number_prefix)
        self.calculator = QuotationCalculator(self.settings.currency_code)

    def build_line_items(self, items: Sequence[ConfirmedItem],
                         snapshot: CatalogSnapshot) -> List[QuotationLineItem]:
        """
        Resolve products and apply catalog defaults.

        A single unknown product rejects the whole list; dropping the line
        would silently change the totals.
        """
        if not items:
            raise InvalidQuantityOrPrice("at least one item required")

        missing = [str(item.product_id) for item in items
                   if item.product_id is not None and snapshot.get(item.product_id) is None]
        if missing:
            raise ProductNotFound(missing)

        inputs = []
        for index, item in enumerate(items):
            if item.product_id is not None:
                product = snapshot.get(item.product_id)
                inputs.append((
                    product.name,
                    product,
                    item.units or product.units,
                    LineInput(
                        unit_price=product.unit_price if item.unit_price is None else item.unit_price,
                        quantity=item.quantity,
                        discount_percent=(product.discount_percent if item.discount_percent is None
                                          else item.discount_percent),
                        tax_percent=product.tax_percent if item.tax_percent is None else item.tax_percent,
                    ),
                ))
            else:
                if not item.description or item.unit_price is None:
                    raise InvalidQuantityOrPrice("manual items need a description and unit_price",
                                                 index, 'unit_price')
                inputs.append((
                    item.description,
                    None,
                    item.units,
                    LineInput(
                        unit_price=item.unit_price,
                        quantity=item.quantity,
                        discount_percent=item.discount_percent or 0,
                        tax_percent=item.tax_percent or 0,
                    ),
                ))

        # validates every line with its index before anything is built
        totals = self.calculator.calculate([line for _, _, _, line in inputs])

        return [
            QuotationLineItem(
                description=description,
                quantity=breakdown.quantity,
                unit_price=breakdown.unit_price,
                discount_percent=breakdown.discount_percent,
                tax_percent=breakdown.tax_percent,
                product=product,
                units=units,
            )
            for (description, product, units, _), breakdown in zip(inputs, totals.lines)
        ]

    def create_quotation(self, items: Sequence[ConfirmedItem], snapshot: CatalogSnapshot,
                         customer: Optional[CustomerInfo] = None, notes: Optional[str] = None,
                         valid_until: Optional[date] = None,
                         ocr_data: Optional[OcrMetadata] = None) -> Quotation:
        line_items = self.build_line_items(items, snapshot)
        quotation_id = uuid.uuid4().hex

        saved = self._save_with_new_number(lambda number: Quotation(
            number=number,
            items=line_items,
            customer=customer,
            notes=notes,
            valid_until=valid_until,
            ocr_data=ocr_data,
            quotation_id=quotation_id,
            currency_code=self.settings.currency_code,
        ))
        logger.info(f"Created quotation {saved.number} with {len(saved.items)} items, "
                    f"grand total {self.calculator.format_currency(saved.grand_total)}")
        return saved

    def duplicate_quotation(self, quotation: Quotation) -> Quotation:
        """
        Copy a quotation's items and customer into a new draft with its own
        number. The source quotation is not touched, whatever its status.
        """
        items = list(quotation.items)
        quotation_id = uuid.uuid4().hex

        saved = self._save_with_new_number(lambda number: Quotation(
            number=number,
            items=items,
            status=QuotationStatus.DRAFT,
            customer=quotation.customer,
            quotation_id=quotation_id,
            currency_code=quotation.calculator.currency_code,
        ))
        logger.info(f"Duplicated quotation {quotation.number} as {saved.number}")
        return saved

    def _save_with_new_number(self, make: Callable[[str], Quotation]) -> Quotation:
        # a number taken by another writer is retried with the next one
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.number_retry_attempts),
            retry=retry_if_exception_type(DuplicateQuotationNumber),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                saved = self.repository.save(make(self.number_generator.next_number()))
        return saved


def quotation_stats(repository) -> Dict[str, Any]:
    """
    Count and value of every stored quotation, with a per-status count.

    Values are grand totals rounded to 2 places; an empty repository gives
    zeros and an empty breakdown.
    """
    records = repository.records()
    totals = [Decimal(record['grandTotal']) for record in records]
    total_value = sum(totals, Decimal('0'))
    average_value = total_value / len(totals) if totals else Decimal('0')
    cent = Decimal('0.01')
    return {
        'totalQuotations': len(records),
        'totalValue': total_value.quantize(cent, rounding=ROUND_HALF_UP),
        'averageValue': average_value.quantize(cent, rounding=ROUND_HALF_UP),
        'statusBreakdown': dict(Counter(record['status'] for record in records)),
    }
