#!/usr/bin/env python3
"""
Financial Calculator for Quotations
Per-line discount and tax arithmetic plus quotation totals, using Decimal.

Values are carried at full precision. Rounding happens only in
format_currency(), which is for display; comparisons downstream should use
the unrounded amounts.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence, Tuple, Union

from .exceptions import InvalidQuantityOrPrice

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')
ZERO = Decimal('0')


@dataclass(frozen=True)
class LineInput:
    """One quotation line as handed to the calculator."""
    unit_price: Any
    quantity: Any
    discount_percent: Any = 0
    tax_percent: Any = 0


@dataclass(frozen=True)
class LineBreakdown:
    """Computed amounts for one line."""
    unit_price: Decimal
    quantity: Decimal
    discount_percent: Decimal
    tax_percent: Decimal
    gross: Decimal
    discount_amount: Decimal
    net_price: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class QuotationTotals:
    lines: Tuple[LineBreakdown, ...]
    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    grand_total: Decimal


def to_decimal(value: Any, field: str, line_index: Optional[int] = None) -> Decimal:
    """Convert an int/float/str/Decimal to Decimal, rejecting non-finite values."""
    if isinstance(value, bool) or value is None:
        raise InvalidQuantityOrPrice(f"{field} must be a number, got {value!r}", line_index, field)
    try:
        # str() keeps floats like 0.1 from dragging binary noise into the result
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidQuantityOrPrice(f"{field} must be a number, got {value!r}", line_index, field) from e
    if not result.is_finite():
        raise InvalidQuantityOrPrice(f"{field} must be finite, got {value!r}", line_index, field)
    return result


def price_line(unit_price: Any, quantity: Any, discount_percent: Any = 0, tax_percent: Any = 0,
               line_index: Optional[int] = None) -> LineBreakdown:
    """
    Validate and price a single line.

    net = unit_price * quantity * (1 - discount/100)
    tax = net * tax/100
    total = net + tax
    """
    price = to_decimal(unit_price, 'unit_price', line_index)
    qty = to_decimal(quantity, 'quantity', line_index)
    discount = to_decimal(discount_percent, 'discount_percent', line_index)
    tax_rate = to_decimal(tax_percent, 'tax_percent', line_index)

    if qty <= ZERO:
        raise InvalidQuantityOrPrice("quantity must be greater than zero", line_index, 'quantity')
    if price <= ZERO:
        raise InvalidQuantityOrPrice("unit_price must be greater than zero", line_index, 'unit_price')
    if not ZERO <= discount <= HUNDRED:
        raise InvalidQuantityOrPrice("discount_percent must be between 0 and 100", line_index,
                                     'discount_percent')
    if tax_rate < ZERO:
        raise InvalidQuantityOrPrice("tax_percent cannot be negative", line_index, 'tax_percent')

    gross = price * qty
    net = gross * (1 - discount / HUNDRED)
    tax_amount = net * tax_rate / HUNDRED
    return LineBreakdown(
        unit_price=price,
        quantity=qty,
        discount_percent=discount,
        tax_percent=tax_rate,
        gross=gross,
        discount_amount=gross - net,
        net_price=net,
        tax_amount=tax_amount,
        line_total=net + tax_amount,
    )


LineLike = Union[LineInput, Sequence[Any]]


class QuotationCalculator:
    """
    Aggregates priced lines into quotation totals and formats them for display.
    """

    def __init__(self, currency_code: str = 'INR'):
        self.currency_code = currency_code
        self.currency_symbol = self._get_currency_symbol(currency_code)

    def _get_currency_symbol(self, currency_code: str) -> str:
        """Get currency symbol from currency code."""
        symbols = {
            'INR': '₹',
            'USD': '$',
            'EUR': '€',
            'GBP': '£',
            'JPY': '¥',
            'CAD': 'C$',
            'AUD': 'A$',
            'CHF': 'CHF',
            'SEK': 'kr',
            'NOK': 'kr',
            'DKK': 'kr',
        }
        return symbols.get(currency_code, currency_code)

    def calculate(self, lines: Sequence[LineLike]) -> QuotationTotals:
        """
        Price every line and aggregate the totals.

        Lines are LineInput objects or (unit_price, quantity, discount%, tax%)
        tuples. All lines are validated before any sum is taken.
        """
        if not lines:
            raise InvalidQuantityOrPrice("at least one item required")

        breakdowns = [self._price(index, line) for index, line in enumerate(lines)]

        subtotal = sum((b.gross for b in breakdowns), ZERO)
        total_discount = sum((b.discount_amount for b in breakdowns), ZERO)
        total_tax = sum((b.tax_amount for b in breakdowns), ZERO)
        grand_total = subtotal - total_discount + total_tax

        logger.debug(f"Calculated totals for {len(breakdowns)} lines: subtotal={subtotal}, "
                     f"discount={total_discount}, tax={total_tax}, grand={grand_total}")

        return QuotationTotals(
            lines=tuple(breakdowns),
            subtotal=subtotal,
            total_discount=total_discount,
            total_tax=total_tax,
            grand_total=grand_total,
        )

    def _price(self, index: int, line: LineLike) -> LineBreakdown:
        if isinstance(line, LineInput):
            return price_line(line.unit_price, line.quantity, line.discount_percent,
                              line.tax_percent, line_index=index)
        values = list(line)
        if not 2 <= len(values) <= 4:
            raise InvalidQuantityOrPrice(
                "expected (unit_price, quantity[, discount_percent[, tax_percent]])", index)
        return price_line(*values, line_index=index)

    def calculation_steps(self, totals: QuotationTotals) -> List[str]:
        """Human-readable breakdown of how the grand total was reached."""
        steps = [f"Subtotal: {self.format_currency(totals.subtotal)}"]

        if totals.total_discount > 0:
            steps.append(f"- Discounts: {self.format_currency(totals.total_discount)}")

        if totals.total_tax > 0:
            steps.append(f"+ Tax: {self.format_currency(totals.total_tax)}")

        steps.append(f"= Grand Total: {self.format_currency(totals.grand_total)}")
        return steps

    def format_currency(self, amount: Decimal) -> str:
        """Format decimal amount as currency string."""
        if amount == 0:
            return f"{self.currency_symbol}0.00"

        # Round to 2 decimal places
        rounded_amount = amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

        # Format with commas for thousands
        formatted = f"{rounded_amount:,.2f}"

        if self.currency_code in ['EUR']:
            return f"{formatted} {self.currency_symbol}"
        else:
            return f"{self.currency_symbol}{formatted}"


def calculate_totals(lines: Sequence[LineLike], currency_code: str = 'INR') -> QuotationTotals:
    """
    Convenience function to calculate totals for a list of lines.
    """
    calculator = QuotationCalculator(currency_code)
    return calculator.calculate(lines)
