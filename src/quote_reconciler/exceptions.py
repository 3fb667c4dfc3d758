#!/usr/bin/env python3
"""
Error types raised by the quote reconciler.
"""

from typing import Iterable, Optional


class QuoteReconcilerError(Exception):
    """Base class for all quote reconciler errors."""
    pass


class ConfigurationError(QuoteReconcilerError):
    """Raised when settings or a vocabulary table are invalid."""
    pass


class CatalogUnavailable(QuoteReconcilerError):
    """The catalog source could not be read; no snapshot was built."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.message = message
        self.source = source
        super().__init__(self.message)


class ParseAmbiguous(QuoteReconcilerError):
    """A line could not be split into a name and quantity with confidence."""

    def __init__(self, line: str, line_number: int):
        self.line = line
        self.line_number = line_number
        self.message = f"Line {line_number} could not be parsed confidently: {line!r}"
        super().__init__(self.message)


class InvalidQuantityOrPrice(QuoteReconcilerError):
    """A quotation line failed validation before any totals were computed."""

    def __init__(self, message: str, line_index: Optional[int] = None, field: Optional[str] = None):
        self.line_index = line_index
        self.field = field
        if line_index is not None:
            self.message = f"Line {line_index}: {message}"
        else:
            self.message = message
        super().__init__(self.message)


class DuplicateQuotationNumber(QuoteReconcilerError):
    """Another quotation is already stored under this number."""

    def __init__(self, number: str):
        self.number = number
        self.message = f"Quotation number {number} already exists"
        super().__init__(self.message)


class ProductNotFound(QuoteReconcilerError):
    """One or more referenced products are missing or inactive."""

    def __init__(self, product_ids: Iterable[str]):
        self.product_ids = list(product_ids)
        self.message = f"Products not found or inactive: {', '.join(self.product_ids)}"
        super().__init__(self.message)


class QuotationNotEditable(QuoteReconcilerError):
    """Items may only change while the quotation is a draft."""

    def __init__(self, number: str, status: str):
        self.number = number
        self.status = status
        self.message = f"Quotation {number} is {status}; only draft quotations can be edited"
        super().__init__(self.message)


class InvalidStatusTransition(QuoteReconcilerError):

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        self.message = f"Cannot move quotation from {current} to {target}"
        super().__init__(self.message)
