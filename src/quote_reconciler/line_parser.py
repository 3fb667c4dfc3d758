#!/usr/bin/env python3
"""
Line parser for OCR'd order lists.
Splits raw text into candidate line items with a product fragment and a quantity.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from .exceptions import ParseAmbiguous
from .models import ParsedItem, RawLine
from .normalization import clean_text

logger = logging.getLogger(__name__)

DEFAULT_NOISE_WORDS = (
    'total', 'subtotal', 'sub total', 'grand total', 'amount', 'price', 'rate',
    'qty', 'quantity', 's.no', 'sr.no', 's no', 'sr no', 'sl no',
    'from', 'to', 'page', 'of', 'date', 'item', 'items', 'description',
)

_UNIT = r'(?:\s*(?P<unit>nos?|pcs?|pieces?|units?)\.?)?'
_CODE = r'(?=[\w./-]*\d)(?=[\w./-]*[A-Za-z])[A-Za-z0-9][\w./-]*'

# spelled-out unit -> the form reported on items
UNIT_ALIASES = {
    'no': 'nos', 'nos': 'nos',
    'pc': 'pcs', 'pcs': 'pcs', 'piece': 'pcs', 'pieces': 'pcs',
    'unit': 'units', 'units': 'units',
}


class LineParser:
    """
    Turns OCR text into ParsedItems, one per meaningful line.

    Structural patterns are tried in order and the first that matches wins.
    Lines that match none are still emitted, flagged as low-confidence
    extractions, unless `strict` is set, in which case ParseAmbiguous is raised.
    """

    def __init__(self, noise_words: Optional[Iterable[str]] = None, strict: bool = False):
        self.noise_words = {clean_text(w) for w in (noise_words or DEFAULT_NOISE_WORDS)}
        self.strict = strict

        # (name, regex) in priority order
        self.patterns = [
            # "10 sq mm wire - 5", "fan regulator x 2", "bulb: 4 nos"
            ('name_dash_qty', re.compile(
                r'^(?P<name>.*?\S)(?:\s+[-–:x×]\s*|\s*[-–:]\s+)(?P<qty>\d+)' + _UNIT + r'$',
                re.IGNORECASE)),
            # "5 x 6a switch", "3 - modular plate"
            ('qty_x_name', re.compile(
                r'^(?P<qty>\d+)' + _UNIT + r'\s*[x×*–-]\s+(?P<name>.+)$', re.IGNORECASE)),
            # "6 sqmm wire 12", "led bulb 4 pcs"
            ('name_qty', re.compile(
                r'^(?P<name>.*?\S)\s+(?P<qty>\d+)' + _UNIT + r'$', re.IGNORECASE)),
            # "SW101 - one way switch"
            ('code_description', re.compile(
                r'^(?P<code>' + _CODE + r')\s+[-–:]\s+(?P<name>.+)$', re.IGNORECASE)),
            # "SW-101"
            ('code_only', re.compile(r'^(?P<code>' + _CODE + r')$', re.IGNORECASE)),
        ]

    def split_lines(self, text: str) -> List[RawLine]:
        """Split text into RawLines, keeping 1-based numbering of the original."""
        if not text:
            return []
        return [RawLine(text=line, line_number=number)
                for number, line in enumerate(text.splitlines(), start=1)]

    def is_noise(self, line: str) -> bool:
        """Check if a line is a header, separator, bare number or too short to mean anything."""
        stripped = line.strip()
        if not stripped:
            return True

        # Just numbers (serial numbers, page numbers, amounts)
        if re.fullmatch(r'[\d\s.,/#()-]+', stripped):
            return True

        # Just separators
        if re.fullmatch(r'[-=_*~.|\s]+', stripped):
            return True

        cleaned = clean_text(stripped)
        if len(cleaned.replace(' ', '')) <= 2:
            return True

        if cleaned in self.noise_words:
            return True

        # header rows such as "Item  Qty  Price" or "Page 1 of 2"
        tokens = cleaned.split()
        if all(t in self.noise_words or t.isdigit() for t in tokens):
            return True

        return False

    def parse(self, text: str) -> List[ParsedItem]:
        """Parse a block of OCR text into an ordered list of items."""
        items = []
        for raw in self.split_lines(text):
            if self.is_noise(raw.text):
                logger.debug(f"Line {raw.line_number} skipped as noise: {raw.text!r}")
                continue
            items.append(self.parse_line(raw))

        fallback_count = sum(1 for i in items if i.low_confidence_extraction)
        logger.info(f"Parsed {len(items)} items from OCR text ({fallback_count} low-confidence)")
        return items

    def parse_line(self, raw: RawLine) -> ParsedItem:
        """Parse one non-noise line; always returns an item unless strict."""
        line = raw.text.strip()

        for name, pattern in self.patterns:
            match = pattern.match(line)
            if not match:
                continue
            item = self._build_item(raw, name, match)
            if item is not None:
                logger.debug(f"Line {raw.line_number} matched {name}: "
                             f"{item.text!r} x {item.quantity}")
                return item

        if self.strict:
            raise ParseAmbiguous(line, raw.line_number)

        logger.debug(f"Line {raw.line_number} kept as best-effort item: {line!r}")
        return ParsedItem(
            raw=raw,
            display_text=line,
            text=clean_text(line),
            quantity=1,
            low_confidence_extraction=True,
            pattern='fallback',
        )

    def _build_item(self, raw: RawLine, pattern_name: str, match: "re.Match") -> Optional[ParsedItem]:
        groups = match.groupdict()

        if pattern_name in ('code_description', 'code_only'):
            code = groups['code'].strip()
            description = (groups.get('name') or '').strip()
            return ParsedItem(
                raw=raw,
                display_text=code,
                text=clean_text(code),
                quantity=1,
                pattern=pattern_name,
                hint=clean_text(description) or None,
            )

        display = groups['name'].strip()
        cleaned = clean_text(display)
        # the product fragment needs at least one letter, otherwise try the next pattern;
        # short names such as "6A" or "TV" are kept
        if not re.search(r'[a-z]', cleaned):
            return None

        quantity, confident = self._parse_quantity(groups.get('qty'))
        return ParsedItem(
            raw=raw,
            display_text=display,
            text=cleaned,
            quantity=quantity,
            low_confidence_extraction=not confident,
            pattern=pattern_name,
            units=self._parse_unit(groups.get('unit')),
        )

    def _parse_unit(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return UNIT_ALIASES.get(value.lower(), value.lower())

    def _parse_quantity(self, value: Optional[str]) -> Tuple[int, bool]:
        if value is None:
            return 1, True
        quantity = int(value)
        if quantity <= 0:
            return 1, False
        return quantity, True
