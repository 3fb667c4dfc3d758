#!/usr/bin/env python3
"""
Quotation numbers of the form QT-YYYYMMDD-NNNN.

The per-day sequence comes from a store whose increment-and-fetch is atomic,
so concurrent callers can never be handed the same number.

The suffix is zero-padded to four digits and grows past 9999, so numbers do
not sort as strings; order them with number_sort_key.
"""

import logging
import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


def number_sort_key(number: str) -> Tuple[str, str, int]:
    """(prefix, day, sequence) with the sequence compared as an integer."""
    prefix, day, sequence = number.rsplit('-', 2)
    return prefix, day, int(sequence)


class InMemorySequenceStore:
    """Per-day counters guarded by a process-wide lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[date, int] = {}

    def next_sequence_for_date(self, day: date) -> int:
        with self._lock:
            value = self._counters.get(day, 0) + 1
            self._counters[day] = value
            return value


class SqliteSequenceStore:
    """
    Durable per-day counters in SQLite.

    The increment is a single upsert inside an immediate transaction, so it
    is atomic across threads and across processes sharing the file.
    """

    def __init__(self, path: Union[str, Path], timeout: float = 10.0):
        self.path = str(path)
        self.timeout = timeout
        self._lock = threading.Lock()
        conn = self._connect()
        try:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS quotation_sequences ("
                " day TEXT PRIMARY KEY,"
                " value INTEGER NOT NULL)"
            )
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=self.timeout)

    def next_sequence_for_date(self, day: date) -> int:
        with self._lock:
            conn = self._connect()
            try:
                conn.isolation_level = None
                conn.execute("BEGIN IMMEDIATE")
                try:
                    (row,) = conn.execute(
                        "INSERT INTO quotation_sequences (day, value) VALUES (?, 1) "
                        "ON CONFLICT(day) DO UPDATE SET value = value + 1 "
                        "RETURNING value",
                        (day.isoformat(),),
                    ).fetchall()
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()
        return int(row[0])


class QuotationNumberGenerator:
    """Formats store-issued sequences into quotation numbers."""

    def __init__(self, store=None, prefix: str = 'QT', width: int = 4,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store or InMemorySequenceStore()
        self.prefix = prefix
        self.width = width
        self.clock = clock or datetime.now

    def next_number(self, day: Optional[date] = None) -> str:
        day = day or self.clock().date()
        sequence = self.store.next_sequence_for_date(day)
        number = f"{self.prefix}-{day:%Y%m%d}-{sequence:0{self.width}d}"
        logger.debug(f"Issued quotation number {number}")
        return number
