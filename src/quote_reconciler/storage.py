#!/usr/bin/env python3
"""
Quotation repositories.

save() is idempotent per quotation: saving the same quotation again (same
number, same id) overwrites it, while a different quotation under an
existing number raises DuplicateQuotationNumber.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import DuplicateQuotationNumber
from .models import Quotation
from .numbering import number_sort_key

logger = logging.getLogger(__name__)


class InMemoryQuotationRepository:

    def __init__(self):
        self._lock = threading.Lock()
        self._quotations: Dict[str, Quotation] = {}

    def save(self, quotation: Quotation) -> Quotation:
        with self._lock:
            existing = self._quotations.get(quotation.number)
            if existing is not None and existing.id != quotation.id:
                raise DuplicateQuotationNumber(quotation.number)
            self._quotations[quotation.number] = quotation
        logger.debug(f"Saved quotation {quotation.number}")
        return quotation

    def get(self, number: str) -> Optional[Quotation]:
        return self._quotations.get(number)

    def get_record(self, number: str) -> Optional[Dict[str, Any]]:
        quotation = self.get(number)
        return quotation.to_dict() if quotation else None

    def numbers(self) -> List[str]:
        return sorted(self._quotations, key=number_sort_key)

    def records(self) -> List[Dict[str, Any]]:
        with self._lock:
            quotations = list(self._quotations.values())
        return [q.to_dict() for q in sorted(quotations, key=lambda q: number_sort_key(q.number))]


class SqliteQuotationRepository:
    """Stores each quotation's serialized form keyed by its number."""

    def __init__(self, path: Union[str, Path], timeout: float = 10.0):
        self.path = str(path)
        self.timeout = timeout
        conn = self._connect()
        try:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS quotations ("
                " number TEXT PRIMARY KEY,"
                " quotation_id TEXT NOT NULL,"
                " status TEXT NOT NULL,"
                " payload TEXT NOT NULL)"
            )
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=self.timeout)

    def save(self, quotation: Quotation) -> Quotation:
        payload = json.dumps(quotation.to_dict(), ensure_ascii=False)
        conn = self._connect()
        try:
            conn.isolation_level = None
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT quotation_id FROM quotations WHERE number = ?",
                                   (quotation.number,)).fetchone()
                if row is not None and row[0] != quotation.id:
                    raise DuplicateQuotationNumber(quotation.number)
                conn.execute(
                    "INSERT INTO quotations (number, quotation_id, status, payload) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(number) DO UPDATE SET status = excluded.status, payload = excluded.payload",
                    (quotation.number, quotation.id, quotation.status.value, payload),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()
        logger.debug(f"Saved quotation {quotation.number} to {self.path}")
        return quotation

    def get_record(self, number: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT payload FROM quotations WHERE number = ?", (number,)).fetchone()
        finally:
            conn.close()
        return json.loads(row[0]) if row else None

    def numbers(self) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT number FROM quotations").fetchall()
        finally:
            conn.close()
        return sorted((row[0] for row in rows), key=number_sort_key)

    def records(self) -> List[Dict[str, Any]]:
        """Every stored quotation's serialized form, in number order."""
        conn = self._connect()
        try:
            rows = conn.execute("SELECT number, payload FROM quotations").fetchall()
        finally:
            conn.close()
        rows.sort(key=lambda row: number_sort_key(row[0]))
        return [json.loads(payload) for _, payload in rows]
