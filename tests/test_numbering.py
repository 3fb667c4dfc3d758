#!/usr/bin/env python3
"""
Tests for quotation numbering
"""

import os
import re
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from quote_reconciler.numbering import (
    InMemorySequenceStore,
    QuotationNumberGenerator,
    SqliteSequenceStore,
    number_sort_key,
)

NUMBER_PATTERN = re.compile(r'^QT-\d{8}-\d{4,}$')


class NumberingChecks:
    """Shared checks for every sequence store."""

    def make_store(self):
        raise NotImplementedError

    def test_format(self):
        generator = QuotationNumberGenerator(self.make_store())
        number = generator.next_number(date(2024, 1, 15))
        self.assertEqual(number, 'QT-20240115-0001')
        self.assertRegex(number, NUMBER_PATTERN)

    def test_sequence_restarts_each_day(self):
        generator = QuotationNumberGenerator(self.make_store())
        self.assertEqual(generator.next_number(date(2024, 1, 15)), 'QT-20240115-0001')
        self.assertEqual(generator.next_number(date(2024, 1, 15)), 'QT-20240115-0002')
        self.assertEqual(generator.next_number(date(2024, 1, 16)), 'QT-20240116-0001')

    def test_same_instant_gives_distinct_numbers(self):
        frozen = datetime(2024, 1, 15, 10, 30, 0, 123000)
        generator = QuotationNumberGenerator(self.make_store(), clock=lambda: frozen)
        first = generator.next_number()
        second = generator.next_number()
        self.assertNotEqual(first, second)
        self.assertEqual(first[:12], second[:12])
        self.assertLess(int(first.rsplit('-', 1)[1]), int(second.rsplit('-', 1)[1]))

    def test_concurrent_requests_never_collide(self):
        generator = QuotationNumberGenerator(self.make_store())
        day = date(2024, 1, 15)
        with ThreadPoolExecutor(max_workers=64) as executor:
            numbers = list(executor.map(lambda _: generator.next_number(day), range(64)))
        self.assertEqual(len(set(numbers)), 64)
        sequences = sorted(int(n.rsplit('-', 1)[1]) for n in numbers)
        self.assertEqual(sequences, list(range(1, 65)))


class TestInMemorySequenceStore(NumberingChecks, unittest.TestCase):

    def make_store(self):
        return InMemorySequenceStore()


class TestSqliteSequenceStore(NumberingChecks, unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmpdir.cleanup)
        self.path = os.path.join(self.tmpdir.name, 'sequences.db')

    def make_store(self):
        return SqliteSequenceStore(self.path)

    def test_counters_survive_reopening(self):
        day = date(2024, 1, 15)
        SqliteSequenceStore(self.path).next_sequence_for_date(day)
        SqliteSequenceStore(self.path).next_sequence_for_date(day)
        self.assertEqual(SqliteSequenceStore(self.path).next_sequence_for_date(day), 3)

    def test_separate_store_objects_share_the_counter(self):
        day = date(2024, 1, 15)
        stores = [SqliteSequenceStore(self.path) for _ in range(4)]
        with ThreadPoolExecutor(max_workers=8) as executor:
            values = list(executor.map(lambda i: stores[i % 4].next_sequence_for_date(day), range(40)))
        self.assertEqual(sorted(values), list(range(1, 41)))


class TestGeneratorOptions(unittest.TestCase):

    def test_custom_prefix_and_width(self):
        generator = QuotationNumberGenerator(prefix='QUO', width=6)
        self.assertEqual(generator.next_number(date(2024, 3, 1)), 'QUO-20240301-000001')

    def test_sequence_grows_past_width(self):
        store = InMemorySequenceStore()
        store._counters[date(2024, 1, 15)] = 9999
        generator = QuotationNumberGenerator(store)
        self.assertEqual(generator.next_number(date(2024, 1, 15)), 'QT-20240115-10000')

    def test_numbers_past_width_sort_after_padded_ones(self):
        numbers = ['QT-20240115-10000', 'QT-20240116-0001', 'QT-20240115-9999', 'QT-20240115-0002']
        self.assertEqual(sorted(numbers, key=number_sort_key), [
            'QT-20240115-0002', 'QT-20240115-9999', 'QT-20240115-10000', 'QT-20240116-0001',
        ])

    def test_sort_key_allows_hyphenated_prefix(self):
        self.assertEqual(number_sort_key('ACME-QT-20240115-0042'), ('ACME-QT', '20240115', 42))


if __name__ == '__main__':
    unittest.main()
