#!/usr/bin/env python3
"""
Tests for the command line interface
"""

import json
import unittest
from decimal import Decimal

from click.testing import CliRunner

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from quote_reconciler.cli import cli

from catalog_fixtures import SAMPLE_ORDER

CATALOG_CSV = """id,name,catalog_number,description,categories,price,discount,gst
p1,10 sq mm wire,W10,copper wire 10 sq mm,wire,2500,5,18
p2,6 sq mm wire,W6,copper wire 6 sq mm,wire,1500,5,18
p3,6A one way switch,SW101,6A 1 module one-way modular switch,switch,45,0,18
p5,Fan regulator,FR200,5 step fan regulator 2 module,fan,350,0,18
"""


class TestCli(unittest.TestCase):
    """Test cases for the quote-reconciler commands."""

    def setUp(self):
        self.runner = CliRunner()

    def write_inputs(self):
        Path('catalog.csv').write_text(CATALOG_CSV, encoding='utf-8')
        Path('order.txt').write_text(SAMPLE_ORDER, encoding='utf-8')

    def test_reconcile_json(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            result = self.runner.invoke(cli, ['reconcile', 'order.txt', '--catalog', 'catalog.csv', '--json'])
            self.assertEqual(result.exit_code, 0, result.output)
            data = json.loads(result.stdout)
        self.assertEqual(data['parsedItems'], 6)
        self.assertEqual(data['stats']['exactMatches'], 3)

    def test_reconcile_table(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            result = self.runner.invoke(cli, ['reconcile', 'order.txt', '-c', 'catalog.csv'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Reconciled items', result.stdout)
        self.assertIn('exact', result.stdout)

    def test_quote_json(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            result = self.runner.invoke(cli, [
                'quote', 'order.txt', '--catalog', 'catalog.csv', '--customer', 'Acme Electricals',
                '--sequence-db', 'sequences.db', '--store-db', 'quotes.db', '--json',
            ])
            self.assertEqual(result.exit_code, 0, result.output)
            data = json.loads(result.stdout)
        self.assertRegex(data['quotationNumber'], r'^QT-\d{8}-0001$')
        self.assertEqual(data['customer']['name'], 'Acme Electricals')
        # the fuzzy wire match is below the review threshold and is left out
        self.assertEqual([item['productId'] for item in data['items']], ['p1', 'p5', 'p3'])
        self.assertEqual(Decimal(data['grandTotal']), Decimal('15304.6'))

    def test_quote_table(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            result = self.runner.invoke(cli, ['quote', 'order.txt', '-c', 'catalog.csv'])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Grand Total', result.stdout)

    def test_quote_without_confident_matches(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            Path('junk.txt').write_text("RANDOMGIBBERISHXYZ\n", encoding='utf-8')
            result = self.runner.invoke(cli, ['quote', 'junk.txt', '-c', 'catalog.csv'])
        self.assertEqual(result.exit_code, 1)

    def test_unreadable_catalog(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            Path('broken.json').write_text("{not json", encoding='utf-8')
            result = self.runner.invoke(cli, ['reconcile', 'order.txt', '-c', 'broken.json'])
        self.assertEqual(result.exit_code, 1)

    def test_invalid_catalog_rows_are_reported(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            Path('partial.csv').write_text(CATALOG_CSV + "p9,Broken row,,,,not-a-price,0,0\n",
                                           encoding='utf-8')
            table = self.runner.invoke(cli, ['reconcile', 'order.txt', '-c', 'partial.csv'])
            as_json = self.runner.invoke(cli, ['reconcile', 'order.txt', '-c', 'partial.csv', '--json'])
        self.assertEqual(table.exit_code, 0, table.output)
        self.assertIn('Catalog is partial: 1 invalid rows', table.stdout)
        self.assertEqual(as_json.exit_code, 0, as_json.output)
        self.assertEqual(json.loads(as_json.stdout)['catalogSkippedRows'], 1)

    def test_strict_catalog_rejects_invalid_rows(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            Path('partial.csv').write_text(CATALOG_CSV + "p9,Broken row,,,,not-a-price,0,0\n",
                                           encoding='utf-8')
            result = self.runner.invoke(cli, ['reconcile', 'order.txt', '-c', 'partial.csv',
                                              '--strict-catalog'])
        self.assertEqual(result.exit_code, 1)

    def test_stdin_input(self):
        with self.runner.isolated_filesystem():
            self.write_inputs()
            result = self.runner.invoke(cli, ['reconcile', '-', '-c', 'catalog.csv', '--json'],
                                        input="Fan regulator - 2\n")
            self.assertEqual(result.exit_code, 0, result.output)
            data = json.loads(result.stdout)
        self.assertEqual(data['processedItems'][0]['bestMatch']['id'], 'p5')
        self.assertEqual(data['processedItems'][0]['quantity'], 2)


if __name__ == '__main__':
    unittest.main()
