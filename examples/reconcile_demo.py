#!/usr/bin/env python3
"""
Example usage of the Quote Reconciler
Reconciles a sample order list against the sample catalog and builds a quotation.
"""

import json
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from quote_reconciler import (
    CatalogLoader,
    CsvCatalogSource,
    QuotationService,
    ReconciliationPipeline,
    confirmed_items_from_report,
)
from quote_reconciler.models import ConfirmedItem

EXAMPLES_DIR = Path(__file__).parent


def demonstrate_reconciliation(snapshot):
    """Match every line of the sample order and show what needs review."""
    print("=" * 60)
    print("DEMONSTRATION: Reconciliation")
    print("=" * 60)

    text = (EXAMPLES_DIR / "sample_order.txt").read_text(encoding="utf-8")
    report = ReconciliationPipeline(snapshot).reconcile(text, ocr_confidence=0.9)

    for line in report.lines:
        best = line.best.name if line.best else "-"
        flag = "REVIEW" if line.requires_review else "ok"
        print(f"{line.original_text:<28} x{line.quantity:<3} {line.tier.value:<9} "
              f"{line.confidence:.2f}  {best:<20} {flag}")
        for suggestion in line.suggestions:
            print(f"    {suggestion.type}: {suggestion.message}")

    print("\nStats:")
    print(json.dumps(report.stats, indent=2))
    return report


def demonstrate_quotation(snapshot, report):
    """Turn confident matches plus one manual line into a quotation."""
    print("\n" + "=" * 60)
    print("DEMONSTRATION: Quotation")
    print("=" * 60)

    items = confirmed_items_from_report(report, min_confidence=0.8)
    items.append(ConfirmedItem(quantity=1, description="Installation visit", unit_price="500",
                               tax_percent=18))

    quotation = QuotationService().create_quotation(items, snapshot, ocr_data=report.ocr)
    calculator = quotation.calculator

    print(f"Quotation {quotation.number}")
    for item in quotation.items:
        print(f"  {item.description:<24} {item.quantity:>4} x {calculator.format_currency(item.unit_price):>10}"
              f"  = {calculator.format_currency(item.line_total):>12}")
    for step in calculator.calculation_steps(quotation.totals):
        print(f"  {step}")


def main():
    snapshot = CatalogLoader(CsvCatalogSource(EXAMPLES_DIR / "sample_catalog.csv")).load()
    report = demonstrate_reconciliation(snapshot)
    demonstrate_quotation(snapshot, report)


if __name__ == "__main__":
    main()
