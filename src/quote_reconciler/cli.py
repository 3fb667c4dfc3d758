#!/usr/bin/env python3
"""
Quote Reconciler CLI
Matches an OCR'd order list against a catalog and optionally creates a quotation.
"""

import json
import logging
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import CatalogLoader, CatalogSnapshot, open_catalog_source
from .config import MatchingVocabulary, ReconcilerSettings
from .exceptions import QuoteReconcilerError
from .financial_calculator import QuotationCalculator
from .models import CustomerInfo
from .numbering import QuotationNumberGenerator, SqliteSequenceStore
from .pipeline import ReconciliationPipeline, ReconciliationReport, confirmed_items_from_report
from .quotation_service import QuotationService
from .storage import InMemoryQuotationRepository, SqliteQuotationRepository

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

console = Console()


def _load_settings(config_path: Optional[str], **overrides) -> ReconcilerSettings:
    settings = ReconcilerSettings.from_file(config_path) if config_path else ReconcilerSettings()
    settings = ReconcilerSettings.from_env(base=settings)
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return settings.with_overrides(**overrides) if overrides else settings


def _load_snapshot(catalog: str, vocabulary_path: Optional[str], strict: bool = False) -> CatalogSnapshot:
    vocabulary = MatchingVocabulary.from_file(vocabulary_path) if vocabulary_path else None
    return CatalogLoader(open_catalog_source(catalog), vocabulary, strict=strict).load()


def _warn_skipped_rows(count: int):
    if count:
        console.print(f"[yellow]Catalog is partial: {count} invalid rows were skipped "
                      f"(use --strict-catalog to fail instead)[/yellow]")


def _render_report(report: ReconciliationReport, calculator: QuotationCalculator):
    table = Table(title="Reconciled items")
    table.add_column("#", justify="right")
    table.add_column("Text")
    table.add_column("Qty", justify="right")
    table.add_column("Tier")
    table.add_column("Confidence", justify="right")
    table.add_column("Best match")
    table.add_column("Price", justify="right")
    table.add_column("Review")

    for line in report.lines:
        best = line.best.name if line.best else "-"
        if line.best is None and line.alternatives:
            best = "? " + ", ".join(s.product.name for s in line.alternatives[:3])
        table.add_row(
            str(line.item.line_number),
            line.original_text.strip(),
            f"{line.quantity} {line.item.units}" if line.item.units else str(line.quantity),
            line.tier.value,
            f"{line.confidence:.2f}",
            best,
            calculator.format_currency(line.price),
            "[yellow]yes[/yellow]" if line.requires_review else "[green]no[/green]",
        )
    console.print(table)

    stats = report.stats
    console.print(
        f"[bold]{stats['totalItems']}[/bold] items, {stats['exactMatches']} exact, "
        f"{stats['highConfidenceMatches']} high confidence, "
        f"{stats['itemsRequiringReview']} need review "
        f"(average confidence {stats['averageConfidence']})"
    )
    _warn_skipped_rows(report.catalog_skipped_rows)


@click.group()
@click.version_option(package_name='quote-reconciler')
def cli():
    """Quote Reconciler - match OCR order lists against a product catalog."""


@cli.command()
@click.argument('text_file', type=click.File('r', encoding='utf-8'))
@click.option('--catalog', '-c', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Catalog CSV or JSON file')
@click.option('--vocabulary', type=click.Path(exists=True, dir_okay=False),
              help='JSON file with category/technical keyword tables')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='JSON settings file')
@click.option('--strict-catalog', is_flag=True,
              help='Fail when the catalog file has invalid rows instead of skipping them')
@click.option('--always-show-alternatives', is_flag=True,
              help='Attach suggestions from later tiers even to accepted matches')
@click.option('--json', 'as_json', is_flag=True, help='Print the full JSON report')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def reconcile(text_file, catalog: str, vocabulary: Optional[str], config_path: Optional[str],
              strict_catalog: bool, always_show_alternatives: bool, as_json: bool, verbose: bool):
    """Match every line of TEXT_FILE ('-' for stdin) against the catalog."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = _load_settings(config_path, always_show_alternatives=always_show_alternatives or None)
        snapshot = _load_snapshot(catalog, vocabulary, strict_catalog)
        report = ReconciliationPipeline(snapshot, settings).reconcile(text_file.read())
    except QuoteReconcilerError as e:
        click.echo(f"Error reconciling order list: {e}", err=True)
        raise click.Abort()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        _render_report(report, QuotationCalculator(settings.currency_code))


@cli.command()
@click.argument('text_file', type=click.File('r', encoding='utf-8'))
@click.option('--catalog', '-c', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Catalog CSV or JSON file')
@click.option('--vocabulary', type=click.Path(exists=True, dir_okay=False),
              help='JSON file with category/technical keyword tables')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='JSON settings file')
@click.option('--strict-catalog', is_flag=True,
              help='Fail when the catalog file has invalid rows instead of skipping them')
@click.option('--sequence-db', type=click.Path(dir_okay=False),
              help='SQLite file holding the per-day quotation counters')
@click.option('--store-db', type=click.Path(dir_okay=False),
              help='SQLite file to save the quotation in')
@click.option('--min-confidence', type=click.FloatRange(0.0, 1.0), default=None,
              help='Only auto-confirm matches at or above this confidence')
@click.option('--customer', help='Customer name')
@click.option('--json', 'as_json', is_flag=True, help='Print the quotation as JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
def quote(text_file, catalog: str, vocabulary: Optional[str], config_path: Optional[str],
          strict_catalog: bool,
          sequence_db: Optional[str], store_db: Optional[str], min_confidence: Optional[float],
          customer: Optional[str], as_json: bool, verbose: bool):
    """Create a quotation from the best matches in TEXT_FILE."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = _load_settings(config_path)
        snapshot = _load_snapshot(catalog, vocabulary, strict_catalog)
        report = ReconciliationPipeline(snapshot, settings).reconcile(text_file.read())
        threshold = settings.review_threshold if min_confidence is None else min_confidence
        items = confirmed_items_from_report(report, threshold)
        skipped = len(report.lines) - len(items)
        if skipped:
            logger.warning(f"⚠️  {skipped} lines were not confident enough to quote automatically")

        store = SqliteSequenceStore(sequence_db) if sequence_db else None
        service = QuotationService(
            repository=SqliteQuotationRepository(store_db) if store_db else InMemoryQuotationRepository(),
            number_generator=QuotationNumberGenerator(store, prefix=settings.number_prefix),
            settings=settings,
        )
        quotation = service.create_quotation(
            items,
            snapshot,
            customer=CustomerInfo(name=customer) if customer else None,
            ocr_data=report.ocr,
        )
    except QuoteReconcilerError as e:
        click.echo(f"Error creating quotation: {e}", err=True)
        raise click.Abort()

    if as_json:
        click.echo(json.dumps(quotation.to_dict(), indent=2, ensure_ascii=False))
        return

    _warn_skipped_rows(report.catalog_skipped_rows)

    calculator = quotation.calculator
    table = Table(title=f"Quotation {quotation.number}")
    table.add_column("Item")
    table.add_column("Qty", justify="right")
    table.add_column("Unit price", justify="right")
    table.add_column("Net", justify="right")
    table.add_column("Tax", justify="right")
    table.add_column("Total", justify="right")
    for item in quotation.items:
        table.add_row(
            item.description,
            f"{item.quantity} {item.units}" if item.units else str(item.quantity),
            calculator.format_currency(item.unit_price),
            calculator.format_currency(item.net_price),
            calculator.format_currency(item.tax_amount),
            calculator.format_currency(item.line_total),
        )
    console.print(table)
    console.print(Panel("\n".join(calculator.calculation_steps(quotation.totals)),
                        title="Totals", border_style="blue"))


if __name__ == '__main__':
    cli()
