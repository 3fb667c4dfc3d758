#!/usr/bin/env python3
"""
Catalog sources, the immutable catalog snapshot and its similarity index.

A snapshot is built once from a source and never changes. Refreshing the
catalog means building a new snapshot; matchers holding the old one keep
using it until they finish.
"""

import csv
import itertools
import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import Levenshtein
import numpy as np

from .config import MatchingVocabulary
from .exceptions import CatalogUnavailable, InvalidQuantityOrPrice
from .models import CatalogProduct
from .normalization import clean_text, contains_keyword

logger = logging.getLogger(__name__)

# (field, weight) pairs used by the fuzzy tier
SIMILARITY_FIELDS: Tuple[Tuple[str, float], ...] = (
    ('name', 0.4),
    ('catalog_code', 0.3),
    ('description', 0.2),
    ('categories', 0.1),
)

# a match inside a longer field is worth less than a whole-field match
PARTIAL_MATCH_PENALTY = 0.75
MIN_DISTANCE = 0.01


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ('0', 'false', 'no', 'n', 'inactive', '')


def product_from_record(record: Mapping[str, Any], fallback_id: str) -> CatalogProduct:
    """
    Build a CatalogProduct from a CSV row or JSON object.

    Accepts the column names of the catalog import format (price / discount /
    gst) as well as the attribute names of CatalogProduct.
    """
    def pick(*keys, default=None):
        for key in keys:
            value = record.get(key)
            if value is not None and str(value).strip() != '':
                return value
        return default

    name = pick('name', 'product_name')
    if not name:
        raise ValueError("Missing required field: name")
    price = pick('unit_price', 'price')
    if price is None:
        raise ValueError("Missing required field: price")

    categories = pick('categories', default=())
    if isinstance(categories, str):
        categories = [c.strip() for c in categories.split(',')]
    categories = tuple(c for c in (str(c).strip() for c in categories) if c)

    sku = pick('sku')
    if sku is not None:
        sku = str(sku).strip().upper().replace(' ', '')

    catalog_code = pick('catalog_code', 'catalog_number', 'catalogNumber')

    product = CatalogProduct(
        id=str(pick('id', 'product_id', default=sku or fallback_id)).strip(),
        name=str(name).strip(),
        unit_price=price,
        catalog_code=str(catalog_code).strip() if catalog_code else None,
        sku=sku,
        description=str(pick('description', default='')).strip(),
        categories=categories,
        discount_percent=pick('discount_percent', 'discount', default=0),
        tax_percent=pick('tax_percent', 'gst_percent', 'gst', 'tax', default=0),
        active=_truthy(pick('active', 'is_active', default=True)),
        units=str(pick('units', 'unit', 'uom', default='')).strip() or None,
    )
    if product.unit_price < 0:
        raise ValueError("Price must be a valid positive number")
    if not 0 <= product.discount_percent <= 100:
        raise ValueError("Discount must be between 0 and 100")
    if product.tax_percent < 0:
        raise ValueError("Tax cannot be negative")
    return product


class InMemoryCatalogSource:
    """Serves a fixed list of products; handy for tests and embedding."""

    def __init__(self, products: Iterable[CatalogProduct], name: str = 'memory'):
        self.products = list(products)
        self.name = name

    def load_active_products(self) -> List[CatalogProduct]:
        return [p for p in self.products if p.active]


class CsvCatalogSource:
    """
    Reads products from a CSV export of the catalog.

    Invalid rows are skipped and recorded in `errors` with their line number;
    an unreadable file is an error for the caller.
    """

    def __init__(self, path: Union[str, Path], encoding: str = 'utf-8'):
        self.path = Path(path)
        self.encoding = encoding
        self.name = str(self.path)
        self.errors: List[Dict[str, Any]] = []

    def load_active_products(self) -> List[CatalogProduct]:
        self.errors = []
        products = []
        with open(self.path, newline='', encoding=self.encoding) as f:
            reader = csv.DictReader(f)
            # header is line 1
            for line_number, row in enumerate(reader, start=2):
                row = {(k or '').strip().lower(): v for k, v in row.items()}
                try:
                    product = product_from_record(row, fallback_id=f"row-{line_number}")
                except (ValueError, InvalidQuantityOrPrice) as e:
                    logger.warning(f"Skipping catalog row {line_number} in {self.path}: {e}")
                    self.errors.append({'line': line_number, 'error': str(e)})
                    continue
                if product.active:
                    products.append(product)
        logger.info(f"Read {len(products)} active products from {self.path} "
                    f"({len(self.errors)} rows skipped)")
        return products


class JsonCatalogSource:
    """Reads a JSON list of product objects."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = str(self.path)
        self.errors: List[Dict[str, Any]] = []

    def load_active_products(self) -> List[CatalogProduct]:
        self.errors = []
        with open(self.path, encoding='utf-8') as f:
            records = json.load(f)
        if isinstance(records, dict):
            records = records.get('products', [])
        products = []
        for index, record in enumerate(records):
            try:
                product = product_from_record(record, fallback_id=f"item-{index}")
            except (ValueError, InvalidQuantityOrPrice) as e:
                logger.warning(f"Skipping catalog entry {index} in {self.path}: {e}")
                self.errors.append({'index': index, 'error': str(e)})
                continue
            if product.active:
                products.append(product)
        return products


def open_catalog_source(path: Union[str, Path]):
    """Pick a source implementation from the file extension."""
    path = Path(path)
    if path.suffix.lower() == '.json':
        return JsonCatalogSource(path)
    return CsvCatalogSource(path)


def field_similarity(query: str, target: str) -> float:
    """
    Similarity in [0, 1] between cleaned query and cleaned field text.

    Whole-string Levenshtein ratio, or the best ratio against a window of the field's
    tokens the same length as the query (scaled down), whichever is higher.
    """
    if not query or not target:
        return 0.0
    whole = Levenshtein.ratio(query, target)

    query_tokens = query.split()
    target_tokens = target.split()
    best_window = 0.0
    if len(target_tokens) > len(query_tokens):
        size = len(query_tokens)
        for start in range(len(target_tokens) - size + 1):
            window = ' '.join(target_tokens[start:start + size])
            best_window = max(best_window, Levenshtein.ratio(query, window))
    return max(whole, best_window * PARTIAL_MATCH_PENALTY)


class SimilarityIndex:
    """
    Pre-normalized searchable fields for every product in a snapshot.
    """

    def __init__(self, products: Sequence[CatalogProduct],
                 fields: Sequence[Tuple[str, float]] = SIMILARITY_FIELDS):
        self.products = tuple(products)
        self.field_names = tuple(name for name, _ in fields)
        weights = np.array([weight for _, weight in fields], dtype=float)
        self.weights = weights / weights.sum()
        self._entries = [self._field_values(p) for p in self.products]

    def _field_values(self, product: CatalogProduct) -> Tuple[Tuple[str, ...], ...]:
        values = []
        for name in self.field_names:
            if name == 'name':
                options = [product.name]
            elif name == 'catalog_code':
                options = [product.catalog_code or '', product.sku or '']
            elif name == 'description':
                options = [product.description]
            elif name == 'categories':
                options = list(product.categories)
            else:
                options = [str(getattr(product, name, '') or '')]
            values.append(tuple(o for o in (clean_text(o) for o in options) if o))
        return tuple(values)

    def score_matrix(self, query: str) -> np.ndarray:
        """products x fields matrix of field similarities."""
        matrix = np.zeros((len(self.products), len(self.field_names)), dtype=float)
        for row, entry in enumerate(self._entries):
            for col, options in enumerate(entry):
                if options:
                    matrix[row, col] = max(field_similarity(query, o) for o in options)
        return matrix

    def search(self, query: str, field_floor: float = 0.5, limit: int = 5,
               min_score: float = 0.0) -> List[Tuple[CatalogProduct, float]]:
        """
        Rank products by combined similarity.

        Fields below field_floor are ignored. The remaining field distances
        are combined as a weighted geometric mean, so a strong name match
        alone still scores well while unrelated fields do not drag it down.
        Returns (product, confidence) pairs, best first.
        """
        query = clean_text(query)
        if not query or not self.products:
            return []
        similarities = self.score_matrix(query)
        matched = similarities >= field_floor
        distances = np.clip(1.0 - similarities, MIN_DISTANCE, 1.0)
        log_distance = np.where(matched, self.weights * np.log(distances), 0.0).sum(axis=1)
        confidence = np.where(matched.any(axis=1), 1.0 - np.exp(log_distance), 0.0)

        # stable sort keeps catalog order among ties
        order = np.argsort(-confidence, kind='stable')
        results = []
        for index in order[:limit]:
            score = float(confidence[index])
            if score <= 0.0 or score < min_score:
                break
            results.append((self.products[index], score))
        return results


def extract_attributes(product: CatalogProduct,
                       vocabulary: MatchingVocabulary) -> Tuple[Tuple[str, str], ...]:
    """Technical attribute tokens found in a product's name and description."""
    text = clean_text(f"{product.name} {product.description}")
    found = []
    for attribute_type, keywords in vocabulary.technical_keywords.items():
        for keyword in keywords:
            if contains_keyword(text, keyword):
                found.append((attribute_type, clean_text(keyword)))
    return tuple(found)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Read-only view of the active catalog used for one or more matching runs."""
    products: Tuple[CatalogProduct, ...]
    vocabulary: MatchingVocabulary
    loaded_at: datetime
    version: int
    source_name: str = 'memory'
    # rows the source could not read; a non-empty tuple means the catalog is partial
    skipped_rows: Tuple[Mapping[str, Any], ...] = field(default=(), compare=False)
    loader: Optional["CatalogLoader"] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        by_id = {}
        exact = {}
        same_name: Dict[str, List[CatalogProduct]] = {}
        for product in self.products:
            by_id.setdefault(product.id, product)
            key = clean_text(product.name)
            if key in exact and exact[key] is not product:
                logger.warning(f"Duplicate product name {product.name!r}: exact matches pick "
                               f"{exact[key].id}, {product.id} is offered as an alternative")
                same_name.setdefault(key, [exact[key]]).append(product)
            exact.setdefault(key, product)
        # names take precedence over codes when they collide
        for product in self.products:
            for code in (product.catalog_code, product.sku):
                key = clean_text(code or '')
                if key:
                    exact.setdefault(key, product)
        object.__setattr__(self, '_by_id', MappingProxyType(by_id))
        object.__setattr__(self, 'exact_index', MappingProxyType(exact))
        object.__setattr__(self, '_same_name', MappingProxyType(
            {key: tuple(products) for key, products in same_name.items()}))
        object.__setattr__(self, 'skipped_rows', tuple(MappingProxyType(dict(r)) for r in self.skipped_rows))
        object.__setattr__(self, 'similarity_index', SimilarityIndex(self.products))

    @classmethod
    def build(cls, products: Iterable[CatalogProduct], vocabulary: Optional[MatchingVocabulary] = None,
              version: int = 1, source_name: str = 'memory',
              loader: Optional["CatalogLoader"] = None,
              skipped_rows: Iterable[Mapping[str, Any]] = ()) -> "CatalogSnapshot":
        vocabulary = vocabulary or MatchingVocabulary()
        enriched = tuple(
            replace(p, attributes=extract_attributes(p, vocabulary))
            for p in products if p.active
        )
        return cls(products=enriched, vocabulary=vocabulary, loaded_at=datetime.now(),
                   version=version, source_name=source_name, skipped_rows=tuple(skipped_rows),
                   loader=loader)

    def __len__(self) -> int:
        return len(self.products)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped_rows)

    def same_name_as(self, product: CatalogProduct) -> Tuple[CatalogProduct, ...]:
        """Other products sharing this product's cleaned name, in catalog order."""
        return tuple(p for p in self._same_name.get(clean_text(product.name), ()) if p is not product)

    def get(self, product_id: str) -> Optional[CatalogProduct]:
        return self._by_id.get(str(product_id))

    def lookup_exact(self, text: str) -> Optional[CatalogProduct]:
        """Case-insensitive lookup by name, catalog code or SKU."""
        return self.exact_index.get(clean_text(text))

    def products_in_category(self, category: str) -> List[CatalogProduct]:
        category = clean_text(category)
        return [
            p for p in self.products
            if any(category in clean_text(c) for c in p.categories)
            or contains_keyword(clean_text(p.name), category)
        ]

    def products_with_attribute(self, token: str) -> List[CatalogProduct]:
        token = clean_text(token)
        return [p for p in self.products if token in p.attribute_tokens]

    def reload(self) -> "CatalogSnapshot":
        """Build a fresh snapshot from the same source; this one is left as is."""
        if self.loader is None:
            raise CatalogUnavailable("Snapshot was not built by a loader and cannot be reloaded",
                                     self.source_name)
        return self.loader.load()


class CatalogLoader:
    """
    Turns a catalog source into snapshots.

    Rows the source skipped are carried on the snapshot as skipped_rows. With
    strict=True any skipped row makes the load fail instead.
    """

    def __init__(self, source, vocabulary: Optional[MatchingVocabulary] = None, strict: bool = False):
        self.source = source
        self.strict = strict
        self.vocabulary = vocabulary or MatchingVocabulary()
        self._versions = itertools.count(1)

    @property
    def source_name(self) -> str:
        return getattr(self.source, 'name', type(self.source).__name__)

    def load(self) -> CatalogSnapshot:
        try:
            products = list(self.source.load_active_products())
        except CatalogUnavailable:
            raise
        except Exception as e:
            logger.error(f"Catalog source {self.source_name} is unavailable: {e}")
            raise CatalogUnavailable(f"Cannot load catalog from {self.source_name}: {e}",
                                     self.source_name) from e

        skipped = list(getattr(self.source, 'errors', None) or [])
        if skipped:
            logger.warning(f"Catalog source {self.source_name} skipped {len(skipped)} invalid rows")
            if self.strict:
                raise CatalogUnavailable(
                    f"Catalog {self.source_name} has {len(skipped)} invalid rows: {skipped[0]['error']}",
                    self.source_name)

        snapshot = CatalogSnapshot.build(products, self.vocabulary, version=next(self._versions),
                                         source_name=self.source_name, loader=self,
                                         skipped_rows=skipped)
        logger.info(f"Catalog snapshot v{snapshot.version} built with {len(snapshot)} products "
                    f"from {self.source_name}")
        return snapshot


class CatalogCache:
    """
    Holds the current snapshot for callers that share one across requests.

    refresh() swaps the whole snapshot under a lock; readers get either the
    old or the new one, never a mix.
    """

    def __init__(self, loader: CatalogLoader):
        self.loader = loader
        self._lock = threading.Lock()
        self._snapshot: Optional[CatalogSnapshot] = None

    @property
    def snapshot(self) -> Optional[CatalogSnapshot]:
        return self._snapshot

    def get(self) -> CatalogSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = self.refresh()
        return snapshot

    def refresh(self, allow_stale: bool = False) -> CatalogSnapshot:
        """
        Load a new snapshot. With allow_stale, a failed load returns the
        current snapshot instead of raising, if there is one.
        """
        try:
            snapshot = self.loader.load()
        except CatalogUnavailable:
            current = self._snapshot
            if allow_stale and current is not None:
                logger.warning(f"Catalog refresh failed; keeping snapshot v{current.version}")
                return current
            raise
        with self._lock:
            self._snapshot = snapshot
        return snapshot
