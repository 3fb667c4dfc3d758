#!/usr/bin/env python3
"""
Tunable settings and the matching vocabulary.

The keyword tables are plain data so a catalog in another language or trade
can ship its own vocabulary as JSON instead of editing the matcher.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUOTE_RECONCILER_"

DEFAULT_CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'switch': ('switch', 'switches'),
    'socket': ('socket', 'sockets', 'outlet'),
    'light': ('light', 'lighting', 'lamp', 'bulb'),
    'fan': ('fan', 'regulator'),
    'dimmer': ('dimmer', 'dimming'),
    'indicator': ('indicator', 'led'),
    'buzzer': ('buzzer', 'bell', 'alarm'),
    'usb': ('usb', 'charger'),
    'telephone': ('telephone', 'phone', 'rj11'),
    'data': ('data', 'ethernet', 'rj45', 'network'),
    'tv': ('tv', 'television', 'coaxial'),
    'audio': ('audio', 'speaker', 'music'),
}

DEFAULT_TECHNICAL_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    'amperage': ('6a', '10a', '13a', '16a', '20a', '25a', '32a'),
    'modules': ('1 module', '2 module', '3 module', '4 module', '6 module', '8 module'),
    'way': ('one-way', 'two-way', 'one way', 'two way', '1 way', '2 way'),
    'voltage': ('110v', '220v', '230v', '240v'),
    'wattage': ('9w', '12w', '18w', '80w', '100w', '500w'),
}


def _as_keyword_table(raw: Mapping[str, Any], name: str) -> Dict[str, Tuple[str, ...]]:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{name} must be a mapping of key -> list of keywords")
    table = {}
    for key, keywords in raw.items():
        if isinstance(keywords, str):
            keywords = [keywords]
        cleaned = tuple(str(k).strip().lower() for k in keywords if str(k).strip())
        if not cleaned:
            raise ConfigurationError(f"{name}[{key!r}] has no keywords")
        table[str(key).strip().lower()] = cleaned
    return table


@dataclass(frozen=True)
class MatchingVocabulary:
    """Keyword -> category and keyword -> attribute-type tables."""
    category_keywords: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_KEYWORDS))
    technical_keywords: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_TECHNICAL_KEYWORDS))

    def __post_init__(self):
        # snapshots share one vocabulary; the tables are read-only views
        for name in ('category_keywords', 'technical_keywords'):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchingVocabulary":
        return cls(
            category_keywords=_as_keyword_table(
                data.get('category_keywords', DEFAULT_CATEGORY_KEYWORDS), 'category_keywords'),
            technical_keywords=_as_keyword_table(
                data.get('technical_keywords', DEFAULT_TECHNICAL_KEYWORDS), 'technical_keywords'),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MatchingVocabulary":
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read vocabulary file {path}: {e}") from e
        logger.info(f"Loaded matching vocabulary from {path}")
        return cls.from_dict(data)


@dataclass(frozen=True)
class ReconcilerSettings:
    """
    Thresholds and knobs for the reconciliation pipeline.

    The numeric defaults were picked empirically; none of them is a business
    rule, so every one can be overridden from a JSON file or the environment.
    """
    fuzzy_accept_threshold: float = 0.6
    review_threshold: float = 0.8
    suggestion_floor: float = 0.3
    field_floor: float = 0.5
    max_alternatives: int = 5
    category_confidence: float = 0.3
    keyword_confidence: float = 0.4
    always_show_alternatives: bool = False
    number_prefix: str = "QT"
    number_retry_attempts: int = 5
    currency_code: str = "INR"
    max_workers: int = 1

    def __post_init__(self):
        for name in ('fuzzy_accept_threshold', 'review_threshold', 'suggestion_floor',
                     'field_floor', 'category_confidence', 'keyword_confidence'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.max_alternatives < 1:
            raise ConfigurationError("max_alternatives must be at least 1")
        if self.number_retry_attempts < 1:
            raise ConfigurationError("number_retry_attempts must be at least 1")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if not self.number_prefix:
            raise ConfigurationError("number_prefix cannot be empty")

    def with_overrides(self, **overrides) -> "ReconcilerSettings":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ReconcilerSettings":
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e
        return cls().with_overrides(**data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 base: Optional["ReconcilerSettings"] = None) -> "ReconcilerSettings":
        """Apply QUOTE_RECONCILER_<FIELD> environment variables on top of base."""
        environ = os.environ if environ is None else environ
        base = base or cls()
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            overrides[f.name] = _coerce(f.name, raw, type(getattr(base, f.name)))
        if overrides:
            logger.debug(f"Settings overridden from environment: {sorted(overrides)}")
        return base.with_overrides(**overrides)


def _coerce(name: str, raw: str, target: type) -> Any:
    try:
        if target is bool:
            lowered = raw.strip().lower()
            if lowered in ('1', 'true', 'yes', 'on'):
                return True
            if lowered in ('0', 'false', 'no', 'off'):
                return False
            raise ValueError(raw)
        return target(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e
