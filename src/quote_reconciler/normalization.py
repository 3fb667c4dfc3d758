"""
Text normalization shared by the line parser and the catalog index.
"""

import re
from functools import lru_cache
from typing import List

_PUNCTUATION = re.compile(r'[^\w\s-]')
# hyphens that are not joining two word characters (e.g. a " - " separator)
_LOOSE_HYPHENS = re.compile(r'(?<!\w)-+|-+(?!\w)')
_WHITESPACE = re.compile(r'\s+')


def clean_text(text: str) -> str:
    """Strip punctuation other than hyphens, collapse whitespace and lower-case."""
    if not text:
        return ''
    text = _PUNCTUATION.sub(' ', text)
    text = _LOOSE_HYPHENS.sub(' ', text)
    return _WHITESPACE.sub(' ', text).strip().lower()


def tokenize(text: str) -> List[str]:
    return clean_text(text).split()


@lru_cache(maxsize=1024)
def _keyword_pattern(keyword: str) -> "re.Pattern":
    return re.compile(r'(?<!\w)' + re.escape(keyword) + r'(?!\w)')


def contains_keyword(cleaned_text: str, keyword: str) -> bool:
    """Whole-word (or whole-phrase) containment on already cleaned text."""
    keyword = clean_text(keyword)
    if not keyword or not cleaned_text:
        return False
    return _keyword_pattern(keyword).search(cleaned_text) is not None
