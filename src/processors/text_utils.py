#!/usr/bin/env python3
"""
Text keys shared by column identification, row scanning and matching.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

_WHITESPACE_RE = re.compile(r'\s+')
_PARENS_RE = re.compile(r'[()（）]')


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, remove all whitespace and ASCII/full-width parentheses"""
    if not text:
        return ""
    normalized = _WHITESPACE_RE.sub('', str(text).lower())
    return _PARENS_RE.sub('', normalized)


def row_key(item: str, description: str) -> str:
    """Primary draft key: normalized "item|description" """
    return normalize_text(f"{item}|{description}")


def item_key(item: Optional[str]) -> str:
    """
    Numeric-equivalence key for an item number.

    Items that parse as decimals lose trailing zeros, so "1.90" and "1.9"
    collide, as do "6" and "6.0". Multi-dot items such as "3.6.1" keep their
    normalized text.
    """
    text = normalize_text(item)
    if not text:
        return ""
    try:
        number = Decimal(text)
    except InvalidOperation:
        return text
    if not number.is_finite():
        return text
    return format(number.normalize(), 'f')


def increment_item(item: str) -> str:
    """Next item number after item: "5" -> "5.1", "5.1" -> "5.2", "5.2.1" -> "5.2.2" """
    base = item.strip().rstrip('.')
    segments = base.split('.')
    if len(segments) == 1:
        return f"{base}.1"
    try:
        last = int(segments[-1])
    except ValueError:
        return f"{base}.1"
    segments[-1] = str(last + 1)
    return '.'.join(segments)


def contains_keyword(keyword: str, *texts: str) -> bool:
    """Case-insensitive containment of keyword in any of texts"""
    keyword = keyword.lower()
    return any(keyword in (text or '').lower() for text in texts)
