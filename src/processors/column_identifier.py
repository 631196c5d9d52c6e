#!/usr/bin/env python3
"""
Header row detection and semantic column mapping.
"""

import logging
from typing import Dict, List, Optional, Tuple

from fuzzywuzzy import fuzz

from models.base_models import ColumnMap, SheetRow
from models.config_models import MatchingConfig
from src.codec.cells import column_letter
from src.processors.text_utils import normalize_text

KEYWORD_FIELDS = ('item', 'description', 'unit', 'qty')
SIMILARITY_FIELDS = ('rate', 'amount')
REQUIRED_FIELDS = ('item', 'description', 'rate', 'amount')


class ColumnIdentifier:
    """Maps Item/Description/Unit/Qty/Rate/Amount headers to column indices"""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.logger = logging.getLogger(self.__class__.__name__)

        synonyms = self.config.synonyms.model_dump()
        self.synonyms: Dict[str, List[str]] = {
            field: [normalize_text(s) for s in values if normalize_text(s)]
            for field, values in synonyms.items()
        }

    def identify_columns(self, row: SheetRow) -> Optional[ColumnMap]:
        """Column map for one candidate header row, or None if a required field is missing"""
        headers = {}
        for column in sorted(row.cells):
            text = normalize_text(row.text(column))
            if text:
                headers[column] = text
        if not headers:
            return None

        found: Dict[str, int] = {}
        claimed = set()

        # Exact header text first so that "Unit Rate" or "Quantity" cannot be
        # taken by a shorter keyword of another field.
        for column, text in headers.items():
            for field in KEYWORD_FIELDS + SIMILARITY_FIELDS:
                if field not in found and text in self.synonyms[field]:
                    found[field] = column
                    claimed.add(column)
                    break

        for column, text in headers.items():
            if column in claimed:
                continue
            for field in KEYWORD_FIELDS:
                if field not in found and self._contains_synonym(text, field):
                    found[field] = column
                    claimed.add(column)
                    break

        threshold = self.config.thresholds.header_similarity
        for column, text in headers.items():
            if column in claimed:
                continue
            for field in SIMILARITY_FIELDS:
                if field not in found and self.best_similarity(text, field) > threshold:
                    found[field] = column
                    claimed.add(column)
                    break

        if any(field not in found for field in REQUIRED_FIELDS):
            return None

        return ColumnMap(
            item=found['item'],
            description=found['description'],
            unit=found.get('unit', -1),
            qty=found.get('qty', -1),
            rate=found['rate'],
            amount=found['amount']
        )

    def find_header(self, rows: List[SheetRow]) -> Optional[Tuple[int, ColumnMap]]:
        """First row within the scan window that yields a valid column map"""
        for row in rows[:self.config.header_scan_rows]:
            column_map = self.identify_columns(row)
            if column_map is not None:
                self.logger.debug(f"Header found on row {row.number}: {describe_columns(column_map)}")
                return row.number, column_map
        return None

    def best_similarity(self, text: str, field: str) -> float:
        """Best Levenshtein ratio (0-1) of a normalized header against a field's synonyms"""
        best = 0
        for synonym in self.synonyms[field]:
            best = max(best, fuzz.ratio(text, synonym))
        return best / 100.0

    def _contains_synonym(self, text: str, field: str) -> bool:
        # single-letter synonyms only count as exact headers
        return any(len(s) > 1 and s in text for s in self.synonyms[field])


def identify_columns(row: SheetRow, config: Optional[MatchingConfig] = None) -> Optional[ColumnMap]:
    return ColumnIdentifier(config).identify_columns(row)


def describe_columns(column_map: ColumnMap) -> str:
    """Readable column letters for logs"""
    def letter(index: int) -> str:
        return column_letter(index) if index >= 0 else '-'

    return (f"Item={letter(column_map.item)}, Description={letter(column_map.description)}, "
            f"Unit={letter(column_map.unit)}, Qty={letter(column_map.qty)}, "
            f"Rate={letter(column_map.rate)}, Amount={letter(column_map.amount)}")
