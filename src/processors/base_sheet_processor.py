#!/usr/bin/env python3
"""
Base sheet processor class that defines the interface for draft and target scanners.
This provides the row filters shared by both sides of a reconciliation run.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from models.base_models import ColumnMap, SheetRow
from src.processors.text_utils import contains_keyword


class BaseSheetProcessor(ABC):
    """Abstract base class for sheet row scanners"""

    REMARK_KEYWORD = 'remark'
    TOTAL_KEYWORD = 'total'

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def scan(self, rows: List[SheetRow], column_map: ColumnMap, header_row: int) -> Any:
        """Walk the data rows below header_row (1-based row number)"""
        pass

    def data_rows(self, rows: List[SheetRow], header_row: int) -> List[SheetRow]:
        return [row for row in rows if row.number > header_row]

    def _is_remark_row(self, item: str, description: str) -> bool:
        """Remark rows are notes, never line items"""
        return contains_keyword(self.REMARK_KEYWORD, item, description)

    def _is_total_row(self, item: str, description: str) -> bool:
        return contains_keyword(self.TOTAL_KEYWORD, item, description)

    def _optional_text(self, row: SheetRow, column: int) -> Optional[str]:
        if column < 0:
            return None
        text = row.text(column)
        return text or None

    def _optional_number(self, row: SheetRow, column: int) -> Optional[float]:
        if column < 0:
            return None
        return row.number_at(column)
