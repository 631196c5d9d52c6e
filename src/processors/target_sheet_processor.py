#!/usr/bin/env python3
"""
Target sheet scanner: finds the line items whose rate or amount still needs a value.
"""

from typing import List, Optional

from models.base_models import ColumnMap, FormulaValue, SheetRow, TargetLine
from src.processors.base_sheet_processor import BaseSheetProcessor
from src.processors.text_utils import increment_item


class TargetSheetProcessor(BaseSheetProcessor):
    """Produces TargetLines for rows with a blank rate or amount"""

    def __init__(self):
        super().__init__()
        self.skipped: List[str] = []

    def scan(self, rows: List[SheetRow], column_map: ColumnMap, header_row: int) -> List[TargetLine]:
        self.skipped = []
        lines = []
        previous_item: Optional[str] = None

        for row in self.data_rows(rows, header_row):
            raw_item = row.text(column_map.item)
            description = row.text(column_map.description)

            if not raw_item and not description:
                continue

            if self._is_remark_row(raw_item, description):
                self._skip(row.number, f"remark row '{description or raw_item}'")
                continue

            is_total = self._is_total_row(raw_item, description)
            item = raw_item
            inferred = False

            if not item and not is_total:
                if previous_item is None:
                    self._skip(row.number, "blank item with no previous item")
                    continue
                item = increment_item(previous_item)
                inferred = True
                self.logger.debug(f"Row {row.number}: inferred item {item} from {previous_item}")

            if item and not is_total:
                previous_item = item

            rate_blank = row.get(column_map.rate).is_blank
            amount_cell = row.get(column_map.amount)
            if not rate_blank and not amount_cell.is_blank:
                continue

            lines.append(TargetLine(
                item=item,
                description=description,
                unit=row.text(column_map.unit) if column_map.has_unit else "",
                qty=self._optional_number(row, column_map.qty),
                row_number=row.number,
                rate_column=column_map.rate,
                amount_column=column_map.amount,
                is_total_row=is_total,
                item_inferred=inferred,
                item_cell_blank=not raw_item,
                description_cell_blank=not description,
                amount_has_formula=isinstance(amount_cell, FormulaValue)
            ))

        self.logger.info(f"Found {len(lines)} target rows needing a fill")
        return lines

    def _skip(self, row_number: int, reason: str):
        message = f"Row {row_number} skipped: {reason}"
        self.skipped.append(message)
        self.logger.debug(message)


def scan_target_rows(rows: List[SheetRow], column_map: ColumnMap, header_row: int) -> List[TargetLine]:
    return TargetSheetProcessor().scan(rows, column_map, header_row)
