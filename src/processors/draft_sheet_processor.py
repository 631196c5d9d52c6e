#!/usr/bin/env python3
"""
Draft sheet scanner: builds the keyed map of rows that supply known rates and amounts.
"""

from typing import Dict, List, Optional

from models.base_models import ColumnMap, DraftIndex, SheetRow, SourceRow
from src.processors.base_sheet_processor import BaseSheetProcessor
from src.processors.text_utils import item_key, normalize_text, row_key

FILLABLE_FIELDS = ('unit', 'qty', 'rate', 'amount')


class DraftSheetProcessor(BaseSheetProcessor):
    """Scans draft rows into a map keyed by normalized "item|description" """

    def scan(self, rows: List[SheetRow], column_map: ColumnMap, header_row: int,
             sheet_name: Optional[str] = None,
             draft_map: Optional[Dict[str, SourceRow]] = None) -> Dict[str, SourceRow]:
        draft_map = {} if draft_map is None else draft_map
        added = 0

        for row in self.data_rows(rows, header_row):
            item = row.text(column_map.item)
            description = row.text(column_map.description)
            if not item and not description:
                continue

            if self._is_remark_row(item, description):
                self.logger.debug(f"Draft row {row.number} skipped: remark")
                continue

            source = SourceRow(
                item=item,
                description=description,
                unit=self._optional_text(row, column_map.unit),
                qty=self._optional_number(row, column_map.qty),
                rate=self._optional_number(row, column_map.rate),
                amount=self._optional_number(row, column_map.amount),
                sheet_name=sheet_name,
                row_number=row.number
            )

            key = row_key(item, description)
            if key in draft_map:
                self.handle_duplicate_item(draft_map[key], source)
                continue

            draft_map[key] = source
            added += 1

        self.logger.info(f"Read {added} draft rows from sheet '{sheet_name}'")
        return draft_map

    def handle_duplicate_item(self, existing: SourceRow, new: SourceRow):
        """First writer wins per field; later rows only fill fields still empty"""
        for field in FILLABLE_FIELDS:
            if getattr(existing, field) is None and getattr(new, field) is not None:
                setattr(existing, field, getattr(new, field))


def scan_draft_rows(rows: List[SheetRow], column_map: ColumnMap, header_row: int,
                    sheet_name: Optional[str] = None) -> Dict[str, SourceRow]:
    return DraftSheetProcessor().scan(rows, column_map, header_row, sheet_name)


def build_draft_index(draft_map: Dict[str, SourceRow]) -> DraftIndex:
    """Secondary indices by item key and by normalized description"""
    by_item: Dict[str, List[SourceRow]] = {}
    by_description: Dict[str, List[SourceRow]] = {}

    for source in draft_map.values():
        key = item_key(source.item)
        if key:
            by_item.setdefault(key, []).append(source)
        description = normalize_text(source.description)
        if description:
            by_description.setdefault(description, []).append(source)

    return DraftIndex(by_key=dict(draft_map), by_item=by_item, by_description=by_description)
