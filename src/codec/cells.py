#!/usr/bin/env python3
"""
Cell level reading: shared strings, cell text, typed cell values and rows.
"""

import logging
import re
from typing import Iterator, List, Optional, Tuple

from lxml import etree
from openpyxl.utils import get_column_letter, column_index_from_string

from models.base_models import (
    CellValue, TextValue, NumberValue, FormulaValue, EmptyValue, SheetRow, parse_float
)
from src.codec.container import Container, SHARED_STRINGS_PART, main_namespace

CELL_REF_RE = re.compile(r'^\$?([A-Za-z]{1,3})\$?(\d+)$')

logger = logging.getLogger(__name__)


def column_letter(index: int) -> str:
    """0-based column index -> letters"""
    return get_column_letter(index + 1)


def column_index(letters: str) -> int:
    """Column letters -> 0-based index"""
    return column_index_from_string(letters.upper()) - 1


def cell_ref(column: int, row: int) -> str:
    return f"{column_letter(column)}{row}"


def split_cell_ref(ref: str) -> Optional[Tuple[int, int]]:
    """'C12' -> (2, 12); None for anything that is not a plain cell reference"""
    match = CELL_REF_RE.match(ref or '')
    if not match:
        return None
    return column_index(match.group(1)), int(match.group(2))


def _join_runs(element: etree._Element, ns: str) -> str:
    """Concatenate every <t> run of a string item, leaving out phonetic hints"""
    texts = []
    for t in element.iter(f'{{{ns}}}t'):
        parent = t.getparent()
        if parent is not None and etree.QName(parent).localname == 'rPh':
            continue
        texts.append(t.text or '')
    return ''.join(texts)


def read_shared_strings(container: Container) -> List[str]:
    """One entry per <si>, rich text runs joined; empty when the part is absent"""
    if not container.has_part(SHARED_STRINGS_PART):
        return []
    root = container.xml(SHARED_STRINGS_PART)
    ns = main_namespace(root)
    strings = [_join_runs(si, ns) for si in root.iterchildren(f'{{{ns}}}si')]
    logger.debug(f"Loaded {len(strings)} shared strings")
    return strings


def cell_text(cell: etree._Element, shared_strings: List[str]) -> Optional[str]:
    """
    Text of a <c> element.

    inlineStr joins the <is> runs, t="s" indexes the shared string table
    (an unparsable or out-of-range index gives None), anything else returns
    the literal <v> text.
    """
    ns = etree.QName(cell).namespace or ''
    cell_type = cell.get('t')

    if cell_type == 'inlineStr':
        inline = cell.find(f'{{{ns}}}is')
        if inline is None:
            return None
        return _join_runs(inline, ns)

    value = cell.find(f'{{{ns}}}v')
    if value is None or value.text is None:
        return None

    if cell_type == 's':
        try:
            index = int(value.text.strip())
        except ValueError:
            return None
        if 0 <= index < len(shared_strings):
            return shared_strings[index]
        return None

    return value.text


def cell_value(cell: etree._Element, shared_strings: List[str]) -> CellValue:
    """Classify a <c> element into Text, Number, Formula or Empty"""
    ns = etree.QName(cell).namespace or ''
    formula = cell.find(f'{{{ns}}}f')
    text = cell_text(cell, shared_strings)

    if formula is not None:
        return FormulaValue(formula=formula.text or '', cached=text)

    if text is None or not text.strip():
        return EmptyValue()

    if cell.get('t') in (None, 'n'):
        value = parse_float(text)
        if value is not None:
            return NumberValue(value=value, raw=text)

    return TextValue(text=text)


def sheet_data(sheet_root: etree._Element) -> Optional[etree._Element]:
    ns = main_namespace(sheet_root)
    return sheet_root.find(f'{{{ns}}}sheetData')


def numbered_rows(data: etree._Element, ns: str) -> Iterator[Tuple[int, etree._Element]]:
    """(row number, <row>) in document order; a row without r follows the previous one"""
    previous_number = 0
    for row in data.iterchildren(f'{{{ns}}}row'):
        try:
            number = int(row.get('r'))
        except (TypeError, ValueError):
            number = previous_number + 1
        previous_number = number
        yield number, row


def numbered_cells(row: etree._Element, ns: str) -> Iterator[Tuple[int, etree._Element]]:
    """(0-based column, <c>) in document order; a cell without r follows the previous one"""
    previous_column = -1
    for cell in row.iterchildren(f'{{{ns}}}c'):
        position = split_cell_ref(cell.get('r', ''))
        column = position[0] if position else previous_column + 1
        previous_column = column
        yield column, cell


def read_rows(sheet_root: etree._Element, shared_strings: List[str]) -> List[SheetRow]:
    """All <row> elements of a worksheet as SheetRows in document order"""
    data = sheet_data(sheet_root)
    if data is None:
        return []

    ns = main_namespace(sheet_root)
    rows = []
    for number, row in numbered_rows(data, ns):
        cells = {column: cell_value(cell, shared_strings) for column, cell in numbered_cells(row, ns)}
        rows.append(SheetRow(number=number, cells=cells))
    return rows
