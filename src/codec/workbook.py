#!/usr/bin/env python3
"""
Sheet lookup inside a workbook: name -> SheetRef -> worksheet part path.
"""

import logging
import re
from typing import List, Optional

from models.base_models import SheetRef
from src.codec.container import Container, NS_REL, main_namespace
from src.errors import StructureError

SHEET_PART_RE = re.compile(r'^xl/worksheets/sheet(\d+)\.xml$')

logger = logging.getLogger(__name__)


def normalize_sheet_name(name: str) -> str:
    """Lowercase, drop whitespace, underscores and hyphens"""
    return re.sub(r'[\s_\-]', '', name.lower())


def list_sheets(container: Container) -> List[dict]:
    """Declared sheets in workbook order: name, sheetId and relationship id"""
    workbook = container.workbook
    ns = main_namespace(workbook)
    sheets = []
    for position, sheet in enumerate(workbook.findall(f'.//{{{ns}}}sheets/{{{ns}}}sheet')):
        sheets.append({
            'name': sheet.get('name', ''),
            'sheet_id': sheet.get('sheetId', ''),
            'rel_id': sheet.get(f'{{{NS_REL}}}id'),
            'position': position
        })
    if not sheets:
        raise StructureError("Workbook declares no sheets")
    return sheets


def sorted_sheet_parts(container: Container) -> List[str]:
    """sheetN.xml parts ordered by their numeric suffix"""
    numbered = []
    for name in container.part_names:
        match = SHEET_PART_RE.match(name)
        if match:
            numbered.append((int(match.group(1)), name))
    return [name for _, name in sorted(numbered)]


def resolve_sheet_part(container: Container, sheet: dict) -> str:
    """
    Find the worksheet part for a declared sheet.

    Strategy 1 uses the workbook relationship of the sheet, then the literal
    sheet{sheetId}.xml file name. Strategy 2 takes the sheet's position among
    <sheet> elements and indexes into the sheetN.xml parts sorted by number.
    """
    rel_id = sheet.get('rel_id')
    if rel_id:
        target = container.workbook_relationships().get(rel_id)
        if target and container.has_part(target):
            return target

    expected = f"xl/worksheets/sheet{sheet['sheet_id']}.xml"
    if sheet['sheet_id'] and container.has_part(expected):
        return expected

    parts = sorted_sheet_parts(container)
    position = sheet['position']
    if 0 <= position < len(parts):
        logger.debug(f"Sheet '{sheet['name']}' resolved by position {position} -> {parts[position]}")
        return parts[position]

    raise StructureError(f"No worksheet part found for sheet '{sheet['name']}'")


def find_sheet(container: Container, sheet_name: Optional[str] = None) -> Optional[dict]:
    """Declared sheet by exact name, then normalized name; None if no match"""
    sheets = list_sheets(container)
    if sheet_name is None:
        return sheets[0]

    for sheet in sheets:
        if sheet['name'] == sheet_name:
            return sheet

    wanted = normalize_sheet_name(sheet_name)
    for sheet in sheets:
        if normalize_sheet_name(sheet['name']) == wanted:
            return sheet

    return None


def resolve_sheet(container: Container, sheet_name: Optional[str] = None) -> SheetRef:
    """Resolve a sheet by name (first sheet when None or not found)"""
    sheet = find_sheet(container, sheet_name)
    if sheet is None:
        sheet = list_sheets(container)[0]
        logger.info(f"Sheet '{sheet_name}' not found, using first sheet '{sheet['name']}'")

    return SheetRef(
        name=sheet['name'],
        sheet_id=sheet['sheet_id'],
        part_path=resolve_sheet_part(container, sheet),
        position=sheet['position']
    )


def resolve_all_sheets(container: Container) -> List[SheetRef]:
    """Every declared sheet whose part can be resolved"""
    refs = []
    for sheet in list_sheets(container):
        try:
            part_path = resolve_sheet_part(container, sheet)
        except StructureError as e:
            logger.warning(f"Skipping sheet: {e}")
            continue
        refs.append(SheetRef(
            name=sheet['name'],
            sheet_id=sheet['sheet_id'],
            part_path=part_path,
            position=sheet['position']
        ))
    return refs
