"""
Office Open XML spreadsheet codec (raw ZIP + XML access)
"""

from .container import Container, open_container, repack, parse_xml, serialize_xml
from .workbook import resolve_sheet, resolve_sheet_part, resolve_all_sheets, list_sheets
from .cells import read_shared_strings, cell_text, cell_value, read_rows

__all__ = [
    'Container',
    'open_container',
    'repack',
    'parse_xml',
    'serialize_xml',
    'resolve_sheet',
    'resolve_sheet_part',
    'resolve_all_sheets',
    'list_sheets',
    'read_shared_strings',
    'cell_text',
    'cell_value',
    'read_rows'
]
