"""
Writes match outcomes back into worksheet XML
"""

from .spreadsheet_writer import SpreadsheetWriter, format_number, estimate_width

__all__ = [
    'SpreadsheetWriter',
    'format_number',
    'estimate_width'
]
