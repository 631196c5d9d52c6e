"""
Rate Filler Sheet Processors Package
"""

from .base_sheet_processor import BaseSheetProcessor
from .column_identifier import ColumnIdentifier, identify_columns
from .target_sheet_processor import TargetSheetProcessor, scan_target_rows
from .draft_sheet_processor import DraftSheetProcessor, scan_draft_rows, build_draft_index
from .vector_scoring import VectorScorer
from .reconciliation_engine import ReconciliationEngine, match_rows

__all__ = [
    'BaseSheetProcessor',
    'ColumnIdentifier',
    'identify_columns',
    'TargetSheetProcessor',
    'scan_target_rows',
    'DraftSheetProcessor',
    'scan_draft_rows',
    'build_draft_index',
    'VectorScorer',
    'ReconciliationEngine',
    'match_rows'
]
