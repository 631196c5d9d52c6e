"""
Rate fill services: the end-to-end pipeline and match reports
"""

from .rate_fill_service import RateFillService, RateFillRun, count_match_kinds
from .match_report_service import MatchReportService

__all__ = [
    'RateFillService',
    'RateFillRun',
    'count_match_kinds',
    'MatchReportService'
]
