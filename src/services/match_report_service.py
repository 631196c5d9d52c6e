#!/usr/bin/env python3
"""
Match report: tabulates the outcomes of a run so users can review which rows
were filled, by which tier, and how Total rows compare with the draft.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from models.base_models import MatchKind, MatchOutcome

REPORT_COLUMNS = [
    'Row', 'Item', 'Description', 'Total Row', 'Matched', 'Match Kind',
    'Draft Sheet', 'Draft Row', 'Draft Item', 'Draft Description',
    'Rate', 'Amount', 'Qty', 'Amount Formula', 'Calculated Total', 'Draft Total',
    'Score', 'Similarity'
]


class MatchReportService:
    """Builds pandas frames and report files from match outcomes"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def build_frame(self, outcomes: List[MatchOutcome]) -> pd.DataFrame:
        rows = []
        for outcome in outcomes:
            target = outcome.target
            source = outcome.source
            rows.append({
                'Row': target.row_number,
                'Item': target.item,
                'Description': target.description,
                'Total Row': target.is_total_row,
                'Matched': outcome.matched,
                'Match Kind': outcome.match_kind.value,
                'Draft Sheet': source.sheet_name if source else None,
                'Draft Row': source.row_number if source else None,
                'Draft Item': source.item if source else None,
                'Draft Description': source.description if source else None,
                'Rate': outcome.written_rate if outcome.written_rate is not None else outcome.rate,
                'Amount': outcome.written_amount if outcome.written_amount is not None else outcome.amount,
                'Qty': outcome.written_qty if outcome.written_qty is not None else outcome.qty,
                'Amount Formula': outcome.amount_formula,
                'Calculated Total': outcome.calculated_total,
                'Draft Total': outcome.draft_total,
                'Score': outcome.score,
                'Similarity': outcome.similarity
            })
        return pd.DataFrame(rows, columns=REPORT_COLUMNS)

    def summary(self, outcomes: List[MatchOutcome]) -> Dict[str, Any]:
        """Counts per kind plus a comparison of every filled Total row"""
        total = len(outcomes)
        matched = sum(1 for outcome in outcomes if outcome.matched)
        by_kind = {kind.value: 0 for kind in MatchKind}
        for outcome in outcomes:
            by_kind[outcome.match_kind.value] += 1

        totals = []
        for outcome in outcomes:
            if not outcome.target.is_total_row or outcome.calculated_total is None:
                continue
            difference = None
            if outcome.draft_total is not None:
                difference = round(outcome.calculated_total - outcome.draft_total, 2)
            totals.append({
                'row': outcome.target.row_number,
                'formula': outcome.total_formula,
                'calculated': outcome.calculated_total,
                'draft': outcome.draft_total,
                'difference': difference
            })

        return {
            'total': total,
            'matched': matched,
            'unmatched': total - matched,
            'match_rate': round(matched / total * 100, 1) if total else 0.0,
            'by_kind': by_kind,
            'totals': totals
        }

    def export(self, outcomes: List[MatchOutcome], path: str) -> str:
        """Write the report as .csv, or as .xlsx with Matches and Summary sheets"""
        output = Path(path)
        output.parent.mkdir(parents=True, exist_ok=True)
        df = self.build_frame(outcomes)

        if output.suffix.lower() == '.csv':
            df.to_csv(output, index=False)
        else:
            summary = self.summary(outcomes)
            summary_df = pd.DataFrame(
                [{'Metric': 'Rows to fill', 'Value': summary['total']},
                 {'Metric': 'Matched', 'Value': summary['matched']},
                 {'Metric': 'Unmatched', 'Value': summary['unmatched']},
                 {'Metric': 'Match rate (%)', 'Value': summary['match_rate']}]
                + [{'Metric': f"Kind: {kind}", 'Value': count} for kind, count in summary['by_kind'].items()]
            )
            with pd.ExcelWriter(output, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name='Matches', index=False)
                summary_df.to_excel(writer, sheet_name='Summary', index=False)
                if summary['totals']:
                    pd.DataFrame(summary['totals']).to_excel(writer, sheet_name='Totals', index=False)

        self.logger.info(f"Match report written to {output}")
        return str(output)
