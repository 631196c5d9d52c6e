import os
import tempfile
import unittest

import pandas as pd

from src.services import MatchReportService, RateFillService

from test_rate_fill_service import DRAFT, TARGET


class MatchReportTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.outcomes = RateFillService().fill_rates(DRAFT, TARGET).outcomes

    def setUp(self):
        self.report = MatchReportService()

    def test_frame_has_one_row_per_outcome(self):
        df = self.report.build_frame(self.outcomes)
        self.assertEqual(len(df), 3)
        self.assertEqual(df['Row'].tolist(), [2, 3, 4])
        self.assertEqual(df['Match Kind'].tolist(), ['exact', 'exact', 'exact'])
        self.assertEqual(df.loc[0, 'Amount Formula'], '=D2*E2')
        self.assertEqual(df.loc[2, 'Calculated Total'], 1500)

    def test_empty_frame_keeps_columns(self):
        df = self.report.build_frame([])
        self.assertTrue(df.empty)
        self.assertIn('Match Kind', df.columns)

    def test_summary(self):
        summary = self.report.summary(self.outcomes)
        self.assertEqual(summary['total'], 3)
        self.assertEqual(summary['matched'], 3)
        self.assertEqual(summary['match_rate'], 100.0)
        self.assertEqual(summary['by_kind']['exact'], 3)
        self.assertEqual(summary['totals'], [{
            'row': 4,
            'formula': '=SUM(F2:F3)',
            'calculated': 1500,
            'draft': 1500,
            'difference': 0
        }])

    def test_export_csv_and_xlsx(self):
        with tempfile.TemporaryDirectory() as tmp:
            csv_path = self.report.export(self.outcomes, os.path.join(tmp, 'report.csv'))
            self.assertEqual(len(pd.read_csv(csv_path)), 3)

            xlsx_path = self.report.export(self.outcomes, os.path.join(tmp, 'nested', 'report.xlsx'))
            sheets = pd.read_excel(xlsx_path, sheet_name=None, engine='openpyxl')
            self.assertEqual(set(sheets), {'Matches', 'Summary', 'Totals'})
            self.assertEqual(len(sheets['Matches']), 3)


if __name__ == '__main__':
    unittest.main()
