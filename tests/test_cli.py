import contextlib
import io
import json
import os
import tempfile
import unittest
from unittest import mock

import main as cli

from test_rate_fill_service import DRAFT, TARGET


class ParseValuesTests(unittest.TestCase):
    def test_json_and_plain_values(self):
        self.assertEqual(cli.parse_values(['max_concurrency=4', 'output_suffix=_priced', 'flag=true']),
                         {'max_concurrency': 4, 'output_suffix': '_priced', 'flag': True})

    def test_missing_equals(self):
        with self.assertRaises(ValueError):
            cli.parse_values(['max_concurrency'])


@mock.patch.object(cli, 'setup_logging')
class CommandTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.config = os.path.join(self.tmp.name, 'config.json')

    def write(self, name, data):
        path = os.path.join(self.tmp.name, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def run_cli(self, *argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = cli.main(['--config', self.config, *argv])
        return code, out.getvalue()

    def test_config_set_and_show(self, _setup_logging):
        code, _ = self.run_cli('config', 'set', 'batch', 'max_concurrency=4')
        self.assertEqual(code, 0)

        code, out = self.run_cli('config', 'show')
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)['batch']['max_concurrency'], 4)

        code, out = self.run_cli('config', 'show', 'matching')
        self.assertEqual(json.loads(out)['header_scan_rows'], 30)

        code, _ = self.run_cli('config', 'set', 'batch', 'max_concurrency=0')
        self.assertEqual(code, 1)

    def test_match_with_report(self, _setup_logging):
        draft = self.write('draft.xlsx', DRAFT)
        target = self.write('target.xlsx', TARGET)
        report = os.path.join(self.tmp.name, 'report.csv')

        code, out = self.run_cli('match', '--draft', draft, '--target', target, '--report', report)
        self.assertEqual(code, 0, out)
        self.assertIn('Matched 3/3', out)
        self.assertTrue(os.path.exists(os.path.join(self.tmp.name, 'target_filled.xlsx')))
        self.assertTrue(os.path.exists(report))

    def test_batch_exit_code_reports_failures(self, _setup_logging):
        draft = self.write('draft.xlsx', DRAFT)
        good = self.write('good.xlsx', TARGET)
        out_dir = os.path.join(self.tmp.name, 'out')

        code, _ = self.run_cli('batch', '--draft', draft, good, '--output-dir', out_dir)
        self.assertEqual(code, 0)
        self.assertTrue(os.path.exists(os.path.join(out_dir, 'good_filled.xlsx')))

        code, out = self.run_cli('batch', '--draft', draft, good, os.path.join(self.tmp.name, 'gone.xlsx'))
        self.assertEqual(code, 1)
        self.assertIn('1 file(s) failed', out)


if __name__ == '__main__':
    unittest.main()
