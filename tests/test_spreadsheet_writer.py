import unittest

from lxml import etree

from models.base_models import ColumnMap, MatchKind, MatchOutcome, SourceRow, TargetLine
from src.codec import open_container, repack, resolve_sheet
from src.errors import WriteError
from src.writer import SpreadsheetWriter, estimate_width, format_number

from workbook_fixtures import (
    NS_MAIN, blank_cell, inline_cell, number_cell, part_bytes, raw_workbook, sheet_cell, worksheet_xml
)

COLUMNS = ColumnMap(item=0, description=1, rate=2, amount=3)
SHEET_PART = 'xl/worksheets/sheet1.xml'


def build_target(rows_xml: str) -> bytes:
    return raw_workbook(
        [('Bill', '1', SHEET_PART)],
        part_xml={SHEET_PART: worksheet_xml(rows_xml)},
        workbook_extra='<definedNames><definedName name="x">Bill!$A$1</definedName></definedNames>'
    )


HEADER = (f'<row r="1">{inline_cell("A1", "Item")}{inline_cell("B1", "Description")}'
          f'{inline_cell("C1", "Rate")}{inline_cell("D1", "Amount")}</row>')


def outcome(row, item, description, rate, amount, matched=True, item_blank=False,
            description_blank=False, amount_formula=False):
    target = TargetLine(item=item, description=description, row_number=row, rate_column=2,
                        amount_column=3, item_cell_blank=item_blank,
                        description_cell_blank=description_blank,
                        amount_has_formula=amount_formula)
    if not matched:
        return MatchOutcome(target=target)
    source = SourceRow(item=item, description=description, rate=rate, amount=amount)
    return MatchOutcome(target=target, source=source, matched=True, match_kind=MatchKind.EXACT,
                        rate=rate, amount=amount)


class SpreadsheetWriterTests(unittest.TestCase):
    def setUp(self):
        self.writer = SpreadsheetWriter()

    def apply(self, data, outcomes):
        container = open_container(data)
        ref = resolve_sheet(container)
        mutated, enriched = self.writer.apply(container, ref, outcomes, COLUMNS)
        return repack(container, mutated), mutated, enriched

    def test_no_writable_outcome_keeps_bytes_identical(self):
        data = build_target(HEADER + f'<row r="2">{inline_cell("A2", "1")}{blank_cell("C2")}</row>')
        output, mutated, enriched = self.apply(data, [outcome(2, '1', 'Pipe', None, None, matched=False)])
        self.assertEqual(mutated, {})
        self.assertEqual(output, data)
        self.assertFalse(enriched[0].matched)

    def test_values_replace_blank_styled_cells(self):
        data = build_target(
            HEADER
            + f'<row r="2">{inline_cell("A2", "1")}{inline_cell("B2", "Pipe", style=2)}'
              f'{blank_cell("C2")}{blank_cell("D2")}</row>'
        )
        output, mutated, enriched = self.apply(data, [outcome(2, '1', 'Pipe', 50, 500)])

        rate = sheet_cell(output, 'C2')
        amount = sheet_cell(output, 'D2')
        self.assertEqual(rate.findtext(f'{{{NS_MAIN}}}v'), '50')
        self.assertEqual(amount.findtext(f'{{{NS_MAIN}}}v'), '500')
        self.assertNotIn('s', rate.attrib)
        self.assertNotIn('s', amount.attrib)
        self.assertIsNone(amount.find(f'{{{NS_MAIN}}}f'))
        self.assertEqual(sheet_cell(output, 'B2').get('s'), '2')

        self.assertEqual(enriched[0].written_rate, 50)
        self.assertEqual(enriched[0].written_amount, 500)
        self.assertNotIn(b'ns0:', mutated[SHEET_PART])

    def test_missing_rows_and_cells_are_inserted_in_order(self):
        data = build_target(
            HEADER
            + f'<row r="2">{inline_cell("A2", "1")}{inline_cell("B2", "Pipe")}</row>'
            + f'<row r="5">{inline_cell("A5", "3")}</row>'
        )
        output, _, _ = self.apply(data, [
            outcome(2, '1', 'Pipe', 12.5, 25),
            outcome(4, '2', 'Valve', 7, 14, item_blank=True, description_blank=True),
        ])

        root = etree.fromstring(part_bytes(output, SHEET_PART))
        rows = root.findall(f'.//{{{NS_MAIN}}}row')
        self.assertEqual([row.get('r') for row in rows], ['1', '2', '4', '5'])
        self.assertEqual([c.get('r') for c in rows[1]], ['A2', 'B2', 'C2', 'D2'])
        self.assertEqual([c.get('r') for c in rows[2]], ['A4', 'B4', 'C4', 'D4'])

        self.assertEqual(sheet_cell(output, 'C2').findtext(f'{{{NS_MAIN}}}v'), '12.5')
        item = sheet_cell(output, 'A4')
        self.assertEqual(item.get('t'), 'inlineStr')
        self.assertEqual(item.findtext(f'{{{NS_MAIN}}}is/{{{NS_MAIN}}}t'), '2')
        self.assertEqual(sheet_cell(output, 'B4').findtext(f'{{{NS_MAIN}}}is/{{{NS_MAIN}}}t'), 'Valve')

        children = [etree.QName(child).localname for child in root]
        self.assertLess(children.index('cols'), children.index('sheetData'))

    def test_existing_items_are_never_overwritten(self):
        data = build_target(HEADER + f'<row r="2">{inline_cell("A2", "1.1")}{inline_cell("B2", "Pipe")}</row>')
        output, _, _ = self.apply(data, [outcome(2, '1.1', 'Pipe', 3, 3)])
        self.assertEqual(sheet_cell(output, 'A2').findtext(f'{{{NS_MAIN}}}is/{{{NS_MAIN}}}t'), '1.1')

    def test_shared_formula_is_kept_and_cached_value_updated(self):
        data = build_target(
            HEADER
            + f'<row r="2">{inline_cell("A2", "1")}{number_cell("B2", 10)}{blank_cell("C2")}'
              f'<c r="D2" s="1"><f t="shared" ref="D2:D3" si="0">B2*C2</f><v>0</v></c></row>'
        )
        output, _, enriched = self.apply(data, [outcome(2, '1', '', 5, 50, amount_formula=True)])

        amount = sheet_cell(output, 'D2')
        formula = amount.find(f'{{{NS_MAIN}}}f')
        self.assertEqual(formula.get('t'), 'shared')
        self.assertEqual(formula.text, 'B2*C2')
        self.assertEqual(amount.findtext(f'{{{NS_MAIN}}}v'), '50')
        self.assertEqual(enriched[0].amount_formula, '=B2*C2')

    def test_calc_pr_is_added_after_its_predecessors(self):
        data = build_target(HEADER + f'<row r="2">{inline_cell("A2", "1")}{blank_cell("C2")}</row>')
        output, _, _ = self.apply(data, [outcome(2, '1', 'Pipe', 1, 1)])

        workbook = etree.fromstring(part_bytes(output, 'xl/workbook.xml'))
        children = [etree.QName(child).localname for child in workbook]
        self.assertEqual(children, ['sheets', 'definedNames', 'calcPr'])
        calc_pr = workbook.find(f'{{{NS_MAIN}}}calcPr')
        self.assertEqual(calc_pr.get('calcMode'), 'auto')
        self.assertEqual(calc_pr.get('fullCalcOnLoad'), '1')

    def test_rows_and_cells_without_references_are_edited_in_place(self):
        header = ''.join(f'<c t="inlineStr"><is><t>{text}</t></is></c>'
                         for text in ('Item', 'Description', 'Rate', 'Amount'))
        line = ('<c t="inlineStr"><is><t>1.1</t></is></c><c t="inlineStr"><is><t>Excavation</t></is></c>'
                '<c s="1"/><c s="1"/>')
        data = build_target(f'<row>{header}</row><row>{line}</row>')
        output, _, enriched = self.apply(data, [outcome(2, '1.1', 'Excavation', 50, 500)])

        root = etree.fromstring(part_bytes(output, SHEET_PART))
        rows = root.findall(f'.//{{{NS_MAIN}}}row')
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1].get('r'), '2')
        self.assertEqual([c.get('r') for c in rows[1]], [None, None, 'C2', 'D2'])
        self.assertEqual(sheet_cell(output, 'C2').findtext(f'{{{NS_MAIN}}}v'), '50')
        self.assertEqual(sheet_cell(output, 'D2').findtext(f'{{{NS_MAIN}}}v'), '500')
        self.assertEqual(enriched[0].written_rate, 50)

    def test_shared_formula_member_reports_no_formula_of_its_own(self):
        data = build_target(
            HEADER
            + f'<row r="3">{inline_cell("A3", "2")}{number_cell("B3", 4)}{blank_cell("C3")}'
              f'<c r="D3" s="1"><f t="shared" si="0"/><v>0</v></c></row>'
        )
        output, _, enriched = self.apply(data, [outcome(3, '2', '', 5, 20, amount_formula=True)])

        formula = sheet_cell(output, 'D3').find(f'{{{NS_MAIN}}}f')
        self.assertEqual(formula.get('t'), 'shared')
        self.assertIsNone(formula.text)
        self.assertEqual(sheet_cell(output, 'D3').findtext(f'{{{NS_MAIN}}}v'), '20')
        self.assertIsNone(enriched[0].amount_formula)

    def test_non_finite_value_fails_the_write(self):
        data = build_target(HEADER + f'<row r="2">{inline_cell("A2", "1")}{blank_cell("C2")}</row>')
        container = open_container(data)
        with self.assertRaises(WriteError):
            self.writer.apply(container, resolve_sheet(container),
                              [outcome(2, '1', 'Pipe', float('nan'), None)], COLUMNS)


class ColumnWidthTests(unittest.TestCase):
    def apply(self, cols_xml, rows_xml, outcomes):
        data = raw_workbook([('Bill', '1', SHEET_PART)],
                            part_xml={SHEET_PART: worksheet_xml(HEADER + rows_xml, extra=cols_xml)})
        container = open_container(data)
        mutated, _ = SpreadsheetWriter().apply(container, resolve_sheet(container), outcomes, COLUMNS)
        root = etree.fromstring(mutated[SHEET_PART])
        return [(c.get('min'), c.get('max'), c.get('width')) for c in root.iter(f'{{{NS_MAIN}}}col')]

    def test_only_written_columns_are_split_out_of_a_range(self):
        cols = self.apply('<cols><col min="1" max="10" width="9" customWidth="1"/></cols>',
                          f'<row r="2">{inline_cell("A2", "1")}{blank_cell("C2")}{blank_cell("D2")}</row>',
                          [outcome(2, '1', 'Pipe', 50, 500)])
        self.assertEqual([(low, high) for low, high, _ in cols], [('1', '2'), ('3', '3'), ('4', '4'), ('5', '10')])
        self.assertEqual(cols[0][2], '9')
        self.assertEqual(cols[3][2], '9')
        self.assertGreater(float(cols[1][2]), 9)
        self.assertGreater(float(cols[2][2]), 9)

    def test_widths_never_shrink(self):
        cols = self.apply('<cols><col min="3" max="3" width="25" customWidth="1"/></cols>',
                          f'<row r="2">{inline_cell("A2", "1")}{blank_cell("C2")}{blank_cell("D2")}</row>',
                          [outcome(2, '1', 'Pipe', 50, 160287)])
        widths = {low: float(width) for low, _, width in cols}
        self.assertGreaterEqual(widths['3'], 25)
        self.assertAlmostEqual(widths['4'], estimate_width(160287), places=2)


class FormattingTests(unittest.TestCase):
    def test_format_number(self):
        self.assertEqual(format_number(500.0), '500')
        self.assertEqual(format_number(12.5), '12.5')
        self.assertEqual(format_number(-3.0), '-3')

    def test_estimate_width_is_clamped(self):
        self.assertEqual(estimate_width(5), 12.0)
        self.assertEqual(estimate_width(10 ** 30), 30.0)
        self.assertGreater(estimate_width(160287.0), estimate_width(160.0))

    def test_format_number_rejects_non_finite(self):
        for value in (float('nan'), float('inf'), float('-inf')):
            with self.assertRaises(WriteError):
                format_number(value)


if __name__ == '__main__':
    unittest.main()
