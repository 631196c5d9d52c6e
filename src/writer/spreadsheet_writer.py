#!/usr/bin/env python3
"""
Spreadsheet writer: applies match outcomes to the target worksheet XML.

Only the cells that receive a value are modified. Their style reference is
dropped on the rate and amount columns so the highlighted "to fill" background
disappears; every other node of the worksheet is left as it was.
"""

import copy
import logging
import math
from typing import Dict, List, Optional, Tuple

from lxml import etree

from models.base_models import ColumnMap, MatchOutcome, SheetRef
from src.codec.cells import cell_ref, cell_text, numbered_cells, numbered_rows, read_shared_strings
from src.codec.container import (
    Container, WORKBOOK_PART, main_namespace, serialize_xml
)
from src.errors import WriteError
from src.processors.text_utils import contains_keyword

XML_SPACE = '{http://www.w3.org/XML/1998/namespace}space'

# Workbook children that may precede <calcPr>
CALC_PR_PREDECESSORS = (
    'fileVersion', 'fileSharing', 'workbookPr', 'workbookProtection', 'bookViews',
    'sheets', 'functionGroups', 'externalReferences', 'definedNames'
)

WIDTH_FACTOR = 1.2
MIN_WIDTH = 12.0
MAX_WIDTH = 30.0


def format_number(value: float) -> str:
    """Serialized <v> form of a number: integers without a trailing .0"""
    if not math.isfinite(value):
        raise WriteError(f"Cannot write non-finite number {value!r}")
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


def estimate_width(value: float) -> float:
    """Column width for a currency rendering like $160,287.00"""
    digits = len(str(int(abs(value))))
    thousands = (digits - 1) // 3
    chars = 1 + digits + thousands + 1 + 2
    return min(max(chars * WIDTH_FACTOR, MIN_WIDTH), MAX_WIDTH)


class SpreadsheetWriter:
    """Writes matched values, derived formulas and column widths into a target sheet"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def apply(self, container: Container, sheet_ref: SheetRef, outcomes: List[MatchOutcome],
              column_map: ColumnMap,
              first_data_row: Optional[int] = None) -> Tuple[Dict[str, bytes], List[MatchOutcome]]:
        """
        Return (mutated parts, enriched outcomes).

        No mutated parts are returned when nothing needs writing, so repacking
        gives back the input bytes unchanged. Any failure raises WriteError.
        """
        try:
            return self._apply(container, sheet_ref, outcomes, column_map, first_data_row)
        except WriteError:
            raise
        except Exception as e:
            self.logger.error(f"Error writing sheet '{sheet_ref.name}': {e}", exc_info=True)
            raise WriteError(f"Failed to write sheet '{sheet_ref.name}': {e}")

    def _apply(self, container: Container, sheet_ref: SheetRef, outcomes: List[MatchOutcome],
               column_map: ColumnMap,
               first_data_row: Optional[int]) -> Tuple[Dict[str, bytes], List[MatchOutcome]]:
        if not any(outcome.matched and outcome.source is not None for outcome in outcomes):
            return {}, outcomes

        sheet_root = container.fresh_xml(sheet_ref.part_path)
        ns = main_namespace(sheet_root)
        sheet_data = sheet_root.find(f'{{{ns}}}sheetData')
        if sheet_data is None:
            raise WriteError(f"Sheet '{sheet_ref.name}' has no sheetData")

        shared_strings = read_shared_strings(container)
        total_rows = self._find_total_rows(sheet_data, ns, column_map, shared_strings)
        cells_to_update, written = self._plan_writes(outcomes, column_map, total_rows, first_data_row)
        if not cells_to_update:
            return {}, outcomes

        rows = self._row_map(sheet_data, ns)
        created = 0
        for ref, info in sorted(cells_to_update.items(), key=lambda e: (e[1]['row'], e[1]['column'])):
            row_element = rows.get(info['row'])
            if row_element is None:
                row_element = self._insert_row(sheet_data, ns, info['row'])
                rows[info['row']] = row_element
            else:
                row_element.set('r', str(info['row']))

            cell = self._find_cell(row_element, ns, info['column'])
            if cell is None:
                cell = self._insert_cell(row_element, ns, info['column'], ref)
                created += 1
            else:
                cell.set('r', ref)

            kept_formula = self._update_cell(cell, ns, info)
            if info['formula'] and kept_formula != info['formula']:
                values = written[info['outcome']]
                values['amount_formula'] = kept_formula
                if 'total_formula' in values:
                    values['total_formula'] = kept_formula

        self._adjust_column_widths(sheet_root, sheet_data, ns, [column_map.rate, column_map.amount])

        workbook_root = container.fresh_xml(WORKBOOK_PART)
        self._ensure_recalc_on_open(workbook_root)

        self.logger.info(f"Wrote {len(cells_to_update)} cells to '{sheet_ref.name}' ({created} created)")

        enriched = [
            outcome.model_copy(update=written[index]) if index in written else outcome
            for index, outcome in enumerate(outcomes)
        ]
        mutated = {
            sheet_ref.part_path: serialize_xml(sheet_root),
            WORKBOOK_PART: serialize_xml(workbook_root)
        }
        return mutated, enriched

    def _plan_writes(self, outcomes: List[MatchOutcome], column_map: ColumnMap, total_rows: List[int],
                     first_data_row: Optional[int]) -> Tuple[Dict[str, dict], Dict[int, dict]]:
        """Cells to update keyed by reference, and written values per outcome index"""
        cells_to_update: Dict[str, dict] = {}
        written: Dict[int, dict] = {}

        line_rows = [o.target.row_number for o in outcomes if not o.target.is_total_row]
        if first_data_row is None:
            first_data_row = min(line_rows) if line_rows else None
        boundaries = sorted(set(total_rows) | {o.target.row_number for o in outcomes if o.target.is_total_row})

        line_amounts = {
            o.target.row_number: o.amount
            for o in outcomes
            if o.matched and not o.target.is_total_row and o.amount is not None
        }

        def add(column: int, row: int, kind: str, value, formula: Optional[str] = None,
                clear_style: bool = False):
            cells_to_update[cell_ref(column, row)] = {
                'row': row, 'column': column, 'kind': kind, 'value': value,
                'formula': formula, 'clear_style': clear_style, 'outcome': index
            }

        for index, outcome in enumerate(outcomes):
            if not outcome.matched or outcome.source is None:
                continue
            target = outcome.target
            source = outcome.source
            row = target.row_number
            values = {}

            # Never overwrite an existing item, the numbering must stay intact
            if target.item_cell_blank and source.item:
                add(column_map.item, row, 'text', source.item)
            if target.description_cell_blank and source.description:
                add(column_map.description, row, 'text', source.description)
            if column_map.has_unit and not target.unit and source.unit:
                add(column_map.unit, row, 'text', source.unit)

            if column_map.has_qty and outcome.qty is not None:
                add(column_map.qty, row, 'number', outcome.qty)
                values['written_qty'] = outcome.qty

            if outcome.rate is not None:
                add(target.rate_column, row, 'number', outcome.rate, clear_style=True)
                values['written_rate'] = outcome.rate

            total_range = None
            if target.is_total_row and first_data_row is not None:
                total_range = self._total_range(row, boundaries, first_data_row)

            if total_range is not None:
                start, end = total_range
                formula = f"=SUM({cell_ref(target.amount_column, start)}:{cell_ref(target.amount_column, end)})"
                calculated = sum(amount for r, amount in line_amounts.items() if start <= r <= end)
                add(target.amount_column, row, 'number', calculated, formula=formula, clear_style=True)
                values.update({
                    'written_amount': calculated,
                    'amount_formula': formula,
                    'total_formula': formula,
                    'calculated_total': calculated
                })
            elif outcome.amount is not None:
                formula = self._amount_formula(outcome, column_map)
                add(target.amount_column, row, 'number', outcome.amount, formula=formula, clear_style=True)
                values['written_amount'] = outcome.amount
                values['amount_formula'] = formula

            if values:
                written[index] = values

        return cells_to_update, written

    def _total_range(self, row: int, boundaries: List[int], first_data_row: int) -> Optional[Tuple[int, int]]:
        """SUM range for a Total row: after the previous Total row, else from the first data row"""
        previous = None
        for boundary in boundaries:
            if first_data_row <= boundary < row:
                previous = boundary
            elif boundary >= row:
                break
        start = previous + 1 if previous is not None else first_data_row
        end = row - 1
        if start > end:
            return None
        return start, end

    def _amount_formula(self, outcome: MatchOutcome, column_map: ColumnMap) -> Optional[str]:
        target = outcome.target
        has_qty = column_map.has_qty and (target.qty or 0) > 0
        if not (target.amount_has_formula or has_qty):
            return None

        qty_column = column_map.qty if column_map.has_qty else target.rate_column - 1
        if qty_column < 0:
            return None
        row = target.row_number
        return f"={cell_ref(qty_column, row)}*{cell_ref(target.rate_column, row)}"

    def _find_total_rows(self, sheet_data: etree._Element, ns: str, column_map: ColumnMap,
                         shared_strings: List[str]) -> List[int]:
        """Row numbers whose item or description mentions "total" """
        totals = []
        wanted = {column_map.item, column_map.description}
        for number, row in numbered_rows(sheet_data, ns):
            texts = [
                cell_text(cell, shared_strings) or ''
                for column, cell in numbered_cells(row, ns)
                if column in wanted
            ]
            if contains_keyword('total', *texts):
                totals.append(number)
        return totals

    def _row_map(self, sheet_data: etree._Element, ns: str) -> Dict[int, etree._Element]:
        return {number: row for number, row in numbered_rows(sheet_data, ns)}

    def _insert_row(self, sheet_data: etree._Element, ns: str, number: int) -> etree._Element:
        """New <row> placed in row-number order"""
        row = etree.SubElement(sheet_data, f'{{{ns}}}row')
        row.set('r', str(number))
        for existing_number, existing in numbered_rows(sheet_data, ns):
            if existing_number > number:
                existing.addprevious(row)
                break
        return row

    def _find_cell(self, row: etree._Element, ns: str, column: int) -> Optional[etree._Element]:
        for existing_column, cell in numbered_cells(row, ns):
            if existing_column == column:
                return cell
        return None

    def _insert_cell(self, row: etree._Element, ns: str, column: int, ref: str) -> etree._Element:
        """New <c> placed in column order within its row"""
        cell = etree.SubElement(row, f'{{{ns}}}c')
        cell.set('r', ref)
        for existing_column, existing in numbered_cells(row, ns):
            if existing is not cell and existing_column > column:
                existing.addprevious(cell)
                break
        return cell

    def _update_cell(self, cell: etree._Element, ns: str, info: dict) -> Optional[str]:
        """Write one planned value; returns the formula the cell ends up with"""
        kept_formula = None
        if info['kind'] == 'text':
            self._set_inline_string(cell, ns, info['value'])
        elif info['formula']:
            kept_formula = self._set_formula(cell, ns, info['formula'], info['value'])
        else:
            self._set_number(cell, ns, info['value'])

        if info['clear_style'] and 's' in cell.attrib:
            del cell.attrib['s']
        return kept_formula

    def _remove_children(self, cell: etree._Element, ns: str, *names: str):
        for name in names:
            for child in cell.findall(f'{{{ns}}}{name}'):
                cell.remove(child)

    def _set_inline_string(self, cell: etree._Element, ns: str, text: str):
        self._remove_children(cell, ns, 'f', 'v', 'is')
        cell.set('t', 'inlineStr')
        inline = etree.SubElement(cell, f'{{{ns}}}is')
        t = etree.SubElement(inline, f'{{{ns}}}t')
        t.text = text
        if text != text.strip():
            t.set(XML_SPACE, 'preserve')
        self._move_ext_last(cell, ns)

    def _set_number(self, cell: etree._Element, ns: str, value: float):
        text = format_number(value)
        self._remove_children(cell, ns, 'f', 'is')
        if 't' in cell.attrib:
            del cell.attrib['t']
        v = cell.find(f'{{{ns}}}v')
        if v is None:
            v = etree.SubElement(cell, f'{{{ns}}}v')
        v.text = text
        self._move_ext_last(cell, ns)

    def _set_formula(self, cell: etree._Element, ns: str, formula: str, cached: float) -> Optional[str]:
        """
        Write formula with its cached value. A cell that belongs to a shared
        formula group keeps its <f>, other cells of the group depend on it;
        the returned formula is the one actually in the cell.
        """
        text = format_number(cached)
        self._remove_children(cell, ns, 'is')
        if 't' in cell.attrib:
            del cell.attrib['t']

        f = cell.find(f'{{{ns}}}f')
        if f is not None and f.get('t') == 'shared':
            kept = f"={f.text}" if f.text else None
        else:
            if f is not None:
                cell.remove(f)
            f = etree.SubElement(cell, f'{{{ns}}}f')
            f.text = formula.lstrip('=')
            cell.insert(0, f)
            kept = formula

        v = cell.find(f'{{{ns}}}v')
        if v is None:
            v = etree.SubElement(cell, f'{{{ns}}}v')
            f.addnext(v)
        v.text = text
        self._move_ext_last(cell, ns)
        return kept

    def _move_ext_last(self, cell: etree._Element, ns: str):
        ext = cell.find(f'{{{ns}}}extLst')
        if ext is not None:
            cell.append(ext)

    def _adjust_column_widths(self, sheet_root: etree._Element, sheet_data: etree._Element, ns: str,
                              columns: List[int]):
        """Widen (never narrow) the given columns to fit their widest number"""
        widths: Dict[int, float] = {}
        for _, row in numbered_rows(sheet_data, ns):
            for column, cell in numbered_cells(row, ns):
                if column not in columns or cell.get('t') not in (None, 'n'):
                    continue
                v = cell.find(f'{{{ns}}}v')
                if v is None or not (v.text or '').strip():
                    continue
                try:
                    value = float(v.text)
                except ValueError:
                    continue
                if not math.isfinite(value):
                    continue
                widths[column] = max(widths.get(column, 0.0), estimate_width(value))

        if not widths:
            return

        cols = sheet_root.find(f'{{{ns}}}cols')
        if cols is None:
            cols = etree.SubElement(sheet_root, f'{{{ns}}}cols')
            sheet_data.addprevious(cols)

        for column, width in sorted(widths.items()):
            number = column + 1
            covering = None
            for col in cols.iterchildren(f'{{{ns}}}col'):
                try:
                    low, high = int(col.get('min')), int(col.get('max'))
                except (TypeError, ValueError):
                    continue
                if low <= number <= high:
                    covering = col
                    break

            if covering is None:
                col = etree.SubElement(cols, f'{{{ns}}}col')
                col.set('min', str(number))
                col.set('max', str(number))
                col.set('width', f"{width:.2f}")
                col.set('customWidth', '1')
                self._sort_cols(cols, ns)
                continue

            try:
                current = float(covering.get('width', '0'))
            except ValueError:
                current = 0.0
            if width > current:
                own = self._isolate_column(covering, number)
                own.set('width', f"{width:.2f}")
                own.set('customWidth', '1')

        if cols.get('count') is not None:
            cols.set('count', str(len(cols.findall(f'{{{ns}}}col'))))

    def _isolate_column(self, covering: etree._Element, number: int) -> etree._Element:
        """Split <col min..max> around column number; returns the <col> for that column alone"""
        low, high = int(covering.get('min')), int(covering.get('max'))
        if low < number:
            before = copy.deepcopy(covering)
            before.set('max', str(number - 1))
            covering.addprevious(before)
        if number < high:
            after = copy.deepcopy(covering)
            after.set('min', str(number + 1))
            covering.addnext(after)
        covering.set('min', str(number))
        covering.set('max', str(number))
        return covering

    def _sort_cols(self, cols: etree._Element, ns: str):
        ordered = sorted(cols.findall(f'{{{ns}}}col'), key=lambda c: int(c.get('min', '0')))
        for col in ordered:
            cols.append(col)

    def _ensure_recalc_on_open(self, workbook_root: etree._Element):
        """calcMode="auto" and fullCalcOnLoad="1" so emitted formulas recompute on open"""
        ns = main_namespace(workbook_root)
        calc_pr = workbook_root.find(f'{{{ns}}}calcPr')
        if calc_pr is None:
            calc_pr = etree.SubElement(workbook_root, f'{{{ns}}}calcPr')
            anchor = None
            for child in workbook_root.iterchildren(tag=etree.Element):
                if etree.QName(child).localname in CALC_PR_PREDECESSORS:
                    anchor = child
            if anchor is not None:
                anchor.addnext(calc_pr)
        calc_pr.set('calcMode', 'auto')
        calc_pr.set('fullCalcOnLoad', '1')
