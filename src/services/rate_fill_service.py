#!/usr/bin/env python3
"""
End-to-end rate fill pipeline.
Codec -> column identification -> row scanning -> reconciliation -> writer,
returning a result summary with an ordered, human-readable log.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from models.base_models import DraftIndex, MatchKind, MatchOutcome, MatchServiceResult, SheetRef
from models.config_models import BatchConfig, MatchingConfig
from src.batch import BatchOrchestrator, CancellationToken
from src.codec import (
    Container, open_container, read_rows, read_shared_strings, repack,
    resolve_all_sheets, resolve_sheet
)
from src.codec.workbook import find_sheet
from src.errors import (
    ColumnIdentificationError, FileAccessError, NoWorkToDoError, RateFillError, WriteError
)
from src.processors import (
    ColumnIdentifier, DraftSheetProcessor, ReconciliationEngine, TargetSheetProcessor,
    build_draft_index
)
from src.processors.column_identifier import describe_columns
from src.writer import SpreadsheetWriter

EXPECTED_HEADERS = "Item, Description, Unit, Qty, Rate, Amount"


class RateFillRun(BaseModel):
    """Everything one pipeline run produced"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    result: MatchServiceResult
    outcomes: List[MatchOutcome] = []
    output: bytes = b''
    sheet_name: Optional[str] = None
    output_path: Optional[str] = None


class RateFillService:
    """Fills blank rate/amount cells of a target workbook from a draft workbook"""

    def __init__(self, matching_config: Optional[MatchingConfig] = None,
                 batch_config: Optional[BatchConfig] = None):
        self.matching_config = matching_config or MatchingConfig()
        self.batch_config = batch_config or BatchConfig()
        self.identifier = ColumnIdentifier(self.matching_config)
        self.writer = SpreadsheetWriter()
        self.logger = logging.getLogger(self.__class__.__name__)

    def fill_rates(self, draft_bytes: bytes, target_bytes: bytes,
                   target_sheet: Optional[str] = None) -> RateFillRun:
        """Run the pipeline on in-memory workbooks; never raises for per-file problems"""
        logs: List[str] = []

        def log(message: str):
            logs.append(message)
            self.logger.info(message)

        log("Starting rate fill")
        try:
            target = open_container(target_bytes)
            target_ref = resolve_sheet(target, target_sheet)
        except RateFillError as e:
            return self._failure(f"Cannot read target file: {e}", logs, target_bytes)
        log(f"Target sheet: '{target_ref.name}' ({target_ref.part_path})")

        try:
            header_row, column_map, lines = self._scan_target(target, target_ref, log)
        except NoWorkToDoError as e:
            log(str(e))
            return RateFillRun(
                result=MatchServiceResult(success=True, message=str(e), logs=logs),
                output=target_bytes,
                sheet_name=target_ref.name
            )
        except RateFillError as e:
            return self._failure(str(e), logs, target_bytes, sheet_name=target_ref.name)

        total_count = len(lines)
        try:
            draft = open_container(draft_bytes)
            draft_index = self._build_draft_index(draft, target_ref.name, log)
        except RateFillError as e:
            return self._failure(f"Cannot read draft file: {e}", logs, target_bytes,
                                 total_count=total_count, sheet_name=target_ref.name)

        engine = ReconciliationEngine(self.matching_config, draft_index=draft_index)
        outcomes = engine.match_all(lines)
        for outcome in outcomes:
            target_line = outcome.target
            if outcome.matched:
                log(f"Row {target_line.row_number} [{outcome.match_kind.value}] "
                    f"{target_line.item} | {target_line.description} -> "
                    f"rate={outcome.rate}, amount={outcome.amount}")
            else:
                log(f"Row {target_line.row_number} unmatched: {target_line.item} | {target_line.description}")
        matched_count = sum(1 for outcome in outcomes if outcome.matched)

        try:
            mutated, enriched = self.writer.apply(target, target_ref, outcomes, column_map,
                                                  first_data_row=header_row + 1)
            output = repack(target, mutated)
        except (WriteError, OSError, ValueError) as e:
            log(f"Write failed, original file kept: {e}")
            return RateFillRun(
                result=MatchServiceResult(
                    success=False,
                    message=f"Matched {matched_count}/{total_count} rows but writing failed: {e}",
                    matched_count=matched_count,
                    total_count=total_count,
                    logs=logs
                ),
                outcomes=outcomes,
                output=target_bytes,
                sheet_name=target_ref.name
            )

        log(f"Updated parts: {', '.join(sorted(mutated)) or 'none'}")
        message = f"Matched {matched_count}/{total_count} rows in sheet '{target_ref.name}'"
        log(message)
        return RateFillRun(
            result=MatchServiceResult(
                success=True,
                message=message,
                matched_count=matched_count,
                total_count=total_count,
                logs=logs
            ),
            outcomes=enriched,
            output=output,
            sheet_name=target_ref.name
        )

    def _scan_target(self, target: Container, target_ref: SheetRef, log: Callable[[str], None]):
        shared_strings = read_shared_strings(target)
        rows = read_rows(target.xml(target_ref.part_path), shared_strings)

        header = self.identifier.find_header(rows)
        if header is None:
            raise ColumnIdentificationError(
                f"Cannot identify the columns of target sheet '{target_ref.name}' within the first "
                f"{self.matching_config.header_scan_rows} rows. The header row should contain "
                f"{EXPECTED_HEADERS}."
            )
        header_row, column_map = header
        log(f"Target header on row {header_row}: {describe_columns(column_map)}")

        processor = TargetSheetProcessor()
        lines = processor.scan(rows, column_map, header_row)
        for message in processor.skipped:
            log(message)
        if not lines:
            raise NoWorkToDoError(f"No rows in sheet '{target_ref.name}' need a rate or amount")
        log(f"Found {len(lines)} target rows to fill")
        return header_row, column_map, lines

    def _build_draft_index(self, draft: Container, target_sheet_name: str,
                           log: Callable[[str], None]) -> DraftIndex:
        sheet = find_sheet(draft, target_sheet_name)
        if sheet is not None:
            refs = [resolve_sheet(draft, sheet['name'])]
            log(f"Using draft sheet '{sheet['name']}'")
        else:
            refs = resolve_all_sheets(draft)
            log(f"No draft sheet named '{target_sheet_name}', reading all {len(refs)} sheets")

        shared_strings = read_shared_strings(draft)
        processor = DraftSheetProcessor()
        draft_map: Dict[str, Any] = {}
        identified = 0
        for ref in refs:
            rows = read_rows(draft.xml(ref.part_path), shared_strings)
            header = self.identifier.find_header(rows)
            if header is None:
                log(f"Draft sheet '{ref.name}': no header row found, skipped")
                continue
            identified += 1
            header_row, column_map = header
            log(f"Draft sheet '{ref.name}' header on row {header_row}: {describe_columns(column_map)}")
            processor.scan(rows, column_map, header_row, ref.name, draft_map=draft_map)

        if identified == 0:
            raise ColumnIdentificationError(
                f"Cannot identify the columns of any draft sheet. The header row should contain "
                f"{EXPECTED_HEADERS}."
            )
        if not draft_map:
            raise NoWorkToDoError("Draft file has no data rows")

        log(f"Draft rows loaded: {len(draft_map)}")
        return build_draft_index(draft_map)

    def _failure(self, message: str, logs: List[str], original: bytes, total_count: int = 0,
                 sheet_name: Optional[str] = None) -> RateFillRun:
        logs.append(f"Error: {message}")
        self.logger.error(message)
        return RateFillRun(
            result=MatchServiceResult(success=False, message=message, total_count=total_count, logs=logs),
            output=original,
            sheet_name=sheet_name
        )

    def fill_rates_file(self, draft_path: str, target_path: str, output_path: Optional[str] = None,
                        target_sheet: Optional[str] = None) -> RateFillRun:
        """
        File based run. The output is written whenever the target could be read
        and matched, unchanged when nothing was filled or the write failed.
        """
        output_path = output_path or self.default_output_path(target_path)
        try:
            draft_bytes = self._read_file(draft_path)
            target_bytes = self._read_file(target_path)
        except RateFillError as e:
            return self._failure(str(e), [], b'')

        run = self.fill_rates(draft_bytes, target_bytes, target_sheet)
        if not run.result.success and not run.outcomes:
            return run

        try:
            self._write_file(output_path, run.output)
        except FileAccessError as e:
            run.result.logs.append(f"Error: {e}")
            return RateFillRun(
                result=run.result.model_copy(update={'success': False, 'message': str(e)}),
                outcomes=run.outcomes,
                output=run.output,
                sheet_name=run.sheet_name
            )

        run.result.logs.append(f"Saved: {output_path}")
        run.output_path = output_path
        return run

    def fill_rates_batch(self, draft_path: str, target_paths: Sequence[str],
                         output_dir: Optional[str] = None,
                         max_concurrency: Optional[int] = None,
                         on_progress: Optional[Callable[[int, int, Any], None]] = None,
                         cancel_token: Optional[CancellationToken] = None) -> List[RateFillRun]:
        """Fill many targets from one draft; failed files are logged and left out"""
        items = list(zip(target_paths, self.batch_output_paths(target_paths, output_dir)))

        def worker(item) -> RateFillRun:
            target_path, output_path = item
            run = self.fill_rates_file(draft_path, target_path, output_path)
            if not run.result.success:
                raise RateFillError(run.result.message, target_path)
            return run

        progress = None
        if on_progress is not None:
            def progress(completed: int, total: int, item):
                on_progress(completed, total, item[0])

        orchestrator = BatchOrchestrator(max_concurrency or self.batch_config.max_concurrency)
        return orchestrator.run(items, worker, on_progress=progress, cancel_token=cancel_token)

    def batch_output_paths(self, target_paths: Sequence[str], output_dir: Optional[str] = None) -> List[str]:
        """One output path per target; a name already taken in the batch gets the item number appended"""
        paths = []
        used = set()
        for index, target_path in enumerate(target_paths):
            output = Path(self.default_output_path(target_path))
            if output_dir:
                output = Path(output_dir) / output.name
            candidate = output
            number = index + 1
            while str(candidate.resolve()) in used:
                candidate = output.with_name(f"{output.stem}_{number}{output.suffix}")
                number += 1
            used.add(str(candidate.resolve()))
            paths.append(str(candidate))
        return paths

    def default_output_path(self, target_path: str) -> str:
        path = Path(target_path)
        return str(path.with_name(f"{path.stem}{self.batch_config.output_suffix}{path.suffix or '.xlsx'}"))

    def _read_file(self, path: str) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            raise RateFillError("File not found", path)
        except PermissionError:
            raise FileAccessError("Permission denied or file is locked", path)
        except OSError as e:
            raise FileAccessError(f"Cannot read file: {e.strerror or e}", path)

    def _write_file(self, path: str, data: bytes):
        try:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(data)
        except PermissionError:
            raise FileAccessError("Cannot save output, permission denied or file is locked", path)
        except OSError as e:
            raise FileAccessError(f"Cannot save output: {e.strerror or e}", path)


def count_match_kinds(outcomes: List[MatchOutcome]) -> Dict[str, int]:
    """Number of outcomes per match kind, in tier order"""
    counts = {kind.value: 0 for kind in MatchKind}
    for outcome in outcomes:
        counts[outcome.match_kind.value] += 1
    return counts
