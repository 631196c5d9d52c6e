#!/usr/bin/env python3
"""
Command line entry point for the BOQ rate filler.

    python main.py match --draft draft.xlsx --target target.xlsx
    python main.py batch --draft draft.xlsx a.xlsx b.xlsx --output-dir out
    python main.py serve --port 5000
    python main.py config show
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from config_manager import ConfigManager
from models.config_models import ConfigSection, ConfigUpdateRequest
from src.batch import ProgressThrottle
from src.services import MatchReportService, RateFillService, count_match_kinds


def setup_logging(debug: bool = False):
    """Setup consistent logging format"""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler('rate_fill.log')
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Fill blank BOQ rates and amounts from a priced draft')
    parser.add_argument('--config', type=str, default=None, help='Path to the configuration JSON file')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')
    commands = parser.add_subparsers(dest='command', required=True)

    match = commands.add_parser('match', help='Fill one target workbook')
    match.add_argument('--draft', required=True, help='Priced draft workbook')
    match.add_argument('--target', required=True, help='Target workbook with blank rates')
    match.add_argument('--output', default=None, help='Output path (default: <target>_filled.xlsx)')
    match.add_argument('--sheet', default=None, help='Target sheet name (default: first sheet)')
    match.add_argument('--report', default=None, help='Write a match report (.xlsx or .csv)')

    batch = commands.add_parser('batch', help='Fill many target workbooks from one draft')
    batch.add_argument('--draft', required=True, help='Priced draft workbook')
    batch.add_argument('targets', nargs='+', help='Target workbooks')
    batch.add_argument('--output-dir', default=None, help='Folder for filled files (default: beside each target)')
    batch.add_argument('--max-concurrency', type=int, default=None, help='Files processed at the same time')

    serve = commands.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--port', type=int, default=5000, help='Port to run the server on')
    serve.add_argument('--host', type=str, default='localhost', help='Host to run the server on')

    config = commands.add_parser('config', help='Show or change the configuration')
    config.add_argument('action', choices=['show', 'set', 'reset'])
    config.add_argument('section', nargs='?', choices=[s.value for s in ConfigSection])
    config.add_argument('values', nargs='*', help='key=value pairs (values parsed as JSON when possible)')

    return parser


def parse_values(pairs: List[str]) -> dict:
    """key=value pairs; JSON values (numbers, booleans, lists) are decoded"""
    values = {}
    for pair in pairs:
        if '=' not in pair:
            raise ValueError(f"Expected key=value, got '{pair}'")
        key, raw = pair.split('=', 1)
        try:
            values[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            values[key.strip()] = raw
    return values


def run_match(args, manager: ConfigManager) -> int:
    service = RateFillService(manager.matching, manager.batch)
    run = service.fill_rates_file(args.draft, args.target, args.output, args.sheet)
    result = run.result

    for line in result.logs:
        print(f"  {line}")
    status = "✅" if result.success else "❌"
    print(f"{status} {result.message}")

    if result.success and run.outcomes:
        kinds = {kind: count for kind, count in count_match_kinds(run.outcomes).items() if count}
        print(f"📊 Match kinds: {kinds}")
        if args.report:
            path = MatchReportService().export(run.outcomes, args.report)
            print(f"📄 Report: {path}")
    return 0 if result.success else 1


def run_batch(args, manager: ConfigManager) -> int:
    service = RateFillService(manager.matching, manager.batch)

    def report_progress(completed: int, total: int, current):
        print(f"  [{completed}/{total}] {current}")

    throttle = ProgressThrottle(report_progress,
                                interval_ms=manager.batch.progress_interval_ms,
                                every=manager.batch.progress_every)
    runs = service.fill_rates_batch(args.draft, args.targets, output_dir=args.output_dir,
                                    max_concurrency=args.max_concurrency, on_progress=throttle)

    for run in runs:
        print(f"✅ {run.output_path}: {run.result.message}")
    failed = len(args.targets) - len(runs)
    if failed:
        print(f"❌ {failed} file(s) failed, see the log for details")
    return 0 if failed == 0 else 1


def run_serve(args) -> int:
    from backend.app import App

    print("🚀 Starting BOQ Rate Fill Server")
    processor = App(config_file_path=args.config)
    processor.run(host=args.host, port=args.port, debug=args.debug)
    return 0


def run_config(args, manager: ConfigManager) -> int:
    if args.action == 'show':
        if args.section:
            config = manager.get_section(ConfigSection(args.section))
        else:
            config = manager.get_all_configs()
        print(json.dumps(config.model_dump(mode='json'), indent=2, ensure_ascii=False))
        return 0
    if args.action == 'reset':
        return 0 if manager.reset_to_defaults() else 1

    if not args.section or not args.values:
        print("❌ config set needs a section and at least one key=value")
        return 2
    try:
        request = ConfigUpdateRequest(section=args.section, values=parse_values(args.values))
    except ValueError as e:
        print(f"❌ {e}")
        return 2
    if manager.update_config(request):
        print(f"✅ Updated {args.section}")
        return 0
    print("❌ Failed to update configuration")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    if args.command == 'serve':
        return run_serve(args)

    manager = ConfigManager(args.config)
    if args.command == 'match':
        return run_match(args, manager)
    if args.command == 'batch':
        return run_batch(args, manager)
    return run_config(args, manager)


if __name__ == "__main__":
    sys.exit(main())
