from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from sheet_gantt import __version__ as TOOL_VERSION
from sheet_gantt.column_detector import candidate_columns, detect_columns, validate_selection
from sheet_gantt.config import Settings, config_template, load_settings
from sheet_gantt.contracts import COLUMNS_CONTRACT, EXPORT_CONTRACT, TASKS_CONTRACT, build_run_summary, envelope
from sheet_gantt.errors import ExportIOError, ParseError
from sheet_gantt.loader import LoadedTable, load_file
from sheet_gantt.models import ColumnSelection
from sheet_gantt.pipeline import export_tasks, generate_tasks
from sheet_gantt.tasks import BuildReport, tasks_to_records

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_EXPORT_FAILED = 3

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class SheetGanttArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def timestamp_token() -> str:
    override = os.environ.get("SHEET_GANTT_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(input_path: Path) -> Path:
    return Path.cwd() / "sheet-gantt-output" / f"{input_path.stem}-{timestamp_token()}"


def configure_logging(args: argparse.Namespace) -> None:
    level = getattr(args, "log_level", None)
    if level is None:
        if getattr(args, "quiet", False):
            level = "ERROR"
        elif getattr(args, "verbose", False):
            level = "INFO"
        else:
            level = "WARNING"
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ExportIOError):
        return EXIT_EXPORT_FAILED
    if isinstance(exc, (ParseError, ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    # ConfigError, FileNotFoundError and anything unexpected
    return EXIT_COMMAND_ERROR


def settings_from_args(args: argparse.Namespace) -> Settings:
    remote = None
    if getattr(args, "remote", None) is not None:
        remote = args.remote
    return load_settings(
        Path(args.config) if getattr(args, "config", None) else None,
        buffer_days=getattr(args, "buffer_days", None),
        dayfirst=True if getattr(args, "dayfirst", False) else None,
        remote_enabled=remote,
        title=getattr(args, "title", None),
        project=getattr(args, "project", None),
        company=getattr(args, "company", None),
        today=getattr(args, "today", None),
    )


def selection_from_args(args: argparse.Namespace, table: LoadedTable) -> ColumnSelection:
    selection = detect_columns(table.columns)
    for field_name, override in (
        ("description", args.description),
        ("start_date", args.start),
        ("end_date", args.end),
    ):
        if override is not None:
            if override and override not in table.columns:
                raise CliError(
                    f"Column '{override}' not found. Available: {', '.join(table.columns)}",
                    EXIT_COMMAND_ERROR,
                )
            selection = selection.with_override(field_name, override)
    return selection


def load_input(args: argparse.Namespace) -> tuple[Path, LoadedTable]:
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    return input_path, load_file(input_path)


def render_columns_text(table: LoadedTable, selection: ColumnSelection, notes: list[str]) -> str:
    lines = [
        "sheet-gantt columns",
        f"Format: {table.detected_format}",
        f"Rows: {table.row_count}",
        f"Columns: {', '.join(table.columns)}",
        f"Description: {selection.description or '[not detected]'}",
        f"Start date: {selection.start_date or '[not detected]'}",
        f"End date: {selection.end_date or '[not detected]'}",
    ]
    if table.sheet_name:
        lines.append(f"Sheet: {table.sheet_name}")
    if notes:
        lines.append("Notes:")
        lines.extend(f"- {note}" for note in notes)
    return "\n".join(lines) + "\n"


def render_tasks_text(records: list[dict[str, Any]], report: BuildReport) -> str:
    lines = ["sheet-gantt tasks", f"Rows in: {report.rows_in}", f"Tasks: {report.tasks_out}"]
    for record in records:
        lines.append(
            f"{record['id']:>4}  {record['start']} -> {record['end']}  "
            f"({record['duration_days']}d)  {record['name']}"
        )
    if report.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in report.warnings)
    return "\n".join(lines) + "\n"


def add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--description", default=None, help="Column holding the task description")
    parser.add_argument("--start", default=None, help="Column holding the start date")
    parser.add_argument("--end", default=None, help="Column holding the end date")
    parser.add_argument("--today", default=None, help="Treat this ISO date as today (YYYY-MM-DD)")
    parser.add_argument("--dayfirst", action="store_true", help="Read ambiguous 03/04/2024 as 3 April")
    remote = parser.add_mutually_exclusive_group()
    remote.add_argument("--remote", dest="remote", action="store_true", default=None, help="Use the remote date standardizer")
    remote.add_argument("--no-remote", dest="remote", action="store_false", help="Parse dates locally only")


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Input spreadsheet path (.xlsx, .xlsm, .xls, .csv)")
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None, help="Logging level")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = SheetGanttArgumentParser(prog="sheet-gantt", description="Turn a task spreadsheet into a styled Gantt workbook.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    columns = subparsers.add_parser("columns", help="List columns and the suggested task-field mapping.")
    add_common_arguments(columns)

    tasks = subparsers.add_parser("tasks", help="Print the normalized task list.")
    add_common_arguments(tasks)
    add_selection_arguments(tasks)

    export = subparsers.add_parser("export", help="Write a styled Gantt workbook.")
    add_common_arguments(export)
    add_selection_arguments(export)
    export.add_argument("-o", "--output", help="Output .xlsx path")
    export.add_argument("--out-dir", dest="out_dir", help="Output directory")
    export.add_argument("--force", action="store_true", help="Overwrite an existing output file")
    export.add_argument("--title", default=None, help="Sheet title")
    export.add_argument("--project", default=None, help="Project name for the footer")
    export.add_argument("--company", default=None, help="Company name for the footer")
    export.add_argument("--buffer-days", dest="buffer_days", type=int, default=None, help="Days of padding around the timeline")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="sheet-gantt.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def guarded(handler: Callable[[argparse.Namespace], int], args: argparse.Namespace) -> int:
    """Run one command; report any failure on stderr and map it to an exit code."""
    try:
        return handler(args)
    except Exception as exc:
        logger.debug("%s failed", args.command, exc_info=True)
        eprint(str(exc))
        return classify_backend_exception(exc)


def columns_command(args: argparse.Namespace) -> int:
    input_path, table = load_input(args)
    selection = detect_columns(table.columns)
    notes = table.warnings + validate_selection(selection, table.columns)
    if args.json:
        maybe_emit_json_stdout(envelope(
            COLUMNS_CONTRACT,
            file=input_path.name,
            detected_format=table.detected_format,
            sheet_name=table.sheet_name,
            row_count=table.row_count,
            columns=table.columns,
            selection=selection.as_dict(),
            candidates=candidate_columns(table.columns),
            warnings=notes,
        ), True)
    else:
        emit_human(render_columns_text(table, selection, notes).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def tasks_command(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    input_path, table = load_input(args)
    selection = selection_from_args(args, table)
    tasks, report = generate_tasks(table.rows, selection, settings)
    records = tasks_to_records(tasks)
    if args.json:
        maybe_emit_json_stdout(envelope(
            TASKS_CONTRACT,
            selection=selection.as_dict(),
            tasks=records,
            run_summary=build_run_summary(
                command="tasks",
                input_path=input_path,
                metrics=report.as_dict(),
                warnings=table.warnings + report.warnings,
            ),
        ), True)
    else:
        emit_human(render_tasks_text(records, report).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def export_output_path(args: argparse.Namespace, input_path: Path, settings: Settings) -> Path:
    if args.output:
        target = Path(args.output)
    else:
        out_dir = Path(args.out_dir) if args.out_dir else default_output_dir(input_path)
        target = out_dir / settings.output_filename
    if target.suffix.lower() != ".xlsx":
        raise CliError(f"Output must be an .xlsx file, got {target.name}", EXIT_COMMAND_ERROR)
    if target.exists() and not args.force:
        raise CliError(f"Refusing to overwrite existing output: {target} (use --force)", EXIT_COMMAND_ERROR)
    return target


def export_command(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    input_path, table = load_input(args)
    target = export_output_path(args, input_path, settings)
    selection = selection_from_args(args, table)
    tasks, report = generate_tasks(table.rows, selection, settings)
    written = export_tasks(tasks, target, settings)
    warnings = table.warnings + report.warnings
    if args.json:
        maybe_emit_json_stdout(envelope(
            EXPORT_CONTRACT,
            selection=selection.as_dict(),
            settings=settings.as_dict(),
            run_summary=build_run_summary(
                command="export",
                input_path=input_path,
                output_path=written,
                metrics=report.as_dict(),
                warnings=warnings,
            ),
        ), True)
        return EXIT_SUCCESS

    emit_human(f"Tasks exported: {len(tasks)}", quiet=args.quiet)
    for warning in warnings:
        emit_human(f"Warning: {warning}", quiet=args.quiet)
    emit_human(f"Gantt workbook: {written}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(config_template(), encoding="utf-8")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "columns":
            return guarded(columns_command, args)
        if args.command == "tasks":
            return guarded(tasks_command, args)
        if args.command == "export":
            return guarded(export_command, args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
