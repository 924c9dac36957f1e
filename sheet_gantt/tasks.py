"""Build the canonical task list from ingested rows and a column selection."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from sheet_gantt.dates import DateResolution, as_calendar_date, enforce_order, resolve_end, resolve_start
from sheet_gantt.models import ColumnSelection, Task
from sheet_gantt.standardizer import (
    DateStandardizer,
    NullStandardizer,
    StandardizedBatch,
    standardize_columns,
)

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    rows_in: int = 0
    tasks_out: int = 0
    default_names: int = 0
    start_fallbacks: int = 0
    end_fallbacks: int = 0
    order_corrections: int = 0
    remote_resolved: int = 0
    remote_used: bool = False
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def text_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return " ".join(str(value).split())


def column_values(rows: Sequence[Mapping[str, Any]], column: str) -> list[Any]:
    if not column:
        return [None] * len(rows)
    return [row.get(column) for row in rows]


def _remote_batches(
    standardizer: Optional[DateStandardizer],
    start_values: list[Any],
    end_values: list[Any],
) -> tuple[StandardizedBatch, StandardizedBatch]:
    if standardizer is None or isinstance(standardizer, NullStandardizer) or not start_values:
        skipped = NullStandardizer()
        return skipped.standardize(start_values), skipped.standardize(end_values)
    return standardize_columns(standardizer, start_values, end_values)


def _from_remote(raw: Any, batch: StandardizedBatch, index: int) -> Optional[DateResolution]:
    # cells the spreadsheet already typed as dates are never second-guessed
    if as_calendar_date(raw) is not None:
        return None
    remote = batch.iso_at(index)
    if remote is None:
        return None
    return DateResolution(remote, reason="remote standardization")


def build_tasks_with_report(
    rows: Sequence[Mapping[str, Any]],
    selection: ColumnSelection,
    *,
    standardizer: Optional[DateStandardizer] = None,
    now: Optional[date] = None,
    dayfirst: bool = False,
) -> tuple[list[Task], BuildReport]:
    """
    Turn every row into a Task, in row order, never dropping a row.

    start/end come from, in order: a native date cell, the remote standardizer's
    ISO answer for that row, local parsing of the raw value, and finally the
    substitution rules (today for start, start + 1 day for end). A degraded
    remote batch is ignored entirely, so a failing service gives exactly the
    local-only result.
    """
    rows = list(rows)
    today = now.date() if isinstance(now, datetime) else (now or date.today())
    report = BuildReport(rows_in=len(rows))

    start_values = column_values(rows, selection.start_date)
    end_values = column_values(rows, selection.end_date)
    start_batch, end_batch = _remote_batches(standardizer, start_values, end_values)
    report.remote_used = not (start_batch.degraded and end_batch.degraded)
    remote_requested = standardizer is not None and not isinstance(standardizer, NullStandardizer)
    for label, batch in (("start", start_batch), ("end", end_batch)):
        if remote_requested and batch.degraded:
            report.warnings.append(f"Remote {label} dates not used: {batch.reason}")

    tasks: list[Task] = []
    for index, row in enumerate(rows):
        name = text_value(row.get(selection.description)) if selection.description else ""
        if not name:
            name = f"Task {index + 1}"
            report.default_names += 1

        start_res = _from_remote(start_values[index], start_batch, index) or resolve_start(
            start_values[index], today, dayfirst
        )
        end_res = _from_remote(end_values[index], end_batch, index) or resolve_end(
            end_values[index], start_res.value, dayfirst
        )
        end, corrected = enforce_order(start_res.value, end_res.value)

        report.start_fallbacks += start_res.fallback
        report.end_fallbacks += end_res.fallback
        report.order_corrections += corrected
        report.remote_resolved += (start_res.reason == "remote standardization") + (
            end_res.reason == "remote standardization"
        )
        if corrected:
            logger.debug("Row %d: end %s before start %s; moved to %s", index, end_res.value, start_res.value, end)

        tasks.append(Task(id=str(index), name=name, start=start_res.value, end=end))

    report.tasks_out = len(tasks)
    if report.start_fallbacks or report.end_fallbacks:
        report.warnings.append(
            f"{report.start_fallbacks} start and {report.end_fallbacks} end value(s) "
            "could not be read as dates; defaults were substituted."
        )
    if report.order_corrections:
        report.warnings.append(
            f"{report.order_corrections} task(s) ended before they started; end moved to start + 1 day."
        )
    logger.info(
        "Built %d task(s): %d start fallback(s), %d end fallback(s), %d order correction(s)",
        report.tasks_out,
        report.start_fallbacks,
        report.end_fallbacks,
        report.order_corrections,
    )
    return tasks, report


def build_tasks(
    rows: Sequence[Mapping[str, Any]],
    selection: ColumnSelection,
    *,
    standardizer: Optional[DateStandardizer] = None,
    now: Optional[date] = None,
    dayfirst: bool = False,
) -> list[Task]:
    tasks, _ = build_tasks_with_report(
        rows, selection, standardizer=standardizer, now=now, dayfirst=dayfirst
    )
    return tasks


def tasks_to_records(tasks: Sequence[Task]) -> list[dict[str, Any]]:
    return [task.as_record() for task in tasks]
