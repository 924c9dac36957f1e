"""Glue between Settings and the ingest -> tasks -> workbook components."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from sheet_gantt.config import Settings
from sheet_gantt.models import ColumnSelection, Task
from sheet_gantt.standardizer import DateStandardizer, build_standardizer
from sheet_gantt.tasks import BuildReport, build_tasks_with_report
from sheet_gantt.timeline import TimelinePlan, plan_timeline
from sheet_gantt.workbook import DocumentMeta, export_workbook, render_workbook


def generate_tasks(
    rows: Sequence[Mapping[str, Any]],
    selection: ColumnSelection,
    settings: Settings,
    standardizer: Optional[DateStandardizer] = None,
) -> tuple[list[Task], BuildReport]:
    if standardizer is None:
        standardizer = build_standardizer(settings)
    return build_tasks_with_report(
        rows,
        selection,
        standardizer=standardizer,
        now=settings.resolved_today(),
        dayfirst=settings.dayfirst,
    )


def plan_for(tasks: Sequence[Task], settings: Settings) -> TimelinePlan:
    return plan_timeline(
        tasks,
        buffer_days=settings.buffer_days,
        anchor=settings.resolved_today(),
        empty_span_days=settings.empty_span_days,
    )


def meta_for(settings: Settings, generated_at: Optional[datetime] = None) -> DocumentMeta:
    return DocumentMeta(
        title=settings.title,
        project=settings.project,
        company=settings.company,
        generated_at=generated_at,
        today=settings.resolved_today(),
    )


def render_tasks(tasks: Sequence[Task], settings: Settings, generated_at: Optional[datetime] = None) -> bytes:
    return render_workbook(tasks, plan_for(tasks, settings), meta_for(settings, generated_at))


def export_tasks(
    tasks: Sequence[Task],
    output_path: Path,
    settings: Settings,
    generated_at: Optional[datetime] = None,
) -> Path:
    return export_workbook(tasks, output_path, plan_for(tasks, settings), meta_for(settings, generated_at))
