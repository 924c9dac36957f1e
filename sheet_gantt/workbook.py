from __future__ import annotations

import io
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Sequence

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from sheet_gantt import __version__ as TOOL_VERSION
from sheet_gantt.errors import ExportIOError
from sheet_gantt.models import STATUS_COMPLETED, STATUS_CURRENT, STATUS_FUTURE, Task
from sheet_gantt.timeline import ATTRIBUTE_COLUMN_COUNT, TimelineColumn, TimelinePlan, plan_timeline

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
DEFAULT_FILENAME = "gantt_chart.xlsx"
SHEET_TITLE = "Gantt Chart"
DATE_FORMAT = "yyyy-mm-dd"

ATTRIBUTE_HEADERS = ["Task ID", "Task Name", "Start Date", "End Date", "Duration (Days)"]
ATTRIBUTE_WIDTHS = [10, 32, 13, 13, 10]
TIMELINE_WIDTH = 4.5
HEADER_ROW_HEIGHT = 48

HEADER_COLOR = "1565C0"      # blue
TODAY_COLOR = "E53935"       # red
WEEKEND_COLOR = "E0E0E0"     # light grey
ALT_ROW_COLOR = "F5F8FC"     # faint blue
STATUS_COLORS = {
    STATUS_COMPLETED: "4CAF50",  # green
    STATUS_CURRENT: "4285F4",    # blue
    STATUS_FUTURE: "FFB300",     # amber
}
STATUS_LABELS = {
    STATUS_COMPLETED: "Completed",
    STATUS_CURRENT: "In progress",
    STATUS_FUTURE: "Upcoming",
}

FILL_WEEKEND = PatternFill("solid", fgColor=WEEKEND_COLOR)
FILL_ALT_ROW = PatternFill("solid", fgColor=ALT_ROW_COLOR)
FILL_TODAY_HEADER = PatternFill("solid", fgColor=TODAY_COLOR)
STATUS_FILLS = {status: PatternFill("solid", fgColor=color) for status, color in STATUS_COLORS.items()}

THIN = Side(style="thin", color="D0D0D0")
TODAY_SIDE = Side(style="medium", color=TODAY_COLOR)
THIN_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
TODAY_BORDER = Border(left=TODAY_SIDE, right=TODAY_SIDE, top=THIN, bottom=THIN)

LEGEND_ENTRIES = [
    (STATUS_LABELS[STATUS_COMPLETED], STATUS_FILLS[STATUS_COMPLETED]),
    (STATUS_LABELS[STATUS_CURRENT], STATUS_FILLS[STATUS_CURRENT]),
    (STATUS_LABELS[STATUS_FUTURE], STATUS_FILLS[STATUS_FUTURE]),
    ("Weekend", FILL_WEEKEND),
    ("Today", FILL_TODAY_HEADER),
]


@dataclass(frozen=True)
class DocumentMeta:
    title: str = SHEET_TITLE
    project: str = ""
    company: str = ""
    generated_at: Optional[datetime] = None
    today: Optional[date] = None

    def resolved_today(self) -> date:
        return self.today or date.today()

    def resolved_generated_at(self) -> datetime:
        return self.generated_at or datetime.now().replace(microsecond=0)


@dataclass(frozen=True)
class SheetLayout:
    """Every row band and column range of the sheet, computed once."""

    task_count: int
    first_timeline_column: int
    last_timeline_column: int
    title_row: int = 1
    generated_row: int = 2
    count_row: int = 3
    month_row: int = 4
    header_row: int = 5
    first_task_row: int = 6

    @property
    def attribute_columns(self) -> int:
        return ATTRIBUTE_COLUMN_COUNT

    @property
    def last_task_row(self) -> int:
        # an empty sheet still reserves one body row for its message
        return self.first_task_row + max(self.task_count, 1) - 1

    @property
    def legend_row(self) -> int:
        return self.last_task_row + 2

    @property
    def legend_last_row(self) -> int:
        return self.legend_row + len(LEGEND_ENTRIES)

    @property
    def footer_row(self) -> int:
        return self.legend_last_row + 2

    @property
    def filter_ref(self) -> str:
        last_row = self.last_task_row if self.task_count else self.header_row
        return f"A{self.header_row}:{get_column_letter(self.attribute_columns)}{last_row}"

    @property
    def freeze_cell(self) -> str:
        return f"C{self.first_task_row}"

    def task_row(self, index: int) -> int:
        return self.first_task_row + index


def build_layout(task_count: int, plan: TimelinePlan) -> SheetLayout:
    if plan.first_column <= ATTRIBUTE_COLUMN_COUNT:
        raise ValueError(
            f"Timeline must start after the {ATTRIBUTE_COLUMN_COUNT} attribute columns, "
            f"got column {plan.first_column}"
        )
    return SheetLayout(
        task_count=task_count,
        first_timeline_column=plan.first_column,
        last_timeline_column=plan.last_column,
    )


# ── Pure cell styling ──────────────────────────────────────────────────────────

def timeline_header_fill(column: TimelineColumn, today: date) -> PatternFill:
    if column.date == today:
        return FILL_TODAY_HEADER
    if column.is_weekend:
        return FILL_WEEKEND
    return PatternFill("solid", fgColor=HEADER_COLOR)


def timeline_header_font(column: TimelineColumn, today: date) -> Font:
    if column.date == today or not column.is_weekend:
        return Font(bold=True, color="FFFFFF", size=9)
    return Font(bold=True, color="424242", size=9)


def timeline_cell_fill(
    column: TimelineColumn,
    row_offset: int,
    status: Optional[str],
) -> Optional[PatternFill]:
    """Status colour inside the task's span, else weekend / zebra background."""
    if status is not None:
        return STATUS_FILLS[status]
    if column.is_weekend:
        return FILL_WEEKEND
    if row_offset % 2:
        return FILL_ALT_ROW
    return None


def timeline_cell_border(column: TimelineColumn, today: date) -> Border:
    return TODAY_BORDER if column.date == today else THIN_BORDER


def task_span(task: Task, plan: TimelinePlan) -> tuple[int, int]:
    start_column, start_clamped = plan.column_for(task.start)
    end_column, end_clamped = plan.column_for(task.end)
    if start_clamped or end_clamped:
        logger.warning("Task %s (%s) does not fit the timeline; its bar was clamped", task.id, task.name)
    return start_column, end_column


# ── Band writers ───────────────────────────────────────────────────────────────

def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _write_header_band(ws, layout: SheetLayout, meta: DocumentMeta, task_count: int) -> None:
    ws.cell(layout.title_row, 1, meta.title).font = Font(bold=True, size=16)
    ws.merge_cells(
        start_row=layout.title_row, start_column=1,
        end_row=layout.title_row, end_column=layout.attribute_columns,
    )
    generated = meta.resolved_generated_at()
    ws.cell(layout.generated_row, 1, f"Generated: {generated.isoformat(sep=' ')}").font = Font(italic=True, color="616161")
    ws.cell(layout.count_row, 1, f"Tasks: {task_count}").font = Font(color="616161")


def _write_month_band(ws, layout: SheetLayout, plan: TimelinePlan) -> None:
    for span in plan.month_spans():
        cell = ws.cell(layout.month_row, span.first_column, span.label)
        cell.font = Font(bold=True, color=HEADER_COLOR)
        cell.alignment = Alignment(horizontal="left", vertical="center")
        if span.last_column > span.first_column:
            ws.merge_cells(
                start_row=layout.month_row, start_column=span.first_column,
                end_row=layout.month_row, end_column=span.last_column,
            )


def _write_column_headers(ws, layout: SheetLayout, plan: TimelinePlan, today: date) -> None:
    fill = _header_fill(HEADER_COLOR)
    font = _header_font()
    for index, (header, width) in enumerate(zip(ATTRIBUTE_HEADERS, ATTRIBUTE_WIDTHS), start=1):
        cell = ws.cell(layout.header_row, index, header)
        cell.font = font
        cell.fill = fill
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        ws.column_dimensions[get_column_letter(index)].width = width

    for column in plan.columns:
        cell = ws.cell(layout.header_row, column.column, column.label)
        cell.font = timeline_header_font(column, today)
        cell.fill = timeline_header_fill(column, today)
        cell.border = timeline_cell_border(column, today)
        cell.alignment = Alignment(textRotation=90, horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(column.column)].width = TIMELINE_WIDTH
    ws.row_dimensions[layout.header_row].height = HEADER_ROW_HEIGHT


def _write_task_row(ws, layout: SheetLayout, plan: TimelinePlan, index: int, task: Task, today: date) -> None:
    row = layout.task_row(index)
    values = [task.id, task.name, task.start, task.end, task.duration_days]
    for column_index, value in enumerate(values, start=1):
        cell = ws.cell(row, column_index, value)
        cell.border = THIN_BORDER
        if isinstance(value, date):
            cell.number_format = DATE_FORMAT
            cell.alignment = Alignment(horizontal="center")
        if index % 2:
            cell.fill = FILL_ALT_ROW

    status = task.status(today)
    start_column, end_column = task_span(task, plan)
    for column in plan.columns:
        in_span = start_column <= column.column <= end_column
        cell = ws.cell(row, column.column)
        fill = timeline_cell_fill(column, index, status if in_span else None)
        if fill is not None:
            cell.fill = fill
        cell.border = timeline_cell_border(column, today)


def _write_empty_body(ws, layout: SheetLayout) -> None:
    cell = ws.cell(layout.first_task_row, 1, "No tasks to display")
    cell.font = Font(italic=True, color="757575")
    ws.merge_cells(
        start_row=layout.first_task_row, start_column=1,
        end_row=layout.first_task_row, end_column=layout.attribute_columns,
    )


def _write_legend(ws, layout: SheetLayout) -> None:
    ws.cell(layout.legend_row, 1, "Legend").font = Font(bold=True)
    for offset, (label, fill) in enumerate(LEGEND_ENTRIES, start=1):
        row = layout.legend_row + offset
        swatch = ws.cell(row, 1)
        swatch.fill = fill
        swatch.border = THIN_BORDER
        ws.cell(row, 2, label)


def _write_footer(ws, layout: SheetLayout, meta: DocumentMeta) -> None:
    lines = []
    if meta.project:
        lines.append(f"Project: {meta.project}")
    if meta.company:
        lines.append(f"Prepared by: {meta.company}")
    lines.append(f"Status as of {meta.resolved_today().isoformat()}")
    lines.append(f"Generated with sheet-gantt {TOOL_VERSION}")
    for offset, line in enumerate(lines):
        ws.cell(layout.footer_row + offset, 1, line).font = Font(size=9, color="757575")


# ── Public API ─────────────────────────────────────────────────────────────────

def compose_workbook(
    tasks: Sequence[Task],
    plan: Optional[TimelinePlan] = None,
    meta: Optional[DocumentMeta] = None,
) -> openpyxl.Workbook:
    """Lay out the Gantt sheet: header band, task rows, legend and footer."""
    meta = meta or DocumentMeta()
    today = meta.resolved_today()
    plan = plan or plan_timeline(tasks, anchor=today)
    layout = build_layout(len(tasks), plan)

    seen_ids: set[str] = set()
    for task in tasks:
        if task.id in seen_ids:
            logger.warning("Duplicate task id %r; rows are still placed by list order", task.id)
        seen_ids.add(task.id)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    _write_header_band(ws, layout, meta, len(tasks))
    _write_month_band(ws, layout, plan)
    _write_column_headers(ws, layout, plan, today)
    if tasks:
        for index, task in enumerate(tasks):
            _write_task_row(ws, layout, plan, index, task, today)
    else:
        _write_empty_body(ws, layout)
    _write_legend(ws, layout)
    _write_footer(ws, layout, meta)

    ws.auto_filter.ref = layout.filter_ref
    ws.freeze_panes = layout.freeze_cell
    wb.properties.title = meta.title
    if meta.company:
        wb.properties.creator = meta.company
    return wb


def render_workbook(
    tasks: Sequence[Task],
    plan: Optional[TimelinePlan] = None,
    meta: Optional[DocumentMeta] = None,
) -> bytes:
    """Serialize the composed workbook to .xlsx bytes."""
    wb = compose_workbook(tasks, plan, meta)
    buffer = io.BytesIO()
    try:
        wb.save(buffer)
    except Exception as exc:
        raise ExportIOError(f"Could not serialize workbook: {exc}") from exc
    return buffer.getvalue()


def export_workbook(
    tasks: Sequence[Task],
    output_path: "str | Path",
    plan: Optional[TimelinePlan] = None,
    meta: Optional[DocumentMeta] = None,
) -> Path:
    """
    Write the workbook to ``output_path`` through a temp file in the same
    directory, so a failed save never leaves a truncated .xlsx behind.
    """
    output_path = Path(output_path)
    payload = render_workbook(tasks, plan, meta)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=str(output_path.parent)
        )
    except OSError as exc:
        raise ExportIOError(f"Could not prepare {output_path}: {exc}") from exc

    temp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(temp_path, output_path)
    except OSError as exc:
        raise ExportIOError(f"Could not save {output_path}: {exc}") from exc
    finally:
        if temp_path.exists():
            temp_path.unlink()
    logger.info("Wrote %s (%d task row(s), %d byte(s))", output_path, len(tasks), len(payload))
    return output_path
