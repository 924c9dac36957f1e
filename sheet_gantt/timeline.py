"""Plan the per-day timeline grid of the exported Gantt sheet."""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Sequence

from sheet_gantt.models import Task

logger = logging.getLogger(__name__)

ATTRIBUTE_COLUMN_COUNT = 5  # id, name, start, end, duration
FIRST_TIMELINE_COLUMN = ATTRIBUTE_COLUMN_COUNT + 1
DEFAULT_BUFFER_DAYS = 3
MAX_BUFFER_DAYS = 31
DEFAULT_EMPTY_SPAN_DAYS = 7
MAX_SHEET_COLUMNS = 16384  # XFD, the last column Excel opens

WEEKDAY_ABBR = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def day_label(day: date) -> str:
    return f"{WEEKDAY_ABBR[day.weekday()]} {day.day:02d}"


def date_range(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class TimelineColumn:
    key: str
    date: date
    label: str
    column: int

    @property
    def is_weekend(self) -> bool:
        return self.date.weekday() >= 5


@dataclass(frozen=True)
class MonthSpan:
    label: str
    first_column: int
    last_column: int


@dataclass(frozen=True)
class TimelinePlan:
    min_date: date
    max_date: date
    columns: tuple[TimelineColumn, ...]
    date_map: dict[str, int]
    buffer_days: int
    first_column: int

    @property
    def last_column(self) -> int:
        return self.first_column + len(self.columns) - 1

    @property
    def day_count(self) -> int:
        return len(self.columns)

    def column_for(self, day: date) -> tuple[int, bool]:
        """
        Sheet column for a day and whether it had to be clamped.

        Days outside the grid land on the nearest edge column; the caller
        still gets a usable position and a warning is logged.
        """
        column = self.date_map.get(day.isoformat())
        if column is not None:
            return column, False
        clamped = self.first_column if day < self.min_date else self.last_column
        logger.warning(
            "Date %s falls outside the timeline %s..%s; clamped to column %d",
            day.isoformat(),
            self.min_date.isoformat(),
            self.max_date.isoformat(),
            clamped,
        )
        return clamped, True

    def month_spans(self) -> list[MonthSpan]:
        spans: list[MonthSpan] = []
        for column in self.columns:
            label = f"{MONTH_NAMES[column.date.month - 1]} {column.date.year}"
            if spans and spans[-1].label == label:
                spans[-1] = MonthSpan(label, spans[-1].first_column, column.column)
            else:
                spans.append(MonthSpan(label, column.column, column.column))
        return spans


def busiest_window(tasks: Sequence[Task], lower: date, upper: date, max_days: int, anchor: date) -> tuple[date, date]:
    """
    The ``max_days`` window inside ``lower..upper`` overlapping the most tasks.

    Candidate windows open at a task start or close at a task end. Ties go to
    the window nearest ``anchor``.
    """
    span = timedelta(days=max_days - 1)
    starts = sorted(task.start for task in tasks)
    ends = sorted(task.end for task in tasks)
    candidates = {lower, upper - span}
    candidates.update(start for start in starts)
    candidates.update(end - span for end in ends)

    def score(first: date) -> tuple[int, int, date]:
        last = first + span
        overlapping = bisect_right(starts, last) - bisect_left(ends, first)
        if first <= anchor <= last:
            distance = 0
        else:
            distance = min(abs((anchor - first).days), abs((anchor - last).days))
        return -overlapping, distance, first

    first = min((max(lower, min(candidate, upper - span)) for candidate in candidates), key=score)
    return first, first + span


def plan_timeline(
    tasks: Sequence[Task],
    *,
    buffer_days: int = DEFAULT_BUFFER_DAYS,
    first_column: int = FIRST_TIMELINE_COLUMN,
    anchor: Optional[date] = None,
    empty_span_days: int = DEFAULT_EMPTY_SPAN_DAYS,
) -> TimelinePlan:
    """
    One column per calendar day from the earliest start to the latest end,
    widened by ``buffer_days`` on both sides.

    With no tasks the window is ``anchor ± empty_span_days`` (anchor defaults
    to today) so an export still gets a valid, empty grid.
    """
    if not 0 <= buffer_days <= MAX_BUFFER_DAYS:
        raise ValueError(f"buffer_days must be between 0 and {MAX_BUFFER_DAYS}, got {buffer_days}")
    if not 1 <= first_column <= MAX_SHEET_COLUMNS:
        raise ValueError(f"first_column must be between 1 and {MAX_SHEET_COLUMNS}, got {first_column}")
    max_days = MAX_SHEET_COLUMNS - first_column + 1

    if tasks:
        min_date = min(task.start for task in tasks) - timedelta(days=buffer_days)
        max_date = max(task.end for task in tasks) + timedelta(days=buffer_days)
    else:
        center = anchor or date.today()
        min_date = center - timedelta(days=empty_span_days)
        max_date = center + timedelta(days=empty_span_days)
        logger.info("No tasks to plan; using default window %s..%s", min_date, max_date)

    if (max_date - min_date).days + 1 > max_days:
        full_min, full_max = min_date, max_date
        min_date, max_date = busiest_window(tasks, min_date, max_date, max_days, anchor or date.today())
        logger.warning(
            "Timeline %s..%s needs %d day columns, more than a sheet holds; trimmed to %s..%s",
            full_min.isoformat(),
            full_max.isoformat(),
            (full_max - full_min).days + 1,
            min_date.isoformat(),
            max_date.isoformat(),
        )

    columns = tuple(
        TimelineColumn(key=day.isoformat(), date=day, label=day_label(day), column=first_column + offset)
        for offset, day in enumerate(date_range(min_date, max_date))
    )
    date_map = {column.key: column.column for column in columns}
    return TimelinePlan(
        min_date=min_date,
        max_date=max_date,
        columns=columns,
        date_map=date_map,
        buffer_days=buffer_days,
        first_column=first_column,
    )
