"""
Guess which columns hold the task description, start date and end date.

The guess is a suggestion only: callers may accept it, override single fields
with ``ColumnSelection.with_override``, or ignore it entirely.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from sheet_gantt.models import ColumnSelection

FIELD_HINTS: dict[str, tuple[str, ...]] = {
    "description": ("desc", "task", "activity"),
    "start_date": ("start", "begin"),
    "end_date": ("end", "finish"),
}

FIELD_LABELS = {
    "description": "Task description",
    "start_date": "Start date",
    "end_date": "End date",
}


def header_matches(column_name: str, needles: Iterable[str]) -> bool:
    lowered = str(column_name).lower()
    return any(needle in lowered for needle in needles)


def candidate_columns(columns: Sequence[str]) -> dict[str, list[str]]:
    """Every matching column per field, in original column order."""
    return {
        field_name: [name for name in columns if header_matches(name, needles)]
        for field_name, needles in FIELD_HINTS.items()
    }


def detect_columns(columns: Sequence[str]) -> ColumnSelection:
    candidates = candidate_columns(columns)
    return ColumnSelection(**{
        field_name: (matches[0] if matches else "")
        for field_name, matches in candidates.items()
    })


def validate_selection(selection: ColumnSelection, columns: Sequence[str]) -> list[str]:
    """Human-readable notes about a selection; never blocks task generation."""
    known = set(columns)
    notes: list[str] = []
    for field_name in ColumnSelection.FIELDS:
        chosen = getattr(selection, field_name)
        label = FIELD_LABELS[field_name]
        if not chosen:
            notes.append(f"{label} column not selected; defaults will be used.")
        elif chosen not in known:
            notes.append(f"{label} column '{chosen}' is not in the table; defaults will be used.")
    if selection.start_date and selection.start_date == selection.end_date:
        notes.append("Start and end date use the same column; every task will last one day.")
    return notes
