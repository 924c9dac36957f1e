#!/usr/bin/env python3
"""
Generates sample-data/messy_tasks.xlsx, a project plan with the date problems
sheet-gantt has to cope with.

Run from the repo root:
    python sample-data/generate_tasks_xlsx.py
    sheet-gantt export sample-data/messy_tasks.xlsx --today 2024-03-10

Problems baked in:
  Sheet "Plan"
    - Native date cells mixed with text dates in 5 different formats
    - An Excel serial number typed as a plain number
    - A task whose end date is before its start date
    - A blank task name, a blank start and an unparseable end ("TBD")
    - An empty row in the middle of the table
    - Extra columns the column detector must ignore ("Owner", "Notes")
  Sheet "Notes"
    - A second sheet that is ignored on import
"""

from datetime import date, datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "messy_tasks.xlsx"

wb = openpyxl.Workbook()

# ── Sheet 1: Plan ─────────────────────────────────────────────────────────────
ws = wb.active
ws.title = "Plan"
ws.append(["Owner", "Task Description", "Start Date", "End Date", "Notes"])

data = [
    # owner    description            start                    end                 notes
    ["Ana",    "Kickoff",             date(2024, 3, 1),        date(2024, 3, 1),   "native dates"],
    ["Ben",    "Requirements",        "2024-03-04",            "03/08/2024",       "ISO + month-first"],
    ["Ana",    "Design",              "March 11, 2024",        "15 Mar 2024",      "month names"],
    [None,     None,                  None,                    None,               None],  # empty row
    ["Chloe",  "Build",               45376,                   "2024/04/05",       "serial start"],
    ["Ben",    "QA",                  datetime(2024, 4, 8, 9), "2024-04-01",       "ends before it starts"],
    ["Dan",    None,                  "2024-04-15",            "2024-04-19",       "no task name"],
    ["Ana",    "Launch",              None,                    "TBD",              "nothing usable"],
]
for row in data:
    ws.append(row)

for cell in ws["C"][1:] + ws["D"][1:]:
    if isinstance(cell.value, (date, datetime)):
        cell.number_format = "yyyy-mm-dd"

# ── Sheet 2: Notes ────────────────────────────────────────────────────────────
ws_notes = wb.create_sheet("Notes")
ws_notes.append(["This sheet is not part of the plan."])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
