"""Error taxonomy shared by the ingest, config and export boundaries.

Only ingest failures and final export I/O failures halt a workflow. Data-quality
problems (unparseable dates, a failed remote standardization call, a timeline
cell outside the grid) are recorded outcomes and log messages, not exceptions.
"""

from __future__ import annotations


class SheetGanttError(Exception):
    """Base class for every error raised past a sheet-gantt boundary."""


class ParseError(SheetGanttError, ValueError):
    """The uploaded bytes are not a readable spreadsheet, or hold no data rows."""


class ConfigError(SheetGanttError, ValueError):
    """A settings value or config file is invalid."""


class ExportIOError(SheetGanttError, OSError):
    """The workbook could not be serialized or saved."""
