"""Spreadsheet-to-Gantt normalization and styled workbook export."""

__version__ = "0.1.0"
