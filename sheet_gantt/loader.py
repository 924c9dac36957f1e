"""
loader.py: Tabular ingest for sheet-gantt

Supports: .xlsx .xlsm .xls .csv

Public API:
    table = load_file("path/to/plan.xlsx")
    table = load_bytes(uploaded_bytes, filename="plan.xls")

LoadedTable fields:
    rows             : list of {column name: cell value} dicts, one per populated data row
    columns          : ordered, distinct column names from the header row
    detected_format  : "xlsx", "xls", "csv", ...
    sheet_name       : worksheet used for spreadsheets; None for csv
    sheet_names      : every worksheet in the workbook; None for csv
    warnings         : list of warning strings

Cell values are one of: str, int, float, bool, datetime.date, datetime.datetime
or None. Date cells come back as native dates, never as strings or serials.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from sheet_gantt.dates import parse_iso_date
from sheet_gantt.errors import ParseError

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS         = {".csv"}
EXCEL_FORMATS        = {".xlsx", ".xlsm"}
LEGACY_EXCEL_FORMATS = {".xls"}
ALL_FORMATS          = TEXT_FORMATS | EXCEL_FORMATS | LEGACY_EXCEL_FORMATS

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
ZIP_SIGNATURE  = b"PK\x03\x04"

MAX_UPLOAD_MB    = 100
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# pandas names blank header cells "Unnamed: 3" (or "Unnamed: 3_level_0")
PANDAS_BLANK_HEADER = re.compile(r"^Unnamed: \d+(_level_\d+)?$")


@dataclass
class LoadedTable:
    rows: list[dict[str, Any]]
    columns: list[str]
    detected_format: str
    sheet_name: Optional[str] = None
    sheet_names: Optional[list[str]] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT SNIFFING
# ══════════════════════════════════════════════════════════════════════════════

def sniff_format(data: bytes, filename: str = "") -> str:
    """
    Decide which reader handles the byte stream.

    The byte signature wins over the filename: an .xls renamed to .xlsx is
    still read as .xls. Text input is only accepted when the name says .csv.
    """
    suffix = Path(filename).suffix.lower()

    if data[:8] == OLE2_SIGNATURE:
        return ".xls"

    if data[:4] == ZIP_SIGNATURE:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile as exc:
            raise ParseError(f"Could not read workbook: {exc}") from exc
        if {"EncryptedPackage", "EncryptionInfo"}.issubset(names):
            raise ParseError("Workbook is password-protected; save an unprotected copy first.")
        if "xl/workbook.xml" not in names:
            raise ParseError("Zip archive is not an Excel workbook (missing xl/workbook.xml).")
        return ".xlsm" if "xl/vbaProject.bin" in names else ".xlsx"

    if suffix in TEXT_FORMATS:
        return suffix

    if suffix in EXCEL_FORMATS | LEGACY_EXCEL_FORMATS:
        raise ParseError(f"File named {suffix} is not a readable spreadsheet.")

    supported = ", ".join(sorted(ALL_FORMATS))
    raise ParseError(
        f"Unsupported format '{suffix or '[missing extension]'}'. Supported: {supported}"
    )


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION (csv only)
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    import chardet

    result = chardet.detect(raw[:65536])
    detected = result.get("encoding") or "utf-8"
    if detected.upper().replace("-", "") == "ASCII":
        return "utf-8"
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line: UTF-8, then the detected encoding, then latin-1, then
    CP1252 with replacement. Embedded null bytes are stripped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def _detect_delimiter(text: str) -> str:
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass
    return ","


# ══════════════════════════════════════════════════════════════════════════════
# CELL NORMALISATION
# ══════════════════════════════════════════════════════════════════════════════

def normalize_cell(value: Any) -> Any:
    """Turn a pandas cell into a plain Python value; dates stay native."""
    if value is None:
        return None
    if isinstance(value, (list, tuple, dict)):
        return str(value)
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        if value.time() == time(0, 0):
            return value.date()
        return value
    if isinstance(value, date):
        return value
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        if math.isinf(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, int):
        return value
    text = str(value).replace("\x00", "").strip()
    return text or None


def _coerce_text_cell(value: Any) -> Any:
    """csv cells arrive as text; surface strict ISO dates as native dates."""
    normalized = normalize_cell(value)
    if isinstance(normalized, str):
        parsed = parse_iso_date(normalized)
        if parsed is not None:
            return parsed
    return normalized


def _header_text(name: Any) -> str:
    text = str(name).strip()
    return "" if PANDAS_BLANK_HEADER.match(text) else text


def _frame_to_table(
    df: pd.DataFrame,
    detected_format: str,
    warnings: list[str],
    *,
    text_cells: bool = False,
    sheet_name: Optional[str] = None,
    sheet_names: Optional[list[str]] = None,
) -> LoadedTable:
    if len(df.columns) == 0:
        raise ParseError("Spreadsheet has no header row.")

    columns: list[str] = []
    placeholders: set[str] = set()
    raw_names = [_header_text(name) for name in df.columns]
    taken = {name for name in raw_names if name}
    renamed = False
    for index, name in enumerate(raw_names, start=1):
        positional = not name
        base = f"Column {index}" if positional else name
        candidate, suffix = base, 0
        while candidate in columns or (candidate != name and candidate in taken):
            suffix += 1
            candidate = f"{base}.{suffix}"
        renamed = renamed or (not positional and candidate != name)
        if positional:
            placeholders.add(candidate)
        columns.append(candidate)
    if renamed:
        warnings.append("Duplicate column headers were renamed with numeric suffixes.")

    convert = _coerce_text_cell if text_cells else normalize_cell
    rows: list[dict[str, Any]] = []
    for record in df.itertuples(index=False, name=None):
        row = {name: convert(value) for name, value in zip(columns, record)}
        if all(value is None for value in row.values()):
            continue
        rows.append(row)

    empty_blank = [name for name in columns if name in placeholders and all(row[name] is None for row in rows)]
    if empty_blank:
        columns = [name for name in columns if name not in empty_blank]
        rows = [{name: row[name] for name in columns} for row in rows]

    if not rows:
        raise ParseError("Spreadsheet contains no data rows below the header.")

    return LoadedTable(
        rows=rows,
        columns=columns,
        detected_format=detected_format.lstrip("."),
        sheet_name=sheet_name,
        sheet_names=sheet_names,
        warnings=warnings,
    )


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(data: bytes, suffix: str) -> LoadedTable:
    """Load a .csv upload; the first line is the header."""
    text = _read_text_safely(data, _detect_encoding(data))
    if not text.strip():
        raise ParseError("File is empty.")
    delimiter = _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            sep=sep,
            engine="python",
            on_bad_lines="skip",
        )
    except Exception as exc:
        raise ParseError(f"Could not parse {suffix} file: {exc}") from exc
    return _frame_to_table(df, suffix, [], text_cells=True)


def _load_excel(data: bytes, suffix: str) -> LoadedTable:
    """
    Load the first worksheet of an .xlsx/.xlsm/.xls workbook.

    pandas reads date-formatted cells as timestamps, so no date guessing is
    needed here; the remaining sheets are ignored with a warning.
    """
    engine = "openpyxl"
    if suffix in LEGACY_EXCEL_FORMATS:
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd; run: pip install xlrd")
        engine = "xlrd"

    warnings: list[str] = []
    try:
        with pd.ExcelFile(io.BytesIO(data), engine=engine) as xf:
            all_sheets = [str(name) for name in xf.sheet_names]
            if not all_sheets:
                raise ParseError("Workbook has no worksheets.")
            df = xf.parse(xf.sheet_names[0])
    except ParseError:
        raise
    except Exception as exc:
        raise ParseError(f"Could not read workbook: {exc}") from exc

    chosen = all_sheets[0]
    if len(all_sheets) > 1:
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); "
            f"used '{chosen}'. Ignored: {all_sheets[1:]}"
        )

    return _frame_to_table(df, suffix, warnings, sheet_name=chosen, sheet_names=all_sheets)


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_bytes(data: bytes, filename: str = "upload.xlsx") -> LoadedTable:
    """
    Parse uploaded spreadsheet bytes into rows and columns.

    Raises:
        ParseError   if the bytes are empty, oversized, not a spreadsheet, or
                     hold no data rows.
        ImportError  if xlrd is missing for a legacy .xls upload.
    """
    if not data:
        raise ParseError("File is empty.")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ParseError(f"File is larger than {MAX_UPLOAD_MB} MB.")

    suffix = sniff_format(data, filename)
    if suffix in TEXT_FORMATS:
        table = _load_text(data, suffix)
    else:
        table = _load_excel(data, suffix)

    logger.info(
        "Loaded %d row(s) and %d column(s) from %s (%s)",
        table.row_count,
        len(table.columns),
        filename,
        table.detected_format,
    )
    for warning in table.warnings:
        logger.warning(warning)
    return table


def load_file(path: "str | Path") -> LoadedTable:
    """Read a spreadsheet from disk; see load_bytes."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return load_bytes(path.read_bytes(), filename=path.name)
