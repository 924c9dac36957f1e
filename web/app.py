#!/usr/bin/env python3
from __future__ import annotations

import hashlib
import re
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import pandas as pd
import requests
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sheet_gantt.column_detector import FIELD_LABELS, detect_columns, validate_selection  # noqa: E402
from sheet_gantt.config import load_settings  # noqa: E402
from sheet_gantt.errors import SheetGanttError  # noqa: E402
from sheet_gantt.loader import LoadedTable, load_bytes  # noqa: E402
from sheet_gantt.models import ColumnSelection  # noqa: E402
from sheet_gantt.pipeline import generate_tasks, render_tasks  # noqa: E402
from sheet_gantt.tasks import tasks_to_records  # noqa: E402
from sheet_gantt.workbook import DEFAULT_FILENAME, XLSX_MIME  # noqa: E402

SUPPORTED_EXTS = {".xlsx", ".xlsm", ".xls", ".csv"}
MAX_REMOTE_FILE_MB = 100
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
NOT_SET = "(not set)"


def ensure_state() -> None:
    st.session_state.setdefault("public_url_input", "")
    st.session_state.setdefault("task_records", [])
    st.session_state.setdefault("task_warnings", [])
    st.session_state.setdefault("download_bytes", None)
    st.session_state.setdefault("download_name", DEFAULT_FILENAME)
    st.session_state.setdefault("source_fingerprint", None)


def normalize_public_url(raw_url: str) -> str:
    parsed = urlparse(raw_url.strip())
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        return f"https://raw.githubusercontent.com/{owner_repo}/{blob_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    if host in {"drive.google.com", "docs.google.com"}:
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            gid = query.get("gid", ["0"])[0]
            return f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export?format=xlsx&gid={gid}"
        file_match = re.search(r"/file/d/([^/]+)", path)
        if file_match:
            return f"https://drive.google.com/uc?export=download&id={file_match.group(1)}"

    return raw_url.strip()


def remote_filename(raw_url: str, response: requests.Response) -> str:
    content_disposition = response.headers.get("content-disposition", "")
    match = re.search(r'filename="([^"]+)"|filename=([^;]+)', content_disposition, re.I)
    if match:
        for group in match.groups():
            if group:
                return Path(group.strip().strip('"')).name
    if "docs.google.com" in urlparse(raw_url).netloc.lower():
        return "google-sheet.xlsx"
    return Path(urlparse(response.url or raw_url).path).name or "downloaded.xlsx"


def fetch_remote_source(raw_url: str, timeout: float = 60) -> tuple[str, bytes]:
    url = normalize_public_url(raw_url)
    response = requests.get(url, timeout=timeout, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=1024 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
    finally:
        response.close()
    return remote_filename(raw_url, response), b"".join(chunks)


def export_filename(source_name: Optional[str]) -> str:
    if not source_name:
        return DEFAULT_FILENAME
    stem = re.sub(r"[^A-Za-z0-9_.-]+", "_", Path(source_name).stem).strip("._")
    return f"{stem}_gantt.xlsx" if stem else DEFAULT_FILENAME


def column_options(table: LoadedTable) -> list[str]:
    return [NOT_SET] + list(table.columns)


def selection_from_choices(choices: dict[str, str]) -> ColumnSelection:
    selection = ColumnSelection()
    for field_name, choice in choices.items():
        selection = selection.with_override(field_name, "" if choice == NOT_SET else choice)
    return selection


def option_index(options: list[str], column: str) -> int:
    return options.index(column) if column in options else 0


def set_visuals() -> None:
    st.set_page_config(page_title="sheet-gantt", page_icon="📅", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        .block-container { max-width: 1100px; padding-top: 2rem; }
        div[data-testid="stMetricValue"] { color: #1565C0; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def read_source() -> tuple[Optional[str], Optional[bytes]]:
    upload = st.file_uploader("Upload a task spreadsheet", type=[ext.lstrip(".") for ext in sorted(SUPPORTED_EXTS)])
    raw_url = st.text_input(
        "Or a public file URL",
        key="public_url_input",
        placeholder="Direct links and GitHub, Dropbox or Google Drive share links",
    )
    if upload is not None:
        return upload.name, upload.getvalue()
    if raw_url.strip():
        try:
            with st.spinner("Downloading..."):
                return fetch_remote_source(raw_url)
        except (requests.RequestException, ValueError) as exc:
            st.error(f"Could not download the file: {exc}")
    return None, None


def render_column_picker(table: LoadedTable) -> ColumnSelection:
    suggested = detect_columns(table.columns)
    options = column_options(table)
    choices = {}
    pickers = st.columns(len(ColumnSelection.FIELDS))
    for picker, field_name in zip(pickers, ColumnSelection.FIELDS):
        choices[field_name] = picker.selectbox(
            FIELD_LABELS[field_name],
            options=options,
            index=option_index(options, getattr(suggested, field_name)),
            key=f"pick_{field_name}",
        )
    selection = selection_from_choices(choices)
    for note in validate_selection(selection, table.columns):
        st.caption(note)
    return selection


def source_fingerprint(name: Optional[str], data: Optional[bytes]) -> Optional[str]:
    if data is None:
        return None
    return f"{name}:{len(data)}:{hashlib.sha1(data).hexdigest()}"


def clear_results() -> None:
    st.session_state["task_records"] = []
    st.session_state["task_warnings"] = []
    st.session_state["download_bytes"] = None


def track_source(name: Optional[str], data: Optional[bytes]) -> None:
    """Results built from an earlier upload are dropped once the source changes."""
    fingerprint = source_fingerprint(name, data)
    if st.session_state.get("source_fingerprint") != fingerprint:
        clear_results()
        st.session_state["source_fingerprint"] = fingerprint


def generate_results(table: LoadedTable, selection: ColumnSelection, use_remote: bool) -> bool:
    try:
        settings = load_settings(remote_enabled=use_remote)
        tasks, report = generate_tasks(table.rows, selection, settings)
        payload = render_tasks(tasks, settings)
    except SheetGanttError as exc:
        clear_results()
        st.error(str(exc))
        return False
    st.session_state["task_records"] = tasks_to_records(tasks)
    st.session_state["task_warnings"] = list(report.warnings)
    st.session_state["download_bytes"] = payload
    return True


def render_results(source_name: Optional[str]) -> None:
    records = st.session_state.get("task_records") or []
    if not records:
        return
    st.subheader("Tasks")
    metrics = st.columns(2)
    metrics[0].metric("Tasks", len(records))
    metrics[1].metric("Warnings", len(st.session_state.get("task_warnings") or []))
    for warning in st.session_state.get("task_warnings") or []:
        st.warning(warning)
    st.dataframe(pd.DataFrame(records), hide_index=True, width="stretch")
    if st.session_state.get("download_bytes"):
        st.download_button(
            "Download Gantt workbook",
            data=st.session_state["download_bytes"],
            file_name=export_filename(source_name),
            mime=XLSX_MIME,
            width="stretch",
        )


def main() -> None:
    set_visuals()
    ensure_state()

    st.title("sheet-gantt")
    st.caption("Upload a task list, confirm which columns hold the description and dates, and download a Gantt workbook.")

    source_name, data = read_source()
    track_source(source_name, data)
    if data is None:
        st.info("Supported here: .xlsx .xlsm .xls .csv")
        return

    try:
        table = load_bytes(data, source_name or "upload.xlsx")
    except (SheetGanttError, ImportError) as exc:
        st.error(str(exc))
        return
    for warning in table.warnings:
        st.caption(warning)
    st.dataframe(pd.DataFrame(table.rows[:20]), hide_index=True, width="stretch")

    selection = render_column_picker(table)
    use_remote = st.checkbox("Standardize dates with Gemini when a key is configured", value=True)
    if st.button("Generate Gantt chart", type="primary", width="stretch"):
        with st.spinner("Building tasks..."):
            generate_results(table, selection, use_remote)

    render_results(source_name)


if __name__ == "__main__":
    main()
