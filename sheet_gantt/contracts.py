"""Versioned JSON payloads printed by ``sheet-gantt ... --json``.

Every payload carries its contract name and version so downstream scripts can
refuse a shape they do not understand.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from sheet_gantt import __version__ as TOOL_VERSION

COLUMNS_CONTRACT = "sheet_gantt.columns"
TASKS_CONTRACT = "sheet_gantt.tasks"
EXPORT_CONTRACT = "sheet_gantt.export_summary"

CONTRACT_VERSIONS = {
    COLUMNS_CONTRACT: "1.0.0",
    TASKS_CONTRACT: "1.0.0",
    EXPORT_CONTRACT: "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    if name not in CONTRACT_VERSIONS:
        raise KeyError(f"Unknown contract {name!r}")
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def envelope(name: str, **body: Any) -> dict[str, Any]:
    contract = build_contract(name)
    payload = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
    }
    payload.update(body)
    return payload


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Optional[Path] = None,
    metrics: Optional[dict[str, Any]] = None,
    warnings: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    """Outcome of one CLI run: what was read, what was written, what to review."""
    warning_list = list(warnings or [])
    return {
        "tool": "sheet-gantt",
        "command": command,
        "status": "warning" if status == "ok" and warning_list else status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": None if output_path is None else str(output_path),
        "warnings_count": len(warning_list),
        "warnings": warning_list,
        "metrics": dict(metrics or {}),
    }
