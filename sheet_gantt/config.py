"""Runtime settings for sheet-gantt.

Values are layered: built-in defaults, then an optional JSON config file, then
``SHEET_GANTT_*`` environment variables, then explicit overrides (CLI flags or
UI widgets). Every layer goes through the same validation.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional

from sheet_gantt.errors import ConfigError
from sheet_gantt.timeline import MAX_BUFFER_DAYS

MIN_BUFFER_DAYS = 0
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"

ENV_PREFIX = "SHEET_GANTT_"
ENV_FIELDS = {
    "buffer_days": "BUFFER_DAYS",
    "empty_span_days": "EMPTY_SPAN_DAYS",
    "dayfirst": "DAYFIRST",
    "remote_enabled": "REMOTE",
    "gemini_api_key": "GEMINI_API_KEY",
    "gemini_model": "GEMINI_MODEL",
    "remote_timeout": "REMOTE_TIMEOUT",
    "title": "TITLE",
    "project": "PROJECT",
    "company": "COMPANY",
    "today": "TODAY",
    "output_filename": "OUTPUT_FILENAME",
}
TRUE_VALUES = {"1", "true", "yes", "y", "on"}
FALSE_VALUES = {"0", "false", "no", "n", "off", ""}


@dataclass(frozen=True)
class Settings:
    buffer_days: int = 3
    empty_span_days: int = 7
    dayfirst: bool = False
    remote_enabled: bool = True
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    remote_timeout: float = 30.0
    title: str = "Gantt Chart"
    project: str = ""
    company: str = ""
    today: Optional[date] = None
    output_filename: str = "gantt_chart.xlsx"

    def resolved_today(self) -> date:
        return self.today or date.today()

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied and validated."""
        cleaned = {key: value for key, value in overrides.items() if value is not None}
        return validate_settings(replace(self, **coerce_values(cleaned)))

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["today"] = self.today.isoformat() if self.today else None
        payload["gemini_api_key"] = "***" if self.gemini_api_key else None
        return payload


def parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def parse_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def parse_float(name: str, value: Any) -> float:
    try:
        return float(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def parse_day(name: str, value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an ISO date (YYYY-MM-DD), got {value!r}") from exc


def coerce_values(raw: Mapping[str, Any]) -> dict[str, Any]:
    known = {field.name for field in fields(Settings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

    coerced: dict[str, Any] = {}
    for name, value in raw.items():
        if value is None:
            # null only clears the optional settings; others keep their default
            if name in {"today", "gemini_api_key"}:
                coerced[name] = None
        elif name in {"buffer_days", "empty_span_days"}:
            coerced[name] = parse_int(name, value)
        elif name in {"dayfirst", "remote_enabled"}:
            coerced[name] = parse_bool(name, value)
        elif name == "remote_timeout":
            coerced[name] = parse_float(name, value)
        elif name == "today":
            coerced[name] = parse_day(name, value)
        elif name == "gemini_api_key":
            coerced[name] = str(value).strip() or None
        else:
            coerced[name] = str(value)
    return coerced


def validate_settings(settings: Settings) -> Settings:
    if not MIN_BUFFER_DAYS <= settings.buffer_days <= MAX_BUFFER_DAYS:
        raise ConfigError(
            f"buffer_days must be between {MIN_BUFFER_DAYS} and {MAX_BUFFER_DAYS}, "
            f"got {settings.buffer_days}"
        )
    if settings.empty_span_days < 1:
        raise ConfigError(f"empty_span_days must be at least 1, got {settings.empty_span_days}")
    if settings.remote_timeout <= 0:
        raise ConfigError(f"remote_timeout must be positive, got {settings.remote_timeout}")
    if not settings.output_filename.lower().endswith(".xlsx"):
        raise ConfigError(f"output_filename must end with .xlsx, got {settings.output_filename!r}")
    return settings


def load_config_file(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ConfigError("Config must be a .json file")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return payload


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for name, suffix in ENV_FIELDS.items():
        key = ENV_PREFIX + suffix
        if key in env:
            values[name] = env[key]
    if "gemini_api_key" not in values and env.get("GEMINI_API_KEY"):
        values["gemini_api_key"] = env["GEMINI_API_KEY"]
    return values


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> Settings:
    layered: dict[str, Any] = {}
    if config_path is not None:
        layered.update(load_config_file(Path(config_path)))
    layered.update(settings_from_env(environ))
    layered.update({key: value for key, value in overrides.items() if value is not None})
    return validate_settings(Settings(**coerce_values(layered)))


def config_template() -> str:
    payload = {
        "buffer_days": 3,
        "empty_span_days": 7,
        "dayfirst": False,
        "remote_enabled": True,
        "gemini_model": DEFAULT_GEMINI_MODEL,
        "remote_timeout": 30,
        "title": "Gantt Chart",
        "project": "",
        "company": "",
        "output_filename": "gantt_chart.xlsx",
    }
    return json.dumps(payload, indent=2) + "\n"
