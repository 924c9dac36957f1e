"""Optional remote date standardization.

One column of raw date cells is sent per call to a generative-language model,
which answers with one ISO date (or ``invalid``) per line. The call is a
best-effort pre-pass: any failure returns a degraded batch and task building
falls back to local parsing. Nothing here raises past ``standardize``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional, Sequence

import requests

from sheet_gantt.config import DEFAULT_GEMINI_MODEL, Settings
from sheet_gantt.dates import parse_iso_date

logger = logging.getLogger(__name__)

INVALID = "invalid"
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
BLANK_PLACEHOLDER = "(blank)"

PROMPT_TEMPLATE = """
I have a set of date values that I need standardized in the ISO format (YYYY-MM-DD).
Please convert each of these date values and return only the standardized dates, one per line.
Return exactly one line per value, in the same order.
If a value is not recognizable as a date, return "invalid".

Date values:
{values}
"""


@dataclass(frozen=True)
class StandardizedBatch:
    values: list[str] = field(default_factory=list)
    degraded: bool = False
    reason: str = ""

    def iso_at(self, index: int) -> Optional[date]:
        """The standardized date for one row, or None when it cannot be trusted."""
        if self.degraded or index >= len(self.values):
            return None
        return parse_iso_date(self.values[index])


def as_plain_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def prompt_value(value: Any) -> str:
    text = " ".join(as_plain_string(value).split())
    return text or BLANK_PLACEHOLDER


def degraded_batch(values: Sequence[Any], reason: str) -> StandardizedBatch:
    return StandardizedBatch([as_plain_string(value) for value in values], degraded=True, reason=reason)


def response_lines(text: str) -> list[str]:
    lines = []
    for line in text.strip().splitlines():
        line = line.strip()
        if not line or line.startswith("```"):
            continue
        lines.append(line)
    return lines


class DateStandardizer:
    """Capability used by the task builder; subclasses must never raise."""

    name = "base"

    def standardize(self, values: Sequence[Any]) -> StandardizedBatch:
        raise NotImplementedError


class NullStandardizer(DateStandardizer):
    """Skips the remote pass; every batch is degraded so local parsing runs."""

    name = "none"

    def standardize(self, values: Sequence[Any]) -> StandardizedBatch:
        return degraded_batch(values, "remote standardization disabled")


class GeminiStandardizer(DateStandardizer):
    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_GEMINI_MODEL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        # an injected session is shared by every call; otherwise each request gets its own
        self.session = session

    def build_prompt(self, values: Sequence[Any]) -> str:
        return PROMPT_TEMPLATE.format(values="\n".join(prompt_value(value) for value in values))

    def post(self, session: requests.Session, prompt: str) -> requests.Response:
        return session.post(
            GEMINI_ENDPOINT.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
            timeout=self.timeout,
        )

    def request_text(self, prompt: str) -> str:
        if self.session is not None:
            response = self.post(self.session, prompt)
        else:
            with requests.Session() as session:
                response = self.post(session, prompt)
        response.raise_for_status()
        payload = response.json()
        parts = payload["candidates"][0]["content"]["parts"]
        return "".join(str(part.get("text", "")) for part in parts)

    def standardize(self, values: Sequence[Any]) -> StandardizedBatch:
        values = list(values)
        if not values:
            return StandardizedBatch([])
        if not self.api_key:
            reason = "Gemini API key not set (GEMINI_API_KEY / SHEET_GANTT_GEMINI_API_KEY)"
            logger.warning("Remote date standardization skipped: %s", reason)
            return degraded_batch(values, reason)

        try:
            text = self.request_text(self.build_prompt(values))
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.warning("Remote date standardization failed: %s", exc)
            return degraded_batch(values, f"request failed: {exc}")

        lines = response_lines(text)
        if len(lines) != len(values):
            reason = f"expected {len(values)} line(s) from the model, got {len(lines)}"
            logger.warning("Remote date standardization returned a malformed response: %s", reason)
            return degraded_batch(values, reason)

        standardized = [line if parse_iso_date(line) else INVALID for line in lines]
        logger.info(
            "Remote standardization resolved %d of %d value(s)",
            sum(1 for line in standardized if line != INVALID),
            len(values),
        )
        return StandardizedBatch(standardized)


def safe_standardize(standardizer: DateStandardizer, values: Sequence[Any]) -> StandardizedBatch:
    # injected implementations are outside our control; keep the no-raise contract
    try:
        batch = standardizer.standardize(values)
    except Exception as exc:
        logger.warning("Date standardizer %r raised: %s", getattr(standardizer, "name", standardizer), exc)
        return degraded_batch(values, f"standardizer raised: {exc}")
    if not batch.degraded and len(batch.values) != len(values):
        return degraded_batch(values, "standardizer returned the wrong number of values")
    return batch


def standardize_columns(
    standardizer: DateStandardizer,
    start_values: Sequence[Any],
    end_values: Sequence[Any],
) -> tuple[StandardizedBatch, StandardizedBatch]:
    """Standardize the start and end columns concurrently and wait for both."""
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="sheet-gantt-dates") as pool:
        start_future = pool.submit(safe_standardize, standardizer, list(start_values))
        end_future = pool.submit(safe_standardize, standardizer, list(end_values))
        return start_future.result(), end_future.result()


def build_standardizer(settings: Settings, session: Optional[requests.Session] = None) -> DateStandardizer:
    if not settings.remote_enabled:
        return NullStandardizer()
    if not settings.gemini_api_key:
        logger.info("No Gemini API key configured; dates will be parsed locally")
        return NullStandardizer()
    return GeminiStandardizer(
        settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.remote_timeout,
        session=session,
    )
