"""Field-failure events emitted by the fill executor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlparse

import tldextract

from .io_utils import append_jsonl, utc_now_iso

FAILURES_FILENAME = "field_failures.jsonl"
_TLD_EXTRACTOR = tldextract.TLDExtract(suffix_list_urls=None)

LOGGER = logging.getLogger(__name__)


def _extract_host(url: str) -> str:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def site_key(url: str) -> str:
    """Registrable domain of ``url`` (``boards.greenhouse.io`` -> ``greenhouse.io``)."""
    host = _extract_host(url)
    if not host:
        return ""
    extracted = _TLD_EXTRACTOR(host)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}"
    return host


@dataclass(slots=True)
class FieldFailureEvent:
    run_id: str
    url: str
    code: str
    field: Dict[str, Any]
    job_id: Optional[str] = None
    site: str = ""
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "url": self.url,
            "jobId": self.job_id,
            "code": self.code,
            "field": self.field,
            "site": self.site,
            "timestamp": self.timestamp,
        }


class FailureSink(Protocol):
    def emit(self, event: FieldFailureEvent) -> None:
        ...


class LoggingFailureSink:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    def emit(self, event: FieldFailureEvent) -> None:
        self._logger.warning(
            "Field failure %s on %s: %s",
            event.code,
            event.site or event.url,
            event.field.get("question"),
        )


class JsonlFailureSink:
    """Appends one JSON line per event to the run's failure log."""

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None) -> None:
        self.path = path
        self._logger = logger or LOGGER

    def emit(self, event: FieldFailureEvent) -> None:
        try:
            append_jsonl(self.path, event.to_dict())
        except OSError as exc:
            self._logger.warning("Could not record field failure: %s", exc)


class MemoryFailureSink:
    def __init__(self) -> None:
        self.events: List[FieldFailureEvent] = []

    def emit(self, event: FieldFailureEvent) -> None:
        self.events.append(event)


__all__ = [
    "FAILURES_FILENAME",
    "site_key",
    "FieldFailureEvent",
    "FailureSink",
    "LoggingFailureSink",
    "JsonlFailureSink",
    "MemoryFailureSink",
]
