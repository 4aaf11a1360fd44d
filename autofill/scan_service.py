"""Client for the remote scan/automation service, with a short-lived cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_SCAN_SERVICE_URL
from .field_scanner import dedupe_questions
from .form_models import Question

SCAN_PATH = "/api/selenium/scan"
SCAN_CACHE_TTL_SECONDS = 5 * 60

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _CacheEntry:
    questions: List[Question]
    stored_at: float


class ScanCache:
    """Per-URL scan results, kept for ``ttl`` seconds."""

    def __init__(
        self,
        ttl: float = SCAN_CACHE_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}

    def get(self, url: str) -> Optional[List[Question]]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl:
            del self._entries[url]
            return None
        return list(entry.questions)

    def put(self, url: str, questions: List[Question]) -> None:
        self._entries[url] = _CacheEntry(list(questions), self._clock())

    def clear(self) -> None:
        self._entries.clear()


def questions_from_payload(payload: Any) -> List[Question]:
    """Accept ``[...]``, ``{"data": [...]}`` or ``{"data": {"questions": [...]}}``."""
    items: Any = payload
    if isinstance(items, dict):
        items = items.get("data")
    if isinstance(items, dict):
        items = items.get("questions")
    if not isinstance(items, list):
        raise ValueError("scan response carries no question list")
    questions: List[Question] = []
    for item in items:
        if isinstance(item, dict):
            question = Question.from_payload(item)
            if question:
                questions.append(question)
    return questions


class RemoteScanClient:
    def __init__(
        self,
        base_url: str = DEFAULT_SCAN_SERVICE_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        cache: Optional[ScanCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else ScanCache()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._logger = logger or LOGGER

    async def __aenter__(self) -> "RemoteScanClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def scan(self, url: str) -> List[Question]:
        cached = self.cache.get(url)
        if cached is not None:
            self._logger.info("Using cached scan for %s", url)
            return cached
        try:
            response = await self._client.post(f"{self.base_url}{SCAN_PATH}", json={"url": url})
            response.raise_for_status()
            questions = questions_from_payload(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("Remote scan failed for %s: %s", url, exc)
            return []
        questions = dedupe_questions(questions, self._logger)
        self.cache.put(url, questions)
        self._logger.info("Remote scan returned %s questions", len(questions))
        return questions


__all__ = [
    "SCAN_CACHE_TTL_SECONDS",
    "ScanCache",
    "RemoteScanClient",
    "questions_from_payload",
]
