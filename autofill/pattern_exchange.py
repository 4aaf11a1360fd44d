"""Client for the optional shared pattern repository.

Only intents on the shareable allow-list ever leave the machine. Intents
that identify the person (names, contact details, education, experience)
are shared as question wording only, without answer mappings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .config import DEFAULT_EXCHANGE_URL, DEFAULT_HTTP_TIMEOUT
from .pattern_store import (
    PATTERN_ONLY_INTENTS,
    SHAREABLE_INTENTS,
    LearnedPattern,
    PatternStore,
)
from .profile import canonical_intent

API_PREFIX = "/api/patterns"

# The shared repository predates the local intent names for these fields.
SHARED_INTENT_NAMES: Dict[str, str] = {
    "workAuthorization.authorizedUS": "workAuth.usAuthorized",
    "workAuthorization.needsSponsorship": "workAuth.sponsorship",
    "workAuthorization.driverLicense": "workAuth.driverLicense",
    "workAuthorization.visaType": "workAuth.visaType",
    "personal.country": "location.country",
    "personal.state": "location.state",
}

LOGGER = logging.getLogger(__name__)


class ExchangeError(RuntimeError):
    """The shared repository could not be reached or rejected the request."""


def shared_intent(intent: str) -> str:
    return SHARED_INTENT_NAMES.get(intent, intent)


def upload_payload(pattern: LearnedPattern) -> Optional[Dict[str, Any]]:
    """Wire form of ``pattern`` for upload, or None when it must stay local."""
    intent = shared_intent(pattern.intent)
    if intent in SHAREABLE_INTENTS:
        mappings = [mapping.to_dict() for mapping in pattern.answer_mappings]
    elif intent in PATTERN_ONLY_INTENTS:
        mappings = []
    else:
        return None
    return {
        "questionPattern": pattern.question_pattern,
        "intent": intent,
        "fieldType": pattern.field_type,
        "answerMappings": mappings,
        "confidence": pattern.confidence,
        "source": pattern.source.value,
    }


def pattern_from_remote(data: Any) -> Optional[LearnedPattern]:
    if not isinstance(data, dict):
        return None
    pattern = LearnedPattern.from_dict(data)
    if pattern is None:
        return None
    pattern.intent = canonical_intent(pattern.intent)
    # Remote ids and counters belong to the shared repository.
    pattern.id = ""
    pattern.usage_count = 0
    return pattern


class PatternExchangeClient:
    def __init__(
        self,
        base_url: str = DEFAULT_EXCHANGE_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._logger = logger or LOGGER

    async def __aenter__(self) -> "PatternExchangeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExchangeError(
                f"{method} {path} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExchangeError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ExchangeError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ExchangeError(f"{method} {path} returned an unexpected body")
        return body

    async def upload(self, pattern: LearnedPattern) -> bool:
        payload = upload_payload(pattern)
        if payload is None:
            self._logger.debug("Pattern %s is not shareable", pattern.intent)
            return False
        await self._request("POST", "/upload", json=payload)
        self._logger.info("Uploaded pattern %r (%s)", pattern.question_pattern, payload["intent"])
        return True

    async def batch_upload(self, patterns: Sequence[LearnedPattern]) -> Tuple[int, int]:
        """Upload shareable patterns in one request; returns ``(uploaded, skipped)``."""
        payloads: List[Dict[str, Any]] = []
        skipped = 0
        for pattern in patterns:
            payload = upload_payload(pattern)
            if payload is None:
                skipped += 1
            else:
                payloads.append(payload)
        if not payloads:
            return 0, skipped
        body = await self._request("POST", "/batch-upload", json={"patterns": payloads})
        uploaded = int(body.get("uploaded", len(payloads)))
        skipped += int(body.get("skipped", 0))
        return uploaded, skipped

    async def push(self, store: PatternStore) -> Tuple[int, int]:
        """Upload every unsynced local pattern and mark the shareable ones synced."""
        pending = store.unsynced()
        shareable = [p for p in pending if upload_payload(p) is not None]
        uploaded, skipped = await self.batch_upload(pending)
        if shareable:
            store.mark_synced(shareable)
        self._logger.info("Pushed %s patterns, skipped %s", uploaded, skipped)
        return uploaded, skipped

    async def fetch(self, since: Optional[str] = None) -> List[LearnedPattern]:
        params = {"since": since} if since else None
        body = await self._request("GET", "/sync", params=params)
        patterns: List[LearnedPattern] = []
        for raw in body.get("patterns") or []:
            pattern = pattern_from_remote(raw)
            if pattern is not None:
                patterns.append(pattern)
        return patterns

    async def sync(self, store: PatternStore, since: Optional[str] = None) -> int:
        """Pull remote patterns and merge them; returns the number of changed entries."""
        remote = await self.fetch(since)
        changed = store.merge_remote(remote)
        self._logger.info("Fetched %s remote patterns, %s changed locally", len(remote), changed)
        return changed

    async def stats(self) -> Dict[str, Any]:
        body = await self._request("GET", "/stats")
        stats = body.get("stats")
        return stats if isinstance(stats, dict) else {}


__all__ = [
    "ExchangeError",
    "PatternExchangeClient",
    "SHARED_INTENT_NAMES",
    "pattern_from_remote",
    "shared_intent",
    "upload_payload",
]
