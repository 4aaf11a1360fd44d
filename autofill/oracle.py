"""HTTP adapter for the remote answer oracle (``POST /predict``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_ORACLE_URL

PREDICT_PATH = "/predict"
DEFAULT_AI_CONFIDENCE = 0.8

LOGGER = logging.getLogger(__name__)


class OracleError(RuntimeError):
    """The oracle answered with an error status or an unusable body."""


@dataclass(slots=True)
class OracleRequest:
    question: str
    field_type: str
    options: List[str] = field(default_factory=list)
    user_profile: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "fieldType": self.field_type,
            "options": list(self.options),
            "userProfile": self.user_profile,
        }


@dataclass(slots=True)
class OracleAnswer:
    answer: str
    confidence: float = DEFAULT_AI_CONFIDENCE
    intent: Optional[str] = None
    is_new_intent: bool = False
    suggested_intent_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "OracleAnswer":
        if not isinstance(payload, Mapping):
            raise OracleError(f"Expected a JSON object, got {type(payload).__name__}")
        answer = payload.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            raise OracleError("Response carries no answer")
        raw_confidence = payload.get("confidence")
        try:
            confidence = float(raw_confidence) if raw_confidence is not None else 0.0
        except (TypeError, ValueError):
            confidence = 0.0
        if not 0 < confidence <= 1:
            confidence = DEFAULT_AI_CONFIDENCE
        return cls(
            answer=answer.strip(),
            confidence=confidence,
            intent=_optional_text(payload.get("intent")),
            is_new_intent=bool(payload.get("isNewIntent")),
            suggested_intent_name=_optional_text(payload.get("suggestedIntentName")),
        )


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AnswerOracle(Protocol):
    async def ask(self, request: OracleRequest) -> Optional[OracleAnswer]:
        ...


class OracleClient:
    """Asks the oracle one question at a time; failures come back as ``None``."""

    def __init__(
        self,
        base_url: str = DEFAULT_ORACLE_URL,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._logger = logger or LOGGER

    async def __aenter__(self) -> "OracleClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def predict(self, request: OracleRequest) -> OracleAnswer:
        try:
            response = await self._client.post(
                f"{self.base_url}{PREDICT_PATH}", json=request.to_payload()
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise OracleError(
                f"Oracle returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise OracleError(f"Oracle request failed: {exc}") from exc
        except ValueError as exc:
            raise OracleError(f"Oracle returned malformed JSON: {exc}") from exc
        return OracleAnswer.from_payload(payload)

    async def ask(self, request: OracleRequest) -> Optional[OracleAnswer]:
        try:
            return await self.predict(request)
        except OracleError as exc:
            self._logger.warning("Oracle failed for %r: %s", request.question, exc)
            return None


__all__ = [
    "OracleError",
    "OracleRequest",
    "OracleAnswer",
    "AnswerOracle",
    "OracleClient",
    "DEFAULT_AI_CONFIDENCE",
]
