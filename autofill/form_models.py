"""Data models shared across scanning, resolution and filling."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .option_matching import clean_options


class FieldType(str, Enum):
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NUMBER = "NUMBER"
    DATE = "DATE"
    RADIO = "RADIO"
    CHECKBOX = "CHECKBOX"
    SELECT_NATIVE = "SELECT_NATIVE"
    DROPDOWN_CUSTOM = "DROPDOWN_CUSTOM"
    FILE = "FILE"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FieldType":
        """Accept both enum names and the lowercase names scan services emit."""
        text = (raw or "").strip()
        if not text:
            return cls.TEXT
        try:
            return cls(text.upper())
        except ValueError:
            pass
        return _FIELD_TYPE_ALIASES.get(text.lower(), cls.TEXT)


_FIELD_TYPE_ALIASES = {
    "tel": FieldType.PHONE,
    "phone": FieldType.PHONE,
    "select": FieldType.SELECT_NATIVE,
    "select_native": FieldType.SELECT_NATIVE,
    "dropdown": FieldType.DROPDOWN_CUSTOM,
    "dropdown_custom": FieldType.DROPDOWN_CUSTOM,
    "radio_group": FieldType.RADIO,
    "file_upload": FieldType.FILE,
}


class AnswerSource(str, Enum):
    CANONICAL = "CANONICAL"
    LEARNED = "LEARNED"
    FUZZY = "FUZZY"
    AI = "AI"


class FillStatus(str, Enum):
    FILLED = "filled"
    SKIPPED = "skipped"
    FAILED = "failed"


class FailureCode(str, Enum):
    NO_DOM_MATCH = "NO_DOM_MATCH"
    FILL_VERIFY_FAILED = "FILL_VERIFY_FAILED"


@dataclass(slots=True)
class Question:
    text: str
    field_type: FieldType
    locator: str
    required: bool = False
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "fieldType": self.field_type.value,
            "options": list(self.options),
            "required": self.required,
            "locator": self.locator,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Optional["Question"]:
        """Build a question from a scan payload, returning None when unusable.

        Accepts the field names of this package (``text``/``locator``) and the
        ones automation services use (``questionText``/``selector``).
        """
        text = str(payload.get("text") or payload.get("questionText") or "").strip()
        locator = str(payload.get("locator") or payload.get("selector") or "").strip()
        if not text or not locator:
            return None
        raw_options = payload.get("options") or []
        if not isinstance(raw_options, list):
            return None
        options = clean_options(raw_options)
        return cls(
            text=text,
            field_type=FieldType.parse(payload.get("fieldType")),
            locator=locator,
            required=bool(payload.get("required")),
            options=options,
        )


@dataclass(slots=True)
class ResolvedAnswer:
    question: Question
    answer: str
    source: AnswerSource
    confidence: float
    canonical_key: Optional[str] = None
    file_name: Optional[str] = None

    def to_dict(self, *, preview: Optional[str] = None) -> Dict[str, Any]:
        return {
            "question": self.question.text,
            "fieldType": self.question.field_type.value,
            "locator": self.question.locator,
            "answer": preview if preview is not None else self.answer,
            "source": self.source.value,
            "confidence": round(self.confidence, 3),
            "canonicalKey": self.canonical_key,
            "fileName": self.file_name,
        }


@dataclass(slots=True)
class FieldFillResult:
    question: str
    locator: str
    field_type: FieldType
    status: FillStatus
    preview: str
    code: Optional[FailureCode] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == FillStatus.FILLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "locator": self.locator,
            "fieldType": self.field_type.value,
            "status": self.status.value,
            "preview": self.preview,
            "code": self.code.value if self.code else None,
            "detail": self.detail,
        }


@dataclass(slots=True)
class FillReport:
    results: List[FieldFillResult] = field(default_factory=list)

    @property
    def successes(self) -> int:
        return sum(1 for result in self.results if result.status == FillStatus.FILLED)

    @property
    def failures(self) -> int:
        return sum(1 for result in self.results if result.status == FillStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for result in self.results if result.status == FillStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": self.successes,
            "failures": self.failures,
            "skipped": self.skipped,
            "results": [result.to_dict() for result in self.results],
        }


__all__ = [
    "FieldType",
    "AnswerSource",
    "FillStatus",
    "FailureCode",
    "Question",
    "ResolvedAnswer",
    "FieldFillResult",
    "FillReport",
]
