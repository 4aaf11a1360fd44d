"""Locally persisted knowledge base of learned question patterns."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .io_utils import read_json, utc_now_iso, write_json
from .option_matching import normalize_question, token_similarity
from .profile import is_profile_intent

STORAGE_KEY = "learnedPatterns"
SIMILARITY_THRESHOLD = 0.7
DEFAULT_CONFIDENCE = 0.8

# Mirrors the shared repository's allow-list. Anything else stays local.
SHAREABLE_INTENTS = frozenset(
    {
        "eeo.gender",
        "eeo.hispanic",
        "eeo.veteran",
        "eeo.disability",
        "eeo.race",
        "eeo.lgbtq",
        "workAuth.sponsorship",
        "workAuth.usAuthorized",
        "workAuth.driverLicense",
        "workAuth.visaType",
        "location.country",
        "location.state",
        "application.hasRelatives",
        "application.previouslyApplied",
        "application.ageVerification",
        "application.willingToRelocate",
        "application.willingToTravel",
        "application.workArrangement",
    }
)
# Shared as question wording only; answers never leave the machine.
PATTERN_ONLY_INTENTS = frozenset(
    {
        "personal.firstName",
        "personal.lastName",
        "personal.email",
        "personal.phone",
        "personal.city",
        "education.degree",
        "education.school",
        "education.major",
        "experience.company",
        "experience.title",
    }
)

LOGGER = logging.getLogger(__name__)


class IntentCollisionError(ValueError):
    """A newly proposed intent name is already taken by a different question."""

    def __init__(self, intent: str, existing: str) -> None:
        super().__init__(
            f"Intent '{intent}' already exists for a different question ({existing!r})"
        )
        self.intent = intent
        self.existing = existing


class PatternSource(str, Enum):
    AI = "AI"
    MANUAL = "MANUAL"

    @classmethod
    def parse(cls, raw: Any) -> "PatternSource":
        text = str(raw or "").strip().upper()
        if text == "MANUAL":
            return cls.MANUAL
        return cls.AI


def _union(target: List[str], extra: Iterable[str]) -> bool:
    changed = False
    for item in extra:
        if item and item not in target:
            target.append(item)
            changed = True
    return changed


def _string_list(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    values: List[str] = []
    _union(values, (str(item) for item in raw if item is not None))
    return values


@dataclass(slots=True)
class AnswerMapping:
    canonical_value: str
    variants: List[str] = field(default_factory=list)
    context_options: List[str] = field(default_factory=list)

    def absorb(self, other: "AnswerMapping") -> bool:
        changed = _union(self.variants, other.variants)
        return _union(self.context_options, other.context_options) or changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonicalValue": self.canonical_value,
            "variants": list(self.variants),
            "contextOptions": list(self.context_options),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["AnswerMapping"]:
        value = data.get("canonicalValue")
        if value is None or str(value) == "":
            return None
        return cls(
            canonical_value=str(value),
            variants=_string_list(data.get("variants")),
            context_options=_string_list(data.get("contextOptions")),
        )


@dataclass(slots=True)
class LearnedPattern:
    question_pattern: str
    intent: str
    field_type: str = "TEXT"
    answer_mappings: List[AnswerMapping] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE
    usage_count: int = 0
    last_used: str = ""
    created_at: str = ""
    source: PatternSource = PatternSource.AI
    synced: bool = False
    id: str = ""

    @property
    def key(self) -> tuple:
        return (self.intent, self.question_pattern.lower())

    def mapping_for(self, canonical_value: str) -> Optional[AnswerMapping]:
        for mapping in self.answer_mappings:
            if mapping.canonical_value == canonical_value:
                return mapping
        return None

    def absorb(self, other: "LearnedPattern") -> bool:
        """Union ``other`` into this pattern; the result is order-independent."""
        changed = False
        for incoming in other.answer_mappings:
            existing = self.mapping_for(incoming.canonical_value)
            if existing is None:
                self.answer_mappings.append(
                    AnswerMapping(
                        canonical_value=incoming.canonical_value,
                        variants=list(incoming.variants),
                        context_options=list(incoming.context_options),
                    )
                )
                changed = True
            elif existing.absorb(incoming):
                changed = True
        if other.confidence > self.confidence:
            self.confidence = other.confidence
            changed = True
        if other.last_used > self.last_used:
            self.last_used = other.last_used
        return changed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "questionPattern": self.question_pattern,
            "intent": self.intent,
            "fieldType": self.field_type,
            "answerMappings": [mapping.to_dict() for mapping in self.answer_mappings],
            "confidence": self.confidence,
            "usageCount": self.usage_count,
            "lastUsed": self.last_used,
            "createdAt": self.created_at,
            "source": self.source.value,
            "synced": self.synced,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["LearnedPattern"]:
        question = normalize_question(str(data.get("questionPattern") or ""))
        intent = str(data.get("intent") or data.get("canonicalKey") or "").strip()
        if not question or not intent:
            return None
        mappings = []
        for raw in data.get("answerMappings") or []:
            if isinstance(raw, Mapping):
                mapping = AnswerMapping.from_dict(raw)
                if mapping:
                    mappings.append(mapping)
        try:
            confidence = float(data.get("confidence", DEFAULT_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE
        try:
            usage = int(data.get("usageCount") or 0)
        except (TypeError, ValueError):
            usage = 0
        return cls(
            question_pattern=question,
            intent=intent,
            field_type=str(data.get("fieldType") or "TEXT"),
            answer_mappings=mappings,
            confidence=min(max(confidence, 0.0), 1.0),
            usage_count=usage,
            last_used=str(data.get("lastUsed") or ""),
            created_at=str(data.get("createdAt") or ""),
            source=PatternSource.parse(data.get("source")),
            synced=bool(data.get("synced")),
            id=str(data.get("id") or ""),
        )


def _new_pattern_id() -> str:
    return f"local_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class PatternStore:
    """Explicitly constructed pattern store; one instance per execution context.

    With ``path=None`` the store lives in memory only.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        clock: Callable[[], str] = utc_now_iso,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.path = path
        self._clock = clock
        self._logger = logger or LOGGER
        self._patterns: List[LearnedPattern] = self._load()

    def _load(self) -> List[LearnedPattern]:
        if not self.path or not self.path.exists():
            return []
        try:
            document = read_json(self.path)
        except (OSError, ValueError) as exc:
            self._logger.warning("Ignoring unreadable pattern store %s: %s", self.path, exc)
            return []
        raw_patterns = document.get(STORAGE_KEY, []) if isinstance(document, Mapping) else []
        patterns: List[LearnedPattern] = []
        for raw in raw_patterns if isinstance(raw_patterns, list) else []:
            if not isinstance(raw, Mapping):
                continue
            pattern = LearnedPattern.from_dict(raw)
            if pattern:
                patterns.append(pattern)
        self._logger.debug("Loaded %s learned patterns from %s", len(patterns), self.path)
        return patterns

    def save(self) -> None:
        if not self.path:
            return
        write_json(
            self.path,
            {STORAGE_KEY: [pattern.to_dict() for pattern in self._patterns]},
        )

    @property
    def patterns(self) -> List[LearnedPattern]:
        return list(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def get(self, intent: str, question_text: str) -> Optional[LearnedPattern]:
        key = (intent, normalize_question(question_text).lower())
        for pattern in self._patterns:
            if pattern.key == key:
                return pattern
        return None

    def find(self, question_text: str) -> Optional[LearnedPattern]:
        """Exact normalized match first, then the most similar pattern above 70%."""
        wanted = normalize_question(question_text)
        if not wanted:
            return None
        for pattern in self._patterns:
            if pattern.question_pattern == wanted:
                return pattern
        best: Optional[LearnedPattern] = None
        best_score = 0.0
        for pattern in self._patterns:
            score = token_similarity(wanted, pattern.question_pattern)
            if score >= SIMILARITY_THRESHOLD and score > best_score:
                best, best_score = pattern, score
        return best

    def add(self, pattern: LearnedPattern) -> LearnedPattern:
        """Insert ``pattern`` or merge it into the entry with the same key."""
        pattern.question_pattern = normalize_question(pattern.question_pattern)
        existing = next((p for p in self._patterns if p.key == pattern.key), None)
        now = self._clock()
        if existing is None:
            pattern.id = pattern.id or _new_pattern_id()
            pattern.created_at = pattern.created_at or now
            pattern.last_used = pattern.last_used or now
            self._patterns.append(pattern)
            self._logger.info(
                "Learned new pattern %r -> %s", pattern.question_pattern, pattern.intent
            )
            self.save()
            return pattern
        if existing.absorb(pattern):
            existing.synced = False
            self._logger.debug(
                "Merged new variants into pattern %r (%s)",
                existing.question_pattern,
                existing.intent,
            )
        existing.last_used = max(existing.last_used, now)
        self.save()
        return existing

    def learn(
        self,
        question_text: str,
        intent: str,
        *,
        field_type: str = "TEXT",
        canonical_value: Optional[str] = None,
        variant: Optional[str] = None,
        context_options: Sequence[str] = (),
        confidence: float = DEFAULT_CONFIDENCE,
        source: PatternSource = PatternSource.AI,
    ) -> LearnedPattern:
        mappings: List[AnswerMapping] = []
        if variant:
            mappings.append(
                AnswerMapping(
                    canonical_value=canonical_value or variant,
                    variants=[variant],
                    context_options=list(context_options),
                )
            )
        return self.add(
            LearnedPattern(
                question_pattern=question_text,
                intent=intent,
                field_type=field_type,
                answer_mappings=mappings,
                confidence=confidence,
                source=source,
            )
        )

    def check_new_intent(self, intent: str, question_text: str) -> None:
        """Raise IntentCollisionError when ``intent`` already means something else."""
        if is_profile_intent(intent):
            raise IntentCollisionError(intent, "profile field")
        wanted = normalize_question(question_text)
        owners = [p for p in self._patterns if p.intent == intent]
        if not owners:
            return
        for pattern in owners:
            if pattern.question_pattern == wanted:
                return
            if token_similarity(wanted, pattern.question_pattern) >= SIMILARITY_THRESHOLD:
                return
        raise IntentCollisionError(intent, owners[0].question_pattern)

    def record_usage(self, pattern: LearnedPattern) -> None:
        pattern.usage_count += 1
        pattern.last_used = self._clock()
        self.save()

    def merge_remote(self, remote: Iterable[LearnedPattern]) -> int:
        """Fold patterns pulled from the shared repository into the local store."""
        changed = 0
        for incoming in remote:
            incoming.question_pattern = normalize_question(incoming.question_pattern)
            existing = next((p for p in self._patterns if p.key == incoming.key), None)
            if existing is None:
                incoming.synced = True
                incoming.id = incoming.id or _new_pattern_id()
                self._patterns.append(incoming)
                changed += 1
            elif existing.absorb(incoming):
                changed += 1
        if changed:
            self.save()
        return changed

    def mark_synced(self, patterns: Iterable[LearnedPattern]) -> None:
        for pattern in patterns:
            pattern.synced = True
        self.save()

    def unsynced(self) -> List[LearnedPattern]:
        return [p for p in self._patterns if not p.synced]

    def stats(self) -> Dict[str, Any]:
        breakdown: Dict[str, int] = {}
        for pattern in self._patterns:
            breakdown[pattern.intent] = breakdown.get(pattern.intent, 0) + 1
        synced = sum(1 for p in self._patterns if p.synced)
        return {
            "totalPatterns": len(self._patterns),
            "syncedPatterns": synced,
            "unsyncedPatterns": len(self._patterns) - synced,
            "totalUsage": sum(p.usage_count for p in self._patterns),
            "intentBreakdown": breakdown,
        }


__all__ = [
    "SHAREABLE_INTENTS",
    "PATTERN_ONLY_INTENTS",
    "IntentCollisionError",
    "PatternSource",
    "AnswerMapping",
    "LearnedPattern",
    "PatternStore",
]
