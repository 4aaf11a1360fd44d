"""Question → answer resolution: canonical rules, learned patterns, fuzzy, AI.

Tiers 1-3 are synchronous lookups against the profile and the pattern store.
Whatever they leave unresolved is sent to the oracle concurrently, validated
against the question's options and fed back into the pattern store.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .canonical_rules import (
    FUZZY_RULES,
    RuleKind,
    find_rule,
    infer_intent,
    is_protected_intent,
    protected_intent_for,
    rule_text,
)
from .form_models import AnswerSource, FieldType, Question, ResolvedAnswer
from .logging_utils import preview_answer
from .option_matching import match_option, normalize_question, option_in, yes_no_option
from .oracle import AnswerOracle, OracleAnswer, OracleRequest
from .pattern_store import IntentCollisionError, LearnedPattern, PatternStore
from .profile import (
    CanonicalProfile,
    StoredDocument,
    canonical_intent,
    profile_value,
    profile_value_text,
)

LOGGER = logging.getLogger(__name__)

CUSTOM_INTENT_PREFIX = "custom."
MAX_CUSTOM_INTENT_WORDS = 6


class ProfileMissingError(RuntimeError):
    """Resolution needs a stored profile to map against."""


@dataclass(slots=True)
class ResolverConfig:
    confidence_threshold: float = 0.85
    canonical_confidence: float = 1.0
    fuzzy_confidence: float = 0.9
    ai_option_limit: int = 20


@dataclass(slots=True)
class ResolutionReport:
    answers: List[ResolvedAnswer] = field(default_factory=list)
    unresolved: List[Question] = field(default_factory=list)
    ai_requests: int = 0
    learning_errors: List[Dict[str, str]] = field(default_factory=list)

    def source_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {source.value: 0 for source in AnswerSource}
        for answer in self.answers:
            counts[answer.source.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answers": [
                answer.to_dict(preview=preview_answer(answer.answer, answer.canonical_key))
                for answer in self.answers
            ],
            "unresolved": [question.text for question in self.unresolved],
            "sources": self.source_counts(),
            "aiRequests": self.ai_requests,
            "learningErrors": list(self.learning_errors),
        }


def _constrain(question: Question, answer: Optional[str]) -> Optional[str]:
    """Keep an answer only if it is one of the question's options, when it has any."""
    if answer is None or answer == "":
        return None
    if not question.options:
        return answer
    return option_in(answer, question.options)


def _document_file_name(profile: CanonicalProfile, intent: str, document: StoredDocument) -> str:
    if document.file_name:
        return document.file_name
    if intent == "documents.coverLetter":
        return "cover_letter.pdf"
    first, last = profile.personal.first_name, profile.personal.last_name
    if first and last:
        return f"{first}_{last}_Resume.pdf"
    return "resume.pdf"


def custom_intent_for(question_text: str) -> Optional[str]:
    words = re.findall(r"[a-z0-9]+", normalize_question(question_text))
    if not words:
        return None
    return CUSTOM_INTENT_PREFIX + "-".join(words[:MAX_CUSTOM_INTENT_WORDS])


class ResolutionEngine:
    def __init__(
        self,
        store: PatternStore,
        oracle: Optional[AnswerOracle] = None,
        *,
        config: Optional[ResolverConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.oracle = oracle
        self.config = config or ResolverConfig()
        self._logger = logger or LOGGER

    async def resolve(
        self, questions: Sequence[Question], profile: Optional[CanonicalProfile]
    ) -> List[ResolvedAnswer]:
        report = await self.resolve_with_report(questions, profile)
        return report.answers

    async def resolve_with_report(
        self, questions: Sequence[Question], profile: Optional[CanonicalProfile]
    ) -> ResolutionReport:
        if profile is None:
            raise ProfileMissingError("No canonical profile stored; import one first")

        report = ResolutionReport()
        resolved: Dict[int, ResolvedAnswer] = {}
        pending: List[Tuple[int, Question]] = []

        for index, question in enumerate(questions):
            answer = self.resolve_locally(question, profile)
            if answer and answer.confidence >= self.config.confidence_threshold:
                resolved[index] = answer
                self._logger.info(
                    "Mapped %r -> %r (%s, %.0f%%)",
                    question.text,
                    preview_answer(answer.answer, answer.canonical_key),
                    answer.source.value,
                    answer.confidence * 100,
                )
                continue
            if not self._may_ask_oracle(question):
                report.unresolved.append(question)
                continue
            pending.append((index, question))

        if pending:
            report.ai_requests = len(pending)
            replies = await asyncio.gather(
                *(self._ask(question, profile) for _, question in pending)
            )
            for (index, question), reply in zip(pending, replies):
                if reply is None:
                    report.unresolved.append(question)
                    continue
                answer = self._accept_oracle_answer(question, reply)
                intent = self._intent_for(question, reply, answer, profile)
                if answer is not None and is_protected_intent(intent):
                    self._logger.warning(
                        "Dropping oracle answer for protected intent %s (%r)",
                        intent,
                        question.text,
                    )
                    answer = None
                elif answer is not None:
                    answer.canonical_key = intent
                self._learn(question, reply, intent, answer, profile, report)
                if answer is None:
                    report.unresolved.append(question)
                else:
                    resolved[index] = answer

        report.answers = [resolved[index] for index in sorted(resolved)]
        self._logger.info(
            "Resolved %s/%s questions (%s)",
            len(report.answers),
            len(questions),
            ", ".join(f"{k}={v}" for k, v in report.source_counts().items() if v),
        )
        return report

    # ------------------------------------------------------------------
    # Tiers 1-3
    # ------------------------------------------------------------------

    def resolve_locally(
        self, question: Question, profile: CanonicalProfile
    ) -> Optional[ResolvedAnswer]:
        for tier in (self.match_canonical, self.match_learned, self.match_fuzzy):
            answer = tier(question, profile)
            if answer is not None:
                return answer
        return None

    def match_canonical(
        self, question: Question, profile: CanonicalProfile
    ) -> Optional[ResolvedAnswer]:
        rule = find_rule(question)
        if rule is None:
            return None

        file_name = None
        if rule.kind == RuleKind.DOCUMENT:
            document = (
                profile.documents.cover_letter
                if rule.intent == "documents.coverLetter"
                else profile.documents.resume
            )
            if document is None:
                return None
            candidate: Optional[str] = document.data_url
            file_name = _document_file_name(profile, rule.intent, document)
        elif rule.kind == RuleKind.FLAG:
            flag = profile_value(profile, rule.intent)
            if not isinstance(flag, bool):
                return None
            candidate = yes_no_option(flag, question.options)
        else:
            value = profile_value_text(profile, rule.intent)
            if value is None:
                return None
            candidate = match_option(value, question.options) if question.options else value

        answer = _constrain(question, candidate)
        if answer is None:
            self._logger.debug(
                "Canonical %s has no option for %r", rule.intent, question.text
            )
            return None
        return ResolvedAnswer(
            question=question,
            answer=answer,
            source=AnswerSource.CANONICAL,
            confidence=self.config.canonical_confidence,
            canonical_key=rule.intent,
            file_name=file_name,
        )

    def match_learned(
        self, question: Question, profile: CanonicalProfile
    ) -> Optional[ResolvedAnswer]:
        if question.field_type == FieldType.FILE:
            return None
        pattern = self.store.find(question.text)
        if pattern is None:
            return None
        guarded = protected_intent_for(question)
        if guarded and canonical_intent(pattern.intent) != canonical_intent(guarded):
            self._logger.debug(
                "Ignoring learned %s for protected question %r (%s)",
                pattern.intent,
                question.text,
                guarded,
            )
            return None
        answer = self._answer_from_pattern(pattern, question, profile)
        answer = _constrain(question, answer)
        if answer is None:
            self._logger.debug(
                "Learned pattern %r (%s) has no usable answer for %r",
                pattern.question_pattern,
                pattern.intent,
                question.text,
            )
            return None
        self.store.record_usage(pattern)
        return ResolvedAnswer(
            question=question,
            answer=answer,
            source=AnswerSource.LEARNED,
            confidence=pattern.confidence,
            canonical_key=pattern.intent,
        )

    def _answer_from_pattern(
        self, pattern: LearnedPattern, question: Question, profile: CanonicalProfile
    ) -> Optional[str]:
        protected = is_protected_intent(pattern.intent)
        value = profile_value_text(profile, pattern.intent)
        if protected and value is None:
            return None
        options = question.options

        if options:
            # Protected intents only reuse variants learned for the profile's own value.
            mappings = pattern.answer_mappings
            if protected:
                mapping = pattern.mapping_for(value)
                mappings = [mapping] if mapping else []
            for mapping in mappings:
                for variant in mapping.variants:
                    hit = match_option(variant, options)
                    if hit:
                        return hit
            if value is not None:
                return match_option(value, options)
            return None

        if value is not None:
            mapping = pattern.mapping_for(value)
            if mapping and mapping.variants:
                return mapping.variants[0]
            return value
        for mapping in pattern.answer_mappings:
            if mapping.variants:
                return mapping.variants[0]
        return None

    def match_fuzzy(
        self, question: Question, profile: CanonicalProfile
    ) -> Optional[ResolvedAnswer]:
        if not question.options:
            return None
        text = rule_text(question)
        for predicate, intent in FUZZY_RULES:
            if not predicate(text, question):
                continue
            value = profile_value_text(profile, intent)
            if value is None:
                continue
            hit = match_option(value, question.options)
            if hit:
                return ResolvedAnswer(
                    question=question,
                    answer=hit,
                    source=AnswerSource.FUZZY,
                    confidence=self.config.fuzzy_confidence,
                    canonical_key=intent,
                )
        return None

    # ------------------------------------------------------------------
    # Tier 4
    # ------------------------------------------------------------------

    def _may_ask_oracle(self, question: Question) -> bool:
        if self.oracle is None:
            self._logger.info("No oracle configured; leaving %r unanswered", question.text)
            return False
        if question.field_type == FieldType.FILE:
            self._logger.info("No stored document for upload %r", question.text)
            return False
        protected = protected_intent_for(question)
        if protected:
            self._logger.info(
                "Leaving %r for manual entry (%s needs a profile value)",
                question.text,
                protected,
            )
            return False
        return True

    def build_request(self, question: Question, profile: CanonicalProfile) -> OracleRequest:
        options = question.options
        if len(options) > self.config.ai_option_limit:
            options = []
        return OracleRequest(
            question=question.text,
            field_type=question.field_type.value,
            options=list(options),
            user_profile=profile.to_dict(include_documents=False),
        )

    async def _ask(
        self, question: Question, profile: CanonicalProfile
    ) -> Optional[OracleAnswer]:
        if self.oracle is None:
            return None
        try:
            return await self.oracle.ask(self.build_request(question, profile))
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("Oracle call failed for %r: %s", question.text, exc)
            return None

    def _accept_oracle_answer(
        self, question: Question, reply: OracleAnswer
    ) -> Optional[ResolvedAnswer]:
        answer: Optional[str] = reply.answer
        if question.options:
            answer = option_in(reply.answer, question.options) or match_option(
                reply.answer, question.options
            )
            if answer is None:
                self._logger.warning(
                    "Oracle answer %r is not one of the options for %r",
                    reply.answer,
                    question.text,
                )
                return None
        self._logger.info(
            "Oracle answered %r -> %r (%.0f%%)",
            question.text,
            preview_answer(answer, reply.intent),
            reply.confidence * 100,
        )
        return ResolvedAnswer(
            question=question,
            answer=answer,
            source=AnswerSource.AI,
            confidence=reply.confidence,
            canonical_key=reply.intent,
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def _intent_for(
        self,
        question: Question,
        reply: OracleAnswer,
        answer: Optional[ResolvedAnswer],
        profile: CanonicalProfile,
    ) -> Optional[str]:
        """Oracle classification first, then keyword/value detection."""
        if reply.intent:
            return reply.intent
        if answer is None:
            return None
        return infer_intent(question, answer.answer, profile) or custom_intent_for(
            question.text
        )

    def _learn(
        self,
        question: Question,
        reply: OracleAnswer,
        intent: Optional[str],
        answer: Optional[ResolvedAnswer],
        profile: CanonicalProfile,
        report: ResolutionReport,
    ) -> None:
        if not intent:
            self._logger.debug("Cannot determine intent for %r", question.text)
            return
        protected = is_protected_intent(intent)
        if answer is None and not protected:
            return

        if reply.is_new_intent:
            self._logger.info(
                "Oracle proposed new intent %s (%r) for %r",
                intent,
                reply.suggested_intent_name or intent,
                question.text,
            )
            try:
                self.store.check_new_intent(intent, question.text)
            except IntentCollisionError as exc:
                self._logger.warning("Not learning %r: %s", question.text, exc)
                report.learning_errors.append(
                    {"question": question.text, "intent": exc.intent, "error": str(exc)}
                )
                return

        if answer is None:
            # Only the classification is kept; values must come from the profile.
            self.store.learn(
                question.text,
                intent,
                field_type=question.field_type.value,
                confidence=reply.confidence,
            )
            return

        self.store.learn(
            question.text,
            intent,
            field_type=question.field_type.value,
            canonical_value=profile_value_text(profile, intent) or answer.answer,
            variant=answer.answer,
            context_options=question.options,
            confidence=reply.confidence,
        )
        self._logger.debug("Learned variant %r for %s", answer.answer, intent)


__all__ = [
    "ProfileMissingError",
    "ResolverConfig",
    "ResolutionReport",
    "ResolutionEngine",
    "custom_intent_for",
]
