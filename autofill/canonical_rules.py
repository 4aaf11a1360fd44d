"""Keyword rules that tie question wording to canonical profile intents."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from .form_models import FieldType, Question
from .option_matching import normalize_text
from .profile import CanonicalProfile, canonical_intent, profile_value


class RuleKind(str, Enum):
    VALUE = "value"
    FLAG = "flag"
    DOCUMENT = "document"


Predicate = Callable[[str, Question], bool]


@dataclass(frozen=True, slots=True)
class CanonicalRule:
    intent: str
    kind: RuleKind
    matches: Predicate


def _any(*needles: str) -> Predicate:
    return lambda text, _question: any(needle in text for needle in needles)


def _all(*needles: str) -> Predicate:
    return lambda text, _question: all(needle in text for needle in needles)


def _word(*words: str) -> Predicate:
    patterns = [re.compile(rf"\b{re.escape(word)}\b") for word in words]
    return lambda text, _question: any(pattern.search(text) for pattern in patterns)


def _both(first: Predicate, second: Predicate) -> Predicate:
    return lambda text, question: first(text, question) and second(text, question)


def _either(*predicates: Predicate) -> Predicate:
    return lambda text, question: any(p(text, question) for p in predicates)


def _is_file(_text: str, question: Question) -> bool:
    return question.field_type == FieldType.FILE


def _locator_has(fragment: str) -> Predicate:
    return lambda _text, question: fragment in question.locator.lower()


def _exactly(*texts: str) -> Predicate:
    return lambda text, _question: text in texts


def _state_not_country(text: str, _question: Question) -> bool:
    return "state" in text and "united" not in text and "statement" not in text


_US = _either(
    _any("united states", "u.s.", "america"),
    _word("us", "usa"),
)

# Order matters: the first matching rule decides the intent.
CANONICAL_RULES: Tuple[CanonicalRule, ...] = (
    CanonicalRule("personal.firstName", RuleKind.VALUE, _any("first name", "given name", "firstname")),
    CanonicalRule("personal.lastName", RuleKind.VALUE, _any("last name", "family name", "surname", "lastname")),
    CanonicalRule("personal.fullName", RuleKind.VALUE, _either(_any("full name", "legal name"), _exactly("name", "your name"))),
    CanonicalRule("personal.email", RuleKind.VALUE, _any("email", "e-mail")),
    CanonicalRule("personal.phone", RuleKind.VALUE, _any("phone", "mobile number", "telephone")),
    CanonicalRule("personal.dateOfBirth", RuleKind.VALUE, _either(_any("date of birth", "birth date", "birthdate"), _word("dob"))),
    CanonicalRule("personal.country", RuleKind.VALUE, _any("country")),
    CanonicalRule("personal.city", RuleKind.VALUE, _word("city")),
    CanonicalRule("personal.state", RuleKind.VALUE, _state_not_country),
    CanonicalRule("social.linkedin", RuleKind.VALUE, _any("linkedin", "linked in", "professional profile")),
    CanonicalRule("social.github", RuleKind.VALUE, _any("github")),
    CanonicalRule("social.website", RuleKind.VALUE, _any("website", "portfolio")),
    CanonicalRule(
        "documents.resume",
        RuleKind.DOCUMENT,
        _both(_is_file, _either(_any("resume", "résumé", "curriculum"), _word("cv"), _locator_has("resume"))),
    ),
    CanonicalRule(
        "documents.coverLetter",
        RuleKind.DOCUMENT,
        _both(_is_file, _either(_any("cover letter", "cover_letter"), _locator_has("cover"))),
    ),
    CanonicalRule("workAuthorization.driverLicense", RuleKind.FLAG, _all("driver", "licen")),
    CanonicalRule(
        "workAuthorization.needsSponsorship",
        RuleKind.FLAG,
        _both(_any("sponsor"), _any("visa", "work", "employment", "government")),
    ),
    CanonicalRule(
        "workAuthorization.authorizedUS",
        RuleKind.FLAG,
        _both(_both(_any("authorized", "authorised", "legally", "eligible"), _any("work")), _US),
    ),
    CanonicalRule("workAuthorization.visaType", RuleKind.VALUE, _any("visa type", "type of visa", "visa status")),
    CanonicalRule(
        "application.hasRelatives",
        RuleKind.FLAG,
        _either(_all("relat", "employee"), _all("friend", "work")),
    ),
    CanonicalRule("application.previouslyApplied", RuleKind.FLAG, _all("previously", "appl")),
    CanonicalRule("application.willingToRelocate", RuleKind.FLAG, _any("relocat")),
    CanonicalRule("eeo.gender", RuleKind.VALUE, _either(_any("gender"), _word("sex"))),
    CanonicalRule("eeo.hispanic", RuleKind.VALUE, _any("hispanic", "latino", "latinx")),
    CanonicalRule("eeo.veteran", RuleKind.VALUE, _any("veteran")),
    CanonicalRule("eeo.disability", RuleKind.VALUE, _any("disability", "disabled")),
    CanonicalRule("eeo.race", RuleKind.VALUE, _either(_word("race"), _any("ethnicity", "ethnic"))),
)

# Registered narrow fallbacks, tried after learned patterns at lower confidence.
FUZZY_RULES: Tuple[Tuple[Predicate, str], ...] = (
    (_either(_any("gender"), _word("sex")), "personal.gender"),
)

PROTECTED_PREFIXES = ("eeo.", "workAuthorization.")
PROTECTED_INTENTS = frozenset(
    {
        "personal.gender",
        "personal.dateOfBirth",
        "personal.governmentId",
    }
)

# Compliance questions with no profile field at all still must not reach the oracle.
_EXTRA_PROTECTED: Tuple[Tuple[Predicate, str], ...] = (
    (_either(_any("social security", "national insurance", "government id", "passport number"), _word("ssn", "sin")), "personal.governmentId"),
    (_any("citizenship", "work permit", "right to work"), "workAuthorization.status"),
    (_any("pronoun", "sexual orientation", "lgbt", "transgender"), "eeo.identity"),
)


def rule_text(question: Question) -> str:
    return normalize_text(question.text)


def find_rule(question: Question) -> Optional[CanonicalRule]:
    text = rule_text(question)
    for rule in CANONICAL_RULES:
        if rule.matches(text, question):
            return rule
    return None


def is_protected_intent(intent: Optional[str]) -> bool:
    if not intent:
        return False
    resolved = canonical_intent(intent)
    if resolved in PROTECTED_INTENTS:
        return True
    if intent.startswith("workAuth."):
        return True
    return resolved.startswith(PROTECTED_PREFIXES)


def protected_intent_for(question: Question) -> Optional[str]:
    """Intent of an EEO/compliance question, whatever the profile holds."""
    text = rule_text(question)
    for rule in CANONICAL_RULES:
        if is_protected_intent(rule.intent) and rule.matches(text, question):
            return rule.intent
    for predicate, intent in _EXTRA_PROTECTED:
        if predicate(text, question):
            return intent
    return None


_ANSWER_INTENTS: Sequence[str] = (
    "eeo.gender",
    "eeo.hispanic",
    "eeo.veteran",
    "eeo.disability",
    "eeo.race",
    "personal.firstName",
    "personal.lastName",
    "personal.email",
    "personal.phone",
    "personal.city",
    "personal.state",
    "personal.country",
    "social.linkedin",
    "social.website",
)


def infer_intent(
    question: Question, answer: str, profile: CanonicalProfile
) -> Optional[str]:
    """Best-effort intent for an answer the oracle did not classify."""
    for intent in _ANSWER_INTENTS:
        value = profile_value(profile, intent)
        if isinstance(value, str) and value and value == answer:
            return intent
    rule = find_rule(question)
    if rule:
        return rule.intent
    return None


__all__ = [
    "RuleKind",
    "CanonicalRule",
    "CANONICAL_RULES",
    "FUZZY_RULES",
    "PROTECTED_INTENTS",
    "find_rule",
    "rule_text",
    "is_protected_intent",
    "protected_intent_for",
    "infer_intent",
]
