"""Text normalisation and multi-tier option matching."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

PLACEHOLDER_LABELS = {
    "",
    "-",
    "--",
    "---",
    "select",
    "select...",
    "select one",
    "select an option",
    "choose",
    "choose one",
    "choose an option",
    "please select",
    "please choose",
    "none selected",
}
PLACEHOLDER_PREFIXES = ("select ", "-- select", "please select", "choose a", "choose an")

SYNONYMS = {
    "male": ("man",),
    "female": ("woman",),
    "man": ("male",),
    "woman": ("female",),
}
ABBREVIATIONS = {
    "usa": "united states",
    "us": "united states",
    "u.s.": "united states",
    "uk": "united kingdom",
    "uae": "united arab emirates",
}
MIN_PREFIX_WORD = 3

YES_LABELS = {"yes", "y", "true", "i do", "i am", "i have"}
NO_LABELS = {"no", "n", "false", "i do not", "i don't", "i am not", "i have not"}
TRUTHY = {"yes", "y", "true", "1", "on", "checked", "agree", "i agree"}

_QUESTION_NOISE = re.compile(r"[*?!:]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def normalize_question(text: str) -> str:
    return normalize_text(_QUESTION_NOISE.sub(" ", text or ""))


def token_similarity(left: str, right: str) -> float:
    """Share of words in common, relative to the longer text."""
    left_words = left.split()
    right_words = right.split()
    if not left_words or not right_words:
        return 0.0
    right_set = set(right_words)
    matched = sum(1 for word in left_words if word in right_set)
    return matched / max(len(left_words), len(right_words))


def is_placeholder_option(label: str) -> bool:
    lowered = normalize_text(label)
    if lowered in PLACEHOLDER_LABELS:
        return True
    return lowered.startswith(PLACEHOLDER_PREFIXES)


def clean_options(options: Iterable[str]) -> List[str]:
    """Drop sentinels and duplicates, keeping first-seen order."""
    seen = set()
    cleaned: List[str] = []
    for option in options:
        label = _WHITESPACE.sub(" ", str(option or "").strip())
        if not label or is_placeholder_option(label):
            continue
        key = label.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(label)
    return cleaned


def option_in(value: str, options: Sequence[str]) -> Optional[str]:
    """Case-insensitive membership, returning the option's own spelling."""
    wanted = normalize_text(value)
    for option in options:
        if normalize_text(option) == wanted:
            return option
    return None


def _contains_word(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def match_option(value: str, options: Sequence[str]) -> Optional[str]:
    """Map ``value`` onto one of ``options`` or return None.

    Tiers run in order: exact, synonym, word-bounded containment either way,
    single-word prefix, abbreviation expansion.
    """
    wanted = normalize_text(value)
    if not wanted or not options:
        return None

    exact = option_in(wanted, options)
    if exact:
        return exact

    for synonym in SYNONYMS.get(wanted, ()):
        hit = option_in(synonym, options)
        if hit:
            return hit

    for option in options:
        lowered = normalize_text(option)
        if _contains_word(lowered, wanted) or _contains_word(wanted, lowered):
            return option

    # Multi-word values never prefix-match: "United States" is not "United Kingdom".
    if " " not in wanted and len(wanted) >= MIN_PREFIX_WORD:
        for option in options:
            if any(word.startswith(wanted) for word in normalize_text(option).split()):
                return option

    expanded = ABBREVIATIONS.get(wanted)
    if expanded:
        for option in options:
            if expanded in normalize_text(option):
                return option
    return None


def yes_no_option(flag: bool, options: Sequence[str]) -> str:
    """Answer a yes/no question through the field's own vocabulary."""
    labels = YES_LABELS if flag else NO_LABELS
    word = "yes" if flag else "no"
    for option in options:
        if normalize_text(option) in labels:
            return option
    for option in options:
        if _contains_word(normalize_text(option), word):
            return option
    if not flag:
        for option in options:
            if normalize_text(option).startswith("prefer not"):
                return option
    return "Yes" if flag else "No"


def is_truthy(value: str) -> bool:
    return normalize_text(value) in TRUTHY


__all__ = [
    "normalize_text",
    "normalize_question",
    "token_similarity",
    "is_placeholder_option",
    "clean_options",
    "option_in",
    "match_option",
    "yes_no_option",
    "is_truthy",
]
