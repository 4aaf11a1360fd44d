"""
Tests for option matching and text normalisation.
"""

import pytest

from autofill.option_matching import (
    clean_options,
    is_placeholder_option,
    is_truthy,
    match_option,
    normalize_question,
    option_in,
    token_similarity,
    yes_no_option,
)


class TestMatchOption:
    """Tiers of the option matcher."""

    def test_exact_match_is_case_insensitive(self):
        assert match_option("canada", ["Mexico", "Canada"]) == "Canada"

    def test_synonym_table(self):
        options = ["Man", "Woman", "Non-binary", "Decline to self-identify"]
        assert match_option("Male", options) == "Man"
        assert match_option("Female", options) == "Woman"

    def test_male_does_not_match_inside_female(self):
        assert match_option("Male", ["Female", "Male"]) == "Male"
        assert match_option("Male", ["Female"]) is None

    def test_containment(self):
        options = ["Yes, I am a veteran", "No, I am not a protected veteran"]
        assert match_option("I am not a protected veteran", options) == options[1]

    def test_country_with_dialling_code(self):
        assert match_option("United States", ["Canada +1", "United States +1"]) == "United States +1"

    def test_word_prefix(self):
        assert match_option("Calif", ["Texas", "California"]) == "California"
        assert match_option("Eng", ["Arts", "BSc Engineering"]) == "BSc Engineering"

    def test_multi_word_values_do_not_prefix_match(self):
        assert match_option("United States", ["United Kingdom", "Canada"]) is None
        assert match_option("Engineering degree", ["Arts", "Engineering (BSc)"]) is None

    def test_abbreviation(self):
        assert match_option("USA", ["Canada", "United States of America"]) == "United States of America"
        assert match_option("UK", ["United Kingdom", "Ireland"]) == "United Kingdom"

    def test_no_match_returns_none(self):
        assert match_option("Purple", ["Red", "Green"]) is None
        assert match_option("", ["Red"]) is None
        assert match_option("Red", []) is None


class TestYesNo:
    def test_prefers_exact_labels(self):
        assert yes_no_option(True, ["No", "Yes"]) == "Yes"
        assert yes_no_option(False, ["Yes", "No"]) == "No"

    def test_falls_back_to_word_match(self):
        options = ["Yes, I will require sponsorship", "No, I will not"]
        assert yes_no_option(False, options) == "No, I will not"

    def test_literal_when_no_option_fits(self):
        assert yes_no_option(True, []) == "Yes"
        assert yes_no_option(False, ["Maybe"]) == "No"

    def test_truthy_strings(self):
        assert is_truthy("Yes")
        assert is_truthy(" on ")
        assert not is_truthy("No")


class TestNormalisation:
    def test_placeholders_are_dropped(self):
        assert is_placeholder_option("Select...")
        assert is_placeholder_option("-- Select a country --")
        assert clean_options(["Select...", "Canada", " canada ", "", "Mexico"]) == [
            "Canada",
            "Mexico",
        ]

    def test_question_normalisation(self):
        assert normalize_question("  First   Name* ") == "first name"
        assert normalize_question("Are you 18?") == "are you 18"

    def test_token_similarity(self):
        assert token_similarity("why do you want this job", "why do you want this job") == 1.0
        assert token_similarity("a b c d", "a b x y") == 0.5
        assert token_similarity("", "anything") == 0.0

    def test_option_in_keeps_option_spelling(self):
        assert option_in("YES", ["Yes", "No"]) == "Yes"
        assert option_in("Maybe", ["Yes", "No"]) is None


@pytest.mark.parametrize(
    "value,options,expected",
    [
        ("Texas", ["TX - Texas", "CA - California"], "TX - Texas"),
        ("Woman", ["Female", "Male"], "Female"),
        ("us", ["United States", "Canada"], "United States"),
    ],
)
def test_match_option_cases(value, options, expected):
    assert match_option(value, options) == expected
