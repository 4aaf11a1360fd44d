"""
Tests for keyword rules and protected-intent detection.
"""

import pytest

from autofill.canonical_rules import (
    RuleKind,
    find_rule,
    infer_intent,
    is_protected_intent,
    protected_intent_for,
)
from autofill.form_models import FieldType, Question


def _question(text, field_type=FieldType.TEXT, locator="#q"):
    return Question(text=text, field_type=field_type, locator=locator)


@pytest.mark.parametrize(
    "text,intent",
    [
        ("First Name", "personal.firstName"),
        ("Legal last name *", "personal.lastName"),
        ("Email address", "personal.email"),
        ("LinkedIn Profile URL", "social.linkedin"),
        ("Country of residence", "personal.country"),
        ("State / Province", "personal.state"),
        ("Are you legally authorized to work in the United States?", "workAuthorization.authorizedUS"),
        ("Will you now or in the future require visa sponsorship?", "workAuthorization.needsSponsorship"),
        ("Do you have any relatives who are current employees?", "application.hasRelatives"),
        ("Veteran status", "eeo.veteran"),
        ("Race / Ethnicity", "eeo.race"),
    ],
)
def test_rule_table(text, intent):
    rule = find_rule(_question(text))
    assert rule is not None
    assert rule.intent == intent


def test_united_states_is_not_a_state_question():
    rule = find_rule(_question("Which United States office do you prefer?"))
    assert rule is None or rule.intent != "personal.state"


def test_documents_need_a_file_input():
    assert find_rule(_question("Resume", FieldType.TEXT)) is None
    rule = find_rule(_question("Attach", FieldType.FILE, locator="#resume_upload"))
    assert rule.intent == "documents.resume"
    assert rule.kind == RuleKind.DOCUMENT
    assert find_rule(_question("Cover Letter", FieldType.FILE)).intent == "documents.coverLetter"


def test_flag_rules_are_flags():
    rule = find_rule(_question("Do you have a valid driver's license?"))
    assert rule.intent == "workAuthorization.driverLicense"
    assert rule.kind == RuleKind.FLAG


class TestProtectedIntents:
    def test_prefixes_and_aliases(self):
        assert is_protected_intent("eeo.gender")
        assert is_protected_intent("workAuthorization.visaType")
        assert is_protected_intent("workAuth.sponsorship")
        assert is_protected_intent("personal.dateOfBirth")
        assert not is_protected_intent("personal.firstName")
        assert not is_protected_intent(None)

    def test_keyword_detection_without_profile_field(self):
        assert protected_intent_for(_question("Social Security Number")) == "personal.governmentId"
        assert protected_intent_for(_question("What are your pronouns?")) == "eeo.identity"
        assert protected_intent_for(_question("Gender")) == "eeo.gender"
        assert protected_intent_for(_question("Why do you want this job?")) is None


class TestInferIntent:
    def test_by_profile_value(self, profile):
        assert infer_intent(_question("Preferred city to work from"), "Austin", profile) == "personal.city"

    def test_by_keyword(self, profile):
        assert infer_intent(_question("Your email"), "other@example.com", profile) == "personal.email"

    def test_unknown(self, profile):
        assert infer_intent(_question("Favourite colour"), "Blue", profile) is None
