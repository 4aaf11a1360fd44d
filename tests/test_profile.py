"""
Tests for the canonical profile schema and its persistence.
"""

import json

import pytest

from autofill.profile import (
    CanonicalProfile,
    ProfileFormatError,
    ProfileStore,
    StoredDocument,
    canonical_intent,
    is_profile_intent,
    load_profile,
    profile_value,
    profile_value_text,
    save_profile,
)


class TestProfileSchema:
    def test_flags_are_parsed_from_strings(self, profile):
        assert profile.application.willing_to_relocate is True
        assert profile.work_authorization.needs_sponsorship is False

    def test_completeness_needs_name_email_and_consent(self, profile_data):
        assert CanonicalProfile.from_dict(profile_data).is_complete()
        profile_data["consent"] = {"agreedToAutofill": False}
        assert not CanonicalProfile.from_dict(profile_data).is_complete()
        assert not CanonicalProfile.from_dict({}).is_complete()

    def test_documents_are_left_out_on_request(self, profile):
        profile.documents.resume = StoredDocument(base64="SGVsbG8=", file_name="cv.pdf")
        full = profile.to_dict()
        light = profile.to_dict(include_documents=False)
        assert full["documents"]["resume"]["base64"] == "SGVsbG8="
        assert light["documents"]["resume"] == {"fileName": "cv.pdf"}

    def test_data_url(self):
        document = StoredDocument(base64="SGVsbG8=")
        assert document.data_url == "data:application/pdf;base64,SGVsbG8="
        assert StoredDocument(base64="data:text/plain;base64,eA==").data_url.startswith("data:text/plain")

    def test_document_from_file(self, tmp_path):
        path = tmp_path / "resume.txt"
        path.write_bytes(b"Hello")
        document = StoredDocument.from_file(path)
        assert document.base64 == "SGVsbG8="
        assert document.file_name == "resume.txt"
        assert document.mime_type == "text/plain"


class TestIntentAccessors:
    def test_typed_lookup(self, profile):
        assert profile_value(profile, "personal.firstName") == "Asha"
        assert profile_value(profile, "personal.fullName") == "Asha Rao"
        assert profile_value(profile, "workAuthorization.authorizedUS") is True
        assert profile_value(profile, "unknown.intent") is None

    def test_text_rendering_of_flags(self, profile):
        assert profile_value_text(profile, "workAuthorization.authorizedUS") == "Yes"
        assert profile_value_text(profile, "workAuthorization.needsSponsorship") == "No"
        assert profile_value_text(profile, "eeo.race") is None

    def test_aliases(self, profile):
        assert canonical_intent("workAuth.sponsorship") == "workAuthorization.needsSponsorship"
        assert profile_value(profile, "location.country") == "United States"
        assert is_profile_intent("workAuth.usAuthorized")
        assert not is_profile_intent("custom.favourite-colour")


class TestProfileStore:
    def test_round_trip(self, tmp_path, profile):
        store = ProfileStore(tmp_path / "profile.json")
        store.save(profile)
        loaded = store.load()
        assert loaded == profile
        raw = json.loads((tmp_path / "profile.json").read_text())
        assert raw["schemaVersion"] == 1
        assert raw["canonicalProfile"]["personal"]["firstName"] == "Asha"

    def test_missing_file_is_none(self, tmp_path):
        assert ProfileStore(tmp_path / "absent.json").load() is None

    def test_newer_schema_is_rejected(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text(json.dumps({"schemaVersion": 99, "canonicalProfile": {}}))
        with pytest.raises(ProfileFormatError):
            ProfileStore(path).load()

    def test_malformed_json_is_rejected(self, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text("{not json")
        with pytest.raises(ProfileFormatError):
            ProfileStore(path).load()

    def test_module_helpers(self, tmp_path, profile):
        path = save_profile(tmp_path / "nested" / "profile.json", profile)
        assert load_profile(path) == profile
