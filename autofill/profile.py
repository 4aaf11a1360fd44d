"""Canonical profile schema, typed intent accessors and persistence.

The profile is owned by the user. Nothing in the resolution pipeline writes
to it; the only mutations happen through :class:`ProfileStore` on explicit
import or edit.
"""

from __future__ import annotations

from base64 import b64encode
import logging
import mimetypes
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .io_utils import read_json, write_json

STORAGE_KEY = "canonicalProfile"
SCHEMA_VERSION = 1
DEFAULT_DOCUMENT_MIME = "application/pdf"

ProfileValue = Union[str, bool, None]

LOGGER = logging.getLogger(__name__)


class ProfileFormatError(ValueError):
    """Stored profile is unreadable or written by a newer schema."""


def _text(key: str):
    return field(default=None, metadata={"key": key, "kind": "text"})


def _flag(key: str):
    return field(default=None, metadata={"key": key, "kind": "flag"})


def _as_flag(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"yes", "y", "true", "1"}:
        return True
    if lowered in {"no", "n", "false", "0"}:
        return False
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _load_section(cls, data: Any):
    if not isinstance(data, Mapping):
        data = {}
    kwargs = {}
    for item in fields(cls):
        raw = data.get(item.metadata["key"])
        if item.metadata["kind"] == "flag":
            kwargs[item.name] = _as_flag(raw)
        else:
            kwargs[item.name] = _as_text(raw)
    return cls(**kwargs)


def _dump_section(section) -> Dict[str, Any]:
    return {
        item.metadata["key"]: getattr(section, item.name)
        for item in fields(section)
        if getattr(section, item.name) is not None
    }


@dataclass(slots=True)
class PersonalInfo:
    first_name: Optional[str] = _text("firstName")
    last_name: Optional[str] = _text("lastName")
    email: Optional[str] = _text("email")
    phone: Optional[str] = _text("phone")
    city: Optional[str] = _text("city")
    state: Optional[str] = _text("state")
    country: Optional[str] = _text("country")
    gender: Optional[str] = _text("gender")
    date_of_birth: Optional[str] = _text("dateOfBirth")

    @property
    def full_name(self) -> Optional[str]:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) or None


@dataclass(slots=True)
class EeoInfo:
    gender: Optional[str] = _text("gender")
    hispanic: Optional[str] = _text("hispanic")
    veteran: Optional[str] = _text("veteran")
    disability: Optional[str] = _text("disability")
    race: Optional[str] = _text("race")


@dataclass(slots=True)
class WorkAuthorization:
    authorized_us: Optional[bool] = _flag("authorizedUS")
    needs_sponsorship: Optional[bool] = _flag("needsSponsorship")
    driver_license: Optional[bool] = _flag("driverLicense")
    visa_type: Optional[str] = _text("visaType")


@dataclass(slots=True)
class ApplicationAnswers:
    has_relatives: Optional[bool] = _flag("hasRelatives")
    previously_applied: Optional[bool] = _flag("previouslyApplied")
    willing_to_relocate: Optional[bool] = _flag("willingToRelocate")


@dataclass(slots=True)
class SocialLinks:
    linkedin: Optional[str] = _text("linkedin")
    website: Optional[str] = _text("website")
    github: Optional[str] = _text("github")


@dataclass(slots=True)
class StoredDocument:
    base64: str
    file_name: Optional[str] = None
    mime_type: str = DEFAULT_DOCUMENT_MIME

    @property
    def data_url(self) -> str:
        if self.base64.startswith("data:"):
            return self.base64
        return f"data:{self.mime_type};base64,{self.base64}"

    @classmethod
    def from_dict(cls, data: Any) -> Optional["StoredDocument"]:
        if not isinstance(data, Mapping) or not data.get("base64"):
            return None
        return cls(
            base64=str(data["base64"]),
            file_name=_as_text(data.get("fileName")),
            mime_type=_as_text(data.get("mimeType")) or DEFAULT_DOCUMENT_MIME,
        )

    @classmethod
    def from_file(cls, path: Path) -> "StoredDocument":
        mime_type, _ = mimetypes.guess_type(path.name)
        encoded = b64encode(path.read_bytes()).decode("ascii")
        return cls(
            base64=encoded,
            file_name=path.name,
            mime_type=mime_type or DEFAULT_DOCUMENT_MIME,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base64": self.base64,
            "fileName": self.file_name,
            "mimeType": self.mime_type,
        }


@dataclass(slots=True)
class Documents:
    resume: Optional[StoredDocument] = None
    cover_letter: Optional[StoredDocument] = None


@dataclass(slots=True)
class CanonicalProfile:
    personal: PersonalInfo = field(default_factory=PersonalInfo)
    eeo: EeoInfo = field(default_factory=EeoInfo)
    work_authorization: WorkAuthorization = field(default_factory=WorkAuthorization)
    application: ApplicationAnswers = field(default_factory=ApplicationAnswers)
    social: SocialLinks = field(default_factory=SocialLinks)
    documents: Documents = field(default_factory=Documents)
    agreed_to_autofill: bool = False

    def is_complete(self) -> bool:
        return bool(
            self.personal.first_name
            and self.personal.last_name
            and self.personal.email
            and self.agreed_to_autofill
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanonicalProfile":
        documents = data.get("documents") or {}
        consent = data.get("consent") or {}
        return cls(
            personal=_load_section(PersonalInfo, data.get("personal")),
            eeo=_load_section(EeoInfo, data.get("eeo")),
            work_authorization=_load_section(
                WorkAuthorization, data.get("workAuthorization")
            ),
            application=_load_section(ApplicationAnswers, data.get("application")),
            social=_load_section(SocialLinks, data.get("social")),
            documents=Documents(
                resume=StoredDocument.from_dict(documents.get("resume")),
                cover_letter=StoredDocument.from_dict(documents.get("coverLetter")),
            ),
            agreed_to_autofill=bool(_as_flag(consent.get("agreedToAutofill"))),
        )

    def to_dict(self, *, include_documents: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "personal": _dump_section(self.personal),
            "eeo": _dump_section(self.eeo),
            "workAuthorization": _dump_section(self.work_authorization),
            "application": _dump_section(self.application),
            "social": _dump_section(self.social),
            "consent": {"agreedToAutofill": self.agreed_to_autofill},
        }
        documents: Dict[str, Any] = {}
        for key, document in (
            ("resume", self.documents.resume),
            ("coverLetter", self.documents.cover_letter),
        ):
            if not document:
                continue
            if include_documents:
                documents[key] = document.to_dict()
            else:
                documents[key] = {"fileName": document.file_name}
        payload["documents"] = documents
        return payload


# ---------------------------------------------------------------------------
# Typed intent accessors
# ---------------------------------------------------------------------------

INTENT_ACCESSORS: Dict[str, Callable[[CanonicalProfile], ProfileValue]] = {
    "personal.firstName": lambda p: p.personal.first_name,
    "personal.lastName": lambda p: p.personal.last_name,
    "personal.fullName": lambda p: p.personal.full_name,
    "personal.email": lambda p: p.personal.email,
    "personal.phone": lambda p: p.personal.phone,
    "personal.city": lambda p: p.personal.city,
    "personal.state": lambda p: p.personal.state,
    "personal.country": lambda p: p.personal.country,
    "personal.gender": lambda p: p.personal.gender,
    "personal.dateOfBirth": lambda p: p.personal.date_of_birth,
    "eeo.gender": lambda p: p.eeo.gender,
    "eeo.hispanic": lambda p: p.eeo.hispanic,
    "eeo.veteran": lambda p: p.eeo.veteran,
    "eeo.disability": lambda p: p.eeo.disability,
    "eeo.race": lambda p: p.eeo.race,
    "workAuthorization.authorizedUS": lambda p: p.work_authorization.authorized_us,
    "workAuthorization.needsSponsorship": lambda p: p.work_authorization.needs_sponsorship,
    "workAuthorization.driverLicense": lambda p: p.work_authorization.driver_license,
    "workAuthorization.visaType": lambda p: p.work_authorization.visa_type,
    "application.hasRelatives": lambda p: p.application.has_relatives,
    "application.previouslyApplied": lambda p: p.application.previously_applied,
    "application.willingToRelocate": lambda p: p.application.willing_to_relocate,
    "social.linkedin": lambda p: p.social.linkedin,
    "social.website": lambda p: p.social.website,
    "social.github": lambda p: p.social.github,
}

# Intent names the oracle and the shared pattern repository use for the same
# profile fields.
INTENT_ALIASES: Dict[str, str] = {
    "workAuth.usAuthorized": "workAuthorization.authorizedUS",
    "workAuth.authorizedUS": "workAuthorization.authorizedUS",
    "workAuth.sponsorship": "workAuthorization.needsSponsorship",
    "workAuth.needsSponsorship": "workAuthorization.needsSponsorship",
    "workAuth.driverLicense": "workAuthorization.driverLicense",
    "workAuth.visaType": "workAuthorization.visaType",
    "location.country": "personal.country",
    "location.state": "personal.state",
    "location.city": "personal.city",
}


def canonical_intent(intent: str) -> str:
    return INTENT_ALIASES.get(intent, intent)


def is_profile_intent(intent: str) -> bool:
    return canonical_intent(intent) in INTENT_ACCESSORS


def profile_value(profile: CanonicalProfile, intent: str) -> ProfileValue:
    accessor = INTENT_ACCESSORS.get(canonical_intent(intent))
    if accessor is None:
        return None
    return accessor(profile)


def profile_value_text(profile: CanonicalProfile, intent: str) -> Optional[str]:
    value = profile_value(profile, intent)
    if value is None:
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return value or None


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class ProfileStore:
    """JSON-file persistence keyed by a fixed storage key and schema version."""

    def __init__(self, path: Path, *, logger: Optional[logging.Logger] = None) -> None:
        self.path = path
        self._logger = logger or LOGGER

    def load(self) -> Optional[CanonicalProfile]:
        if not self.path.exists():
            self._logger.debug("No profile stored at %s", self.path)
            return None
        try:
            document = read_json(self.path)
        except (OSError, ValueError) as exc:
            raise ProfileFormatError(f"Unreadable profile at {self.path}: {exc}") from exc
        if not isinstance(document, Mapping) or STORAGE_KEY not in document:
            raise ProfileFormatError(f"Profile at {self.path} has no '{STORAGE_KEY}' entry")
        version = document.get("schemaVersion", SCHEMA_VERSION)
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise ProfileFormatError(
                f"Profile schema version {version!r} is not supported (max {SCHEMA_VERSION})"
            )
        body = document[STORAGE_KEY]
        if not isinstance(body, Mapping):
            raise ProfileFormatError(f"Profile at {self.path} is not an object")
        return CanonicalProfile.from_dict(body)

    def save(self, profile: CanonicalProfile) -> Path:
        payload = {"schemaVersion": SCHEMA_VERSION, STORAGE_KEY: profile.to_dict()}
        write_json(self.path, payload)
        self._logger.debug("Saved profile to %s", self.path)
        return self.path


def load_profile(path: Path) -> Optional[CanonicalProfile]:
    return ProfileStore(path).load()


def save_profile(path: Path, profile: CanonicalProfile) -> Path:
    return ProfileStore(path).save(profile)


__all__ = [
    "ProfileFormatError",
    "PersonalInfo",
    "EeoInfo",
    "WorkAuthorization",
    "ApplicationAnswers",
    "SocialLinks",
    "StoredDocument",
    "Documents",
    "CanonicalProfile",
    "INTENT_ACCESSORS",
    "INTENT_ALIASES",
    "canonical_intent",
    "is_profile_intent",
    "profile_value",
    "profile_value_text",
    "ProfileStore",
    "load_profile",
    "save_profile",
]
