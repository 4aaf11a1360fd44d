import asyncio
from typing import Dict, List, Optional

import pytest

from autofill.oracle import OracleAnswer, OracleRequest
from autofill.pattern_store import PatternStore
from autofill.profile import CanonicalProfile


class FakeOracle:
    """In-process oracle: canned replies keyed by question text."""

    def __init__(self, replies: Optional[Dict[str, OracleAnswer]] = None, delay: float = 0.01):
        self.replies = replies or {}
        self.delay = delay
        self.requests: List[OracleRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def ask(self, request: OracleRequest) -> Optional[OracleAnswer]:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return self.replies.get(request.question)


# ============ Fixtures ============

@pytest.fixture
def profile_data():
    """Sample canonical profile document."""
    return {
        "personal": {
            "firstName": "Asha",
            "lastName": "Rao",
            "email": "asha@example.com",
            "phone": "+1 555 0100",
            "city": "Austin",
            "state": "Texas",
            "country": "United States",
        },
        "eeo": {
            "gender": "Male",
            "veteran": "I am not a veteran",
        },
        "workAuthorization": {
            "authorizedUS": True,
            "needsSponsorship": False,
        },
        "application": {"willingToRelocate": "yes"},
        "social": {"linkedin": "https://linkedin.com/in/asharao"},
        "consent": {"agreedToAutofill": True},
    }


@pytest.fixture
def profile(profile_data):
    return CanonicalProfile.from_dict(profile_data)


@pytest.fixture
def store(tmp_path):
    return PatternStore(tmp_path / "learned_patterns.json")


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def make_oracle():
    return FakeOracle
