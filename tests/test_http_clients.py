"""
Tests for the oracle, scan-service and pattern-exchange HTTP clients.

All traffic goes through ``httpx.MockTransport``; nothing leaves the process.
"""

import json

import httpx
import pytest

from autofill.oracle import OracleClient, OracleRequest
from autofill.pattern_exchange import (
    ExchangeError,
    PatternExchangeClient,
    shared_intent,
    upload_payload,
)
from autofill.pattern_store import LearnedPattern, PatternStore
from autofill.scan_service import RemoteScanClient, ScanCache, questions_from_payload


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ============ Oracle ============

class TestOracleClient:
    async def test_predict(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"answer": "Blue", "confidence": 0.95, "intent": "custom.colour", "isNewIntent": True},
            )

        async with _client(handler) as http:
            oracle = OracleClient("http://oracle.local/", client=http)
            reply = await oracle.ask(
                OracleRequest(question="Favourite colour?", field_type="TEXT", options=[], user_profile={})
            )
        assert seen["path"] == "/predict"
        assert seen["body"]["question"] == "Favourite colour?"
        assert seen["body"]["fieldType"] == "TEXT"
        assert reply.answer == "Blue"
        assert reply.confidence == 0.95
        assert reply.is_new_intent

    async def test_missing_confidence_defaults(self):
        async with _client(lambda request: httpx.Response(200, json={"answer": "Yes"})) as http:
            reply = await OracleClient("http://oracle.local", client=http).ask(
                OracleRequest(question="Q", field_type="TEXT")
            )
        assert reply.confidence == 0.8
        assert reply.intent is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, text="boom"),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"answer": ""}),
            httpx.Response(200, json=["Yes"]),
        ],
    )
    async def test_failures_become_none(self, response):
        async with _client(lambda request: response) as http:
            reply = await OracleClient("http://oracle.local", client=http).ask(
                OracleRequest(question="Q", field_type="TEXT")
            )
        assert reply is None


# ============ Scan service ============

class TestScanService:
    async def test_scan_is_cached(self):
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"questionText": "First Name", "fieldType": "text", "selector": "#first"},
                        {"text": "Country", "fieldType": "select", "locator": "#country", "options": ["Canada"]},
                        {"text": "", "locator": "#nothing"},
                    ]
                },
            )

        async with _client(handler) as http:
            client = RemoteScanClient("http://scan.local", client=http, cache=ScanCache())
            first = await client.scan("https://jobs.example.com/apply")
            second = await client.scan("https://jobs.example.com/apply")
        assert [q.text for q in first] == ["First Name", "Country"]
        assert second == first
        assert calls == [{"url": "https://jobs.example.com/apply"}]

    async def test_errors_give_an_empty_list(self):
        async with _client(lambda request: httpx.Response(502)) as http:
            client = RemoteScanClient("http://scan.local", client=http, cache=ScanCache())
            assert await client.scan("https://jobs.example.com/apply") == []

    def test_payload_shapes(self):
        item = {"text": "Email", "fieldType": "EMAIL", "locator": "#email"}
        assert len(questions_from_payload([item])) == 1
        assert len(questions_from_payload({"data": {"questions": [item]}})) == 1
        with pytest.raises(ValueError):
            questions_from_payload({"data": "nope"})

    def test_remote_options_are_cleaned(self):
        item = {
            "text": "Country",
            "fieldType": "select",
            "locator": "#country",
            "options": ["Select...", "Canada", "canada", "-- Select --", " Mexico "],
        }
        [question] = questions_from_payload([item])
        assert question.options == ["Canada", "Mexico"]

    def test_cache_expiry(self):
        now = {"t": 0.0}
        cache = ScanCache(ttl=300, clock=lambda: now["t"])
        cache.put("u", [])
        now["t"] = 299
        assert cache.get("u") == []
        now["t"] = 300
        assert cache.get("u") is None


# ============ Pattern exchange ============

def _learned(store, question, intent, answer):
    return store.learn(question, intent, canonical_value=answer, variant=answer, confidence=0.9)


class TestPatternExchange:
    def test_upload_payload_respects_allow_list(self):
        store = PatternStore()
        veteran = _learned(store, "Veteran status", "eeo.veteran", "No")
        sponsorship = _learned(store, "Need sponsorship?", "workAuthorization.needsSponsorship", "No")
        name = _learned(store, "Given name", "personal.firstName", "Asha")
        custom = _learned(store, "Pets?", "custom.pets", "Cat")

        assert upload_payload(veteran)["answerMappings"][0]["canonicalValue"] == "No"
        assert upload_payload(sponsorship)["intent"] == "workAuth.sponsorship"
        assert upload_payload(name)["answerMappings"] == []
        assert upload_payload(custom) is None
        assert shared_intent("personal.country") == "location.country"

    async def test_push_marks_uploaded_patterns_synced(self):
        store = PatternStore()
        _learned(store, "Veteran status", "eeo.veteran", "No")
        _learned(store, "Given name", "personal.firstName", "Asha")
        _learned(store, "Pets?", "custom.pets", "Cat")
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "uploaded": 2, "skipped": 0})

        async with _client(handler) as http:
            uploaded, skipped = await PatternExchangeClient("http://hub.local", client=http).push(store)

        assert seen["path"] == "/api/patterns/batch-upload"
        assert [p["intent"] for p in seen["body"]["patterns"]] == ["eeo.veteran", "personal.firstName"]
        assert (uploaded, skipped) == (2, 1)
        assert [p.intent for p in store.unsynced()] == ["custom.pets"]

    async def test_sync_merges_with_local_names(self):
        store = PatternStore()
        seen = {}

        def handler(request):
            seen["since"] = request.url.params.get("since")
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "total": 1,
                    "patterns": [
                        {
                            "id": "pattern_1",
                            "questionPattern": "Do you require sponsorship?",
                            "intent": "workAuth.sponsorship",
                            "answerMappings": [{"canonicalValue": "No", "variants": ["No"]}],
                            "confidence": 0.9,
                            "usageCount": 12,
                        }
                    ],
                },
            )

        async with _client(handler) as http:
            changed = await PatternExchangeClient("http://hub.local", client=http).sync(
                store, since="2024-01-01T00:00:00Z"
            )

        assert changed == 1
        assert seen["since"] == "2024-01-01T00:00:00Z"
        pattern = store.get("workAuthorization.needsSponsorship", "Do you require sponsorship?")
        assert pattern.synced
        assert pattern.usage_count == 0
        assert pattern.id.startswith("local_")

    async def test_server_errors_are_raised(self):
        async with _client(lambda request: httpx.Response(500, json={"success": False})) as http:
            with pytest.raises(ExchangeError):
                await PatternExchangeClient("http://hub.local", client=http).stats()

    async def test_stats(self):
        body = {"success": True, "stats": {"totalPatterns": 3}}
        async with _client(lambda request: httpx.Response(200, json=body)) as http:
            assert await PatternExchangeClient("http://hub.local", client=http).stats() == {"totalPatterns": 3}


def test_learned_pattern_wire_names():
    pattern = LearnedPattern.from_dict({"questionPattern": "Q?", "canonicalKey": "eeo.race"})
    assert pattern.intent == "eeo.race"
    assert pattern.question_pattern == "q"
