"""
Tests for configuration, logging previews, run bookkeeping and telemetry sinks.
"""

import json

from autofill.config import AutofillConfig
from autofill.io_utils import append_jsonl, prepare_run_directories, read_json, write_json
from autofill.logging_utils import build_logger, mask_value, preview_answer
from autofill.telemetry import FieldFailureEvent, JsonlFailureSink, site_key


class TestConfig:
    def test_defaults(self, tmp_path):
        config = AutofillConfig.from_env({"AUTOFILL_DATA_DIR": str(tmp_path)})
        assert config.profile_path == tmp_path / "profile.json"
        assert config.patterns_path == tmp_path / "learned_patterns.json"
        assert config.oracle_url == "http://localhost:8001"
        assert config.exchange_url == "http://localhost:3001"
        assert config.http_timeout == 30.0

    def test_overrides(self, tmp_path):
        config = AutofillConfig.from_env(
            {
                "AUTOFILL_DATA_DIR": str(tmp_path),
                "AUTOFILL_ORACLE_URL": "https://oracle.example.com/",
                "AUTOFILL_HTTP_TIMEOUT": "5",
                "AUTOFILL_PATTERNS_PATH": str(tmp_path / "p.json"),
            }
        )
        assert config.oracle_url == "https://oracle.example.com"
        assert config.http_timeout == 5.0
        assert config.patterns_path == tmp_path / "p.json"

    def test_bad_timeout_falls_back(self):
        assert AutofillConfig.from_env({"AUTOFILL_HTTP_TIMEOUT": "soon"}).http_timeout == 30.0


class TestPreviews:
    def test_sensitive_values_are_masked(self):
        assert preview_answer("asha@example.com", "personal.email") == "***"
        assert preview_answer("Asha", "personal.firstName") == "Asha"
        assert mask_value("data:application/pdf;base64,AAAA") == "<file>"
        assert mask_value(True) == "true"
        assert mask_value("x" * 60).endswith("…")


class TestRunFiles:
    def test_run_directories_and_logger(self, tmp_path):
        run_paths = prepare_run_directories("run-1", "run", data_dir=tmp_path)
        assert run_paths.base_dir == tmp_path / "runs" / "run-1"
        logger = build_logger(run_paths)
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in (run_paths.base_dir / "autofill.log").read_text()

    def test_json_helpers(self, tmp_path):
        path = write_json(tmp_path / "out.json", {"a": 1})
        assert read_json(path) == {"a": 1}
        append_jsonl(tmp_path / "events.jsonl", {"n": 1})
        append_jsonl(tmp_path / "events.jsonl", {"n": 2})
        lines = (tmp_path / "events.jsonl").read_text().splitlines()
        assert [json.loads(line)["n"] for line in lines] == [1, 2]


class TestTelemetry:
    def test_site_key(self):
        assert site_key("https://boards.greenhouse.io/acme/jobs/1") == "greenhouse.io"
        assert site_key("https://www.example.co.uk/careers") == "example.co.uk"
        assert site_key("not a url") == ""

    def test_jsonl_sink(self, tmp_path):
        path = tmp_path / "field_failures.jsonl"
        event = FieldFailureEvent(
            run_id="run-1",
            url="https://jobs.lever.co/acme/1",
            code="NO_DOM_MATCH",
            field={"question": "First Name"},
            job_id="42",
            site="lever.co",
        )
        JsonlFailureSink(path).emit(event)
        [line] = path.read_text().splitlines()
        payload = json.loads(line)
        assert payload["runId"] == "run-1"
        assert payload["jobId"] == "42"
        assert payload["code"] == "NO_DOM_MATCH"
        assert payload["field"]["question"] == "First Name"
