"""
Tests for run orchestration and the command-line entry point.

The browser session and scanner are swapped for fakes; the resolver,
pattern store and report writing run for real.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from autofill import cli, runner
from autofill.config import AutofillConfig
from autofill.form_models import FieldType, FillReport, Question
from autofill.io_utils import prepare_run_directories
from autofill.logging_utils import build_logger
from autofill.profile import CanonicalProfile, ProfileStore
from autofill.scan_service import ScanCache


class FakeSession:
    def __init__(self, config=None, *, logger=None):
        self.config = config
        self.page = MagicMock()
        self.page.url = "https://boards.greenhouse.io/acme/jobs/1"
        self.page.goto = AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def open(self, url):
        return self.page.url

    async def capture(self, run_paths, name):
        return run_paths.build_path(name)


# ============ Fixtures ============

@pytest.fixture
def config(tmp_path):
    return AutofillConfig.from_env({"AUTOFILL_DATA_DIR": str(tmp_path)})


@pytest.fixture
def patched(monkeypatch):
    questions = [
        Question("First Name", FieldType.TEXT, "#first"),
        Question("Email", FieldType.EMAIL, "#email"),
    ]
    fill = AsyncMock(return_value=FillReport())
    monkeypatch.setattr(runner, "BrowserSession", FakeSession)
    monkeypatch.setattr(runner, "scan", AsyncMock(return_value=questions))
    monkeypatch.setattr(runner.FillExecutor, "fill", fill)
    return fill


def _inputs(config, run_id, **overrides):
    run_paths = prepare_run_directories(run_id, "run", data_dir=config.data_dir)
    values = dict(
        url="https://boards.greenhouse.io/acme/jobs/1",
        config=config,
        run_paths=run_paths,
        logger=build_logger(run_paths),
    )
    values.update(overrides)
    return runner.AutofillInputs(**values)


# ============ Runner ============

class TestRunAutofill:
    async def test_missing_profile(self, config, patched):
        result = await runner.run_autofill(_inputs(config, "runner-missing"))
        assert result["status"] == "profile_missing"
        patched.assert_not_awaited()

    async def test_dry_run_resolves_without_filling(self, config, patched, profile):
        ProfileStore(config.profile_path).save(profile)
        result = await runner.run_autofill(_inputs(config, "runner-dry", dry_run=True))
        assert result["status"] == "resolved"
        assert result["site"] == "greenhouse.io"
        assert result["resolution"]["sources"]["CANONICAL"] == 2
        assert result["resolution"]["answers"][1]["answer"] == "***"
        assert result["fill"] is None
        patched.assert_not_awaited()
        report = json.loads((config.data_dir / "runs" / "runner-dry" / "autofill.json").read_text())
        assert report["status"] == "resolved"

    async def test_full_run_fills_resolved_answers(self, config, patched, profile):
        ProfileStore(config.profile_path).save(profile)
        result = await runner.run_autofill(_inputs(config, "runner-full", job_id="42"))
        assert result["status"] == "filled"
        assert result["job_id"] == "42"
        [answers] = patched.await_args.args
        assert [a.answer for a in answers] == ["Asha", "asha@example.com"]
        assert result["artifacts"] == ["run/00_landing.png", "run/01_filled.png"]

    async def test_remote_scan_uses_the_cache_it_is_given(self, config, patched, profile):
        ProfileStore(config.profile_path).save(profile)
        cache = ScanCache()
        cache.put(
            "https://boards.greenhouse.io/acme/jobs/1",
            [Question("Last Name", FieldType.TEXT, "#last")],
        )
        result = await runner.run_autofill(
            _inputs(config, "runner-cached", remote_scan=True, dry_run=True, scan_cache=cache)
        )
        assert [q["text"] for q in result["questions"]] == ["Last Name"]
        assert result["resolution"]["answers"][0]["answer"] == "Rao"
        runner.scan.assert_not_awaited()


# ============ CLI ============

class TestCli:
    def test_profile_import_and_check(self, tmp_path, monkeypatch, capsys, profile_data):
        monkeypatch.setenv("AUTOFILL_DATA_DIR", str(tmp_path))
        source = tmp_path / "me.json"
        source.write_text(json.dumps(profile_data))
        resume = tmp_path / "resume.pdf"
        resume.write_bytes(b"%PDF-1.4")

        cli.main(["profile", "import", str(source), "--resume", str(resume)])
        saved = json.loads(capsys.readouterr().out)
        assert saved["complete"] is True

        cli.main(["profile", "check"])
        check = json.loads(capsys.readouterr().out)
        assert check == {"complete": True, "missing": [], "resume": True, "coverLetter": False}

        stored = ProfileStore(tmp_path / "profile.json").load()
        assert stored.documents.resume.file_name == "resume.pdf"
        assert isinstance(stored, CanonicalProfile)

    def test_manual_pattern(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("AUTOFILL_DATA_DIR", str(tmp_path))
        cli.main(["patterns", "add", "--question", "T-shirt size?", "--intent", "custom.shirt", "--answer", "M"])
        added = json.loads(capsys.readouterr().out)
        assert added["source"] == "MANUAL"
        assert added["confidence"] == 1.0

        cli.main(["patterns", "stats"])
        stats = json.loads(capsys.readouterr().out)
        assert stats["totalPatterns"] == 1

    def test_missing_import_file_exits(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUTOFILL_DATA_DIR", str(tmp_path))
        with pytest.raises(SystemExit):
            cli.main(["profile", "import", str(tmp_path / "absent.json")])
