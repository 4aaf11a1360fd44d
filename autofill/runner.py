"""End-to-end autofill run: scan -> resolve -> fill -> report."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from playwright.async_api import Page

from .browser import BrowserConfig, BrowserSession
from .config import AutofillConfig
from .field_scanner import scan
from .form_filling import FillContext, FillExecutor
from .form_models import FillReport, Question
from .io_utils import RunPaths, relative_artifact_path, write_json
from .oracle import OracleClient
from .pattern_store import PatternStore
from .profile import ProfileFormatError, ProfileStore
from .resolver import ResolutionEngine, ResolutionReport
from .scan_service import RemoteScanClient, ScanCache
from .telemetry import (
    FAILURES_FILENAME,
    JsonlFailureSink,
    LoggingFailureSink,
    site_key,
)

REPORT_FILENAME = "autofill.json"


@dataclass(slots=True)
class AutofillInputs:
    url: str
    config: AutofillConfig
    run_paths: RunPaths
    logger: logging.Logger
    job_id: Optional[str] = None
    remote_scan: bool = False
    dry_run: bool = False
    headless: bool = True
    scan_cache: Optional[ScanCache] = None


async def collect_questions(
    page: Page,
    url: str,
    *,
    config: AutofillConfig,
    remote: bool,
    logger: logging.Logger,
    scan_cache: Optional[ScanCache] = None,
) -> List[Question]:
    if remote:
        async with RemoteScanClient(
            config.scan_service_url,
            timeout=config.http_timeout,
            cache=scan_cache,
            logger=logger,
        ) as client:
            questions = await client.scan(url)
        if questions:
            return questions
        logger.info("Remote scan returned nothing, scanning the page locally")
    return await scan(page, logger=logger)


async def scan_url(
    url: str,
    *,
    config: AutofillConfig,
    remote: bool = False,
    headless: bool = True,
    logger: logging.Logger,
    scan_cache: Optional[ScanCache] = None,
) -> List[Question]:
    """Scan ``url`` without resolving or filling anything."""
    async with BrowserSession(BrowserConfig(headless=headless), logger=logger) as browser:
        await browser.open(url)
        return await collect_questions(
            browser.page,
            url,
            config=config,
            remote=remote,
            logger=logger,
            scan_cache=scan_cache,
        )


def _run_status(dry_run: bool, questions: List[Question], fill: Optional[FillReport]) -> str:
    if not questions:
        return "no_questions"
    if dry_run or fill is None:
        return "resolved"
    if fill.failures:
        return "partial"
    return "filled"


async def run_autofill(inputs: AutofillInputs) -> Dict[str, Any]:
    logger = inputs.logger
    run_paths = inputs.run_paths
    config = inputs.config
    artifacts: List[str] = []
    notes: List[str] = []
    questions: List[Question] = []
    resolution: Optional[ResolutionReport] = None
    fill_report: Optional[FillReport] = None
    final_url = inputs.url
    status = "error"

    try:
        profile = ProfileStore(config.profile_path, logger=logger).load()
    except ProfileFormatError as exc:
        logger.error("Profile could not be loaded: %s", exc)
        profile = None
        notes.append(str(exc))

    if profile is None:
        notes.append("No canonical profile stored; run 'autofill profile import' first.")
        status = "profile_missing"
    else:
        if not profile.is_complete():
            logger.warning("Profile is incomplete (name, email or consent missing)")
        store = PatternStore(config.patterns_path, logger=logger)
        try:
            logger.debug("Starting autofill against %s", inputs.url)
            async with BrowserSession(
                BrowserConfig(headless=inputs.headless), logger=logger
            ) as browser:
                page = browser.page
                final_url = await browser.open(inputs.url)
                landing_shot = await browser.capture(run_paths, "00_landing.png")
                artifacts.append(relative_artifact_path(landing_shot, run_paths))

                questions = await collect_questions(
                    page,
                    inputs.url,
                    config=config,
                    remote=inputs.remote_scan,
                    logger=logger,
                    scan_cache=inputs.scan_cache,
                )
                logger.info("Scanned %s questions", len(questions))

                async with OracleClient(
                    config.oracle_url, timeout=config.http_timeout, logger=logger
                ) as oracle:
                    engine = ResolutionEngine(store, oracle, logger=logger)
                    resolution = await engine.resolve_with_report(questions, profile)

                if inputs.dry_run:
                    notes.append("Dry run: nothing was filled.")
                elif resolution.answers:
                    executor = FillExecutor(
                        page,
                        context=FillContext(
                            run_id=run_paths.run_id,
                            url=final_url,
                            job_id=inputs.job_id,
                        ),
                        sinks=[
                            JsonlFailureSink(run_paths.base_dir / FAILURES_FILENAME, logger),
                            LoggingFailureSink(logger),
                        ],
                        logger=logger,
                    )
                    fill_report = await executor.fill(resolution.answers)
                    filled_shot = await browser.capture(run_paths, "01_filled.png")
                    artifacts.append(relative_artifact_path(filled_shot, run_paths))
                final_url = page.url
            status = _run_status(inputs.dry_run, questions, fill_report)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Autofill run failed: %s", exc)
            notes.append(str(exc))
            status = "error"

    result: Dict[str, Any] = {
        "run_id": run_paths.run_id,
        "input_url": inputs.url,
        "final_url": final_url,
        "site": site_key(final_url),
        "job_id": inputs.job_id,
        "status": status,
        "notes": " | ".join(notes) if notes else "",
        "artifacts": artifacts,
        "questions": [question.to_dict() for question in questions],
        "resolution": resolution.to_dict() if resolution else None,
        "fill": fill_report.to_dict() if fill_report else None,
    }
    write_json(run_paths.base_dir / REPORT_FILENAME, result)
    return result


__all__ = [
    "AutofillInputs",
    "REPORT_FILENAME",
    "collect_questions",
    "run_autofill",
    "scan_url",
]
