"""Command-line interface for the autofill toolkit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from .config import AutofillConfig
from .io_utils import generate_run_id, prepare_run_directories, read_json
from .logging_utils import build_logger
from .pattern_exchange import ExchangeError, PatternExchangeClient
from .pattern_store import PatternSource, PatternStore
from .profile import CanonicalProfile, ProfileFormatError, ProfileStore, StoredDocument
from .runner import AutofillInputs, run_autofill, scan_url
from .scan_service import ScanCache


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fill job-application forms from a stored candidate profile"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--run-id", dest="run_id", help="Optional run identifier")
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    run_parser = subparsers.add_parser(
        "run", help="Scan, resolve and fill an application form", parents=[common]
    )
    _add_page_arguments(run_parser)
    run_parser.add_argument("--job-id", dest="job_id", help="Job identifier for telemetry")
    run_parser.add_argument(
        "--dry-run", action="store_true", help="Stop after resolving answers"
    )

    scan_parser = subparsers.add_parser(
        "scan", help="Print the questions found on a page", parents=[common]
    )
    _add_page_arguments(scan_parser)

    profile_parser = subparsers.add_parser("profile", help="Manage the canonical profile")
    profile_sub = profile_parser.add_subparsers(dest="action", required=True)
    profile_sub.add_parser("show", help="Print the stored profile (documents omitted)")
    profile_sub.add_parser("check", help="Report whether the profile is complete")
    import_parser = profile_sub.add_parser("import", help="Store a profile JSON file")
    import_parser.add_argument("path", type=Path, help="Profile JSON file")
    import_parser.add_argument("--resume", type=Path, help="Resume file to attach")
    import_parser.add_argument(
        "--cover-letter", dest="cover_letter", type=Path, help="Cover letter file to attach"
    )

    patterns_parser = subparsers.add_parser("patterns", help="Manage learned patterns")
    patterns_sub = patterns_parser.add_subparsers(dest="action", required=True)
    patterns_sub.add_parser("stats", help="Summarise the local pattern store")
    patterns_sub.add_parser("list", help="Print every learned pattern")
    add_parser = patterns_sub.add_parser("add", help="Teach a pattern by hand")
    add_parser.add_argument("--question", required=True, help="Question wording")
    add_parser.add_argument("--intent", required=True, help="Intent name, e.g. eeo.veteran")
    add_parser.add_argument("--answer", required=True, help="Answer to reuse")
    sync_parser = patterns_sub.add_parser("sync", help="Pull shared patterns")
    sync_parser.add_argument("--since", help="Only patterns changed after this ISO timestamp")
    patterns_sub.add_parser("upload", help="Push unsynced shareable patterns")

    return parser


def _add_page_arguments(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument("--url", required=True, help="Application form URL")
    subparser.add_argument(
        "--remote-scan",
        dest="remote_scan",
        action="store_true",
        help="Ask the scan service for the question list",
    )
    subparser.add_argument(
        "--headed", action="store_true", help="Show the browser window"
    )


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _profile_command(args: argparse.Namespace, config: AutofillConfig) -> Dict[str, Any]:
    store = ProfileStore(config.profile_path)
    if args.action == "import":
        document = read_json(args.path)
        if isinstance(document, dict) and "canonicalProfile" in document:
            document = document["canonicalProfile"]
        if not isinstance(document, dict):
            raise ProfileFormatError(f"{args.path} does not contain a profile object")
        profile = CanonicalProfile.from_dict(document)
        if args.resume:
            profile.documents.resume = StoredDocument.from_file(args.resume)
        if args.cover_letter:
            profile.documents.cover_letter = StoredDocument.from_file(args.cover_letter)
        path = store.save(profile)
        return {"saved": str(path), "complete": profile.is_complete()}

    profile = store.load()
    if profile is None:
        return {"error": f"No profile stored at {config.profile_path}"}
    if args.action == "check":
        missing = [
            name
            for name, value in (
                ("personal.firstName", profile.personal.first_name),
                ("personal.lastName", profile.personal.last_name),
                ("personal.email", profile.personal.email),
                ("consent.agreedToAutofill", profile.agreed_to_autofill),
            )
            if not value
        ]
        return {
            "complete": profile.is_complete(),
            "missing": missing,
            "resume": bool(profile.documents.resume),
            "coverLetter": bool(profile.documents.cover_letter),
        }
    return profile.to_dict(include_documents=False)


async def _patterns_command(args: argparse.Namespace, config: AutofillConfig) -> Any:
    store = PatternStore(config.patterns_path)
    if args.action == "stats":
        return store.stats()
    if args.action == "list":
        return [pattern.to_dict() for pattern in store.patterns]
    if args.action == "add":
        pattern = store.learn(
            args.question,
            args.intent,
            canonical_value=args.answer,
            variant=args.answer,
            confidence=1.0,
            source=PatternSource.MANUAL,
        )
        return pattern.to_dict()

    async with PatternExchangeClient(
        config.exchange_url, timeout=config.http_timeout
    ) as client:
        if args.action == "sync":
            changed = await client.sync(store, since=args.since)
            return {"changed": changed, "total": len(store)}
        uploaded, skipped = await client.push(store)
        return {"uploaded": uploaded, "skipped": skipped}


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AutofillConfig.from_env()

    if args.command in ("profile", "patterns"):
        logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
        try:
            if args.command == "profile":
                result = _profile_command(args, config)
            else:
                result = asyncio.run(_patterns_command(args, config))
        except (ProfileFormatError, ExchangeError, OSError, ValueError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            sys.exit(1)
        _print(result)
        return

    run_id = getattr(args, "run_id", None) or generate_run_id()
    run_paths = prepare_run_directories(run_id, args.command, data_dir=config.data_dir)
    logger = build_logger(run_paths, verbose=getattr(args, "verbose", False))
    scan_cache = ScanCache()

    if args.command == "run":
        inputs = AutofillInputs(
            url=args.url,
            config=config,
            run_paths=run_paths,
            logger=logger,
            job_id=args.job_id,
            remote_scan=args.remote_scan,
            dry_run=args.dry_run,
            headless=not args.headed,
            scan_cache=scan_cache,
        )
        result = asyncio.run(run_autofill(inputs))
    elif args.command == "scan":
        questions = asyncio.run(
            scan_url(
                args.url,
                config=config,
                remote=args.remote_scan,
                headless=not args.headed,
                logger=logger,
                scan_cache=scan_cache,
            )
        )
        result = [question.to_dict() for question in questions]
    else:
        parser.error(f"Unknown command: {args.command}")

    _print(result)


if __name__ == "__main__":  # pragma: no cover
    main()
