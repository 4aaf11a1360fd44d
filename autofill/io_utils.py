"""Run directories and the JSON files written into them."""

from __future__ import annotations

import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"


@dataclass(slots=True)
class RunPaths:
    """Where one autofill run keeps its log, report and screenshots.

    ``base_dir`` holds the log and JSON outputs; screenshots go to a
    per-command subdirectory (``run`` or ``scan``).
    """

    run_id: str
    step_name: str
    base_dir: Path
    step_dir: Path

    def build_path(self, filename: str) -> Path:
        path = self.step_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


def generate_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{secrets.token_hex(3)}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def prepare_run_directories(
    run_id: str, step_name: str, *, data_dir: Optional[Path] = None
) -> RunPaths:
    runs_root = (data_dir or DATA_DIR) / "runs"
    base_dir = runs_root / run_id
    step_dir = base_dir / step_name
    step_dir.mkdir(parents=True, exist_ok=True)
    return RunPaths(run_id=run_id, step_name=step_name, base_dir=base_dir, step_dir=step_dir)


def write_json(path: Path, payload: Any) -> Path:
    """Atomic JSON write: dump to a sibling temp file, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)
    return path


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def append_jsonl(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return path


def relative_artifact_path(path: Path, run_paths: Optional[RunPaths] = None) -> str:
    """Artifact path as stored in reports: relative to the run, else the repo."""
    resolved = path.resolve()
    for anchor in ([run_paths.base_dir.resolve()] if run_paths else []) + [ROOT_DIR]:
        try:
            return str(resolved.relative_to(anchor))
        except ValueError:
            continue
    return str(resolved)


__all__ = [
    "RunPaths",
    "ROOT_DIR",
    "DATA_DIR",
    "generate_run_id",
    "utc_now_iso",
    "prepare_run_directories",
    "write_json",
    "read_json",
    "append_jsonl",
    "relative_artifact_path",
]
