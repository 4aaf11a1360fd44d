"""Runtime configuration assembled from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .io_utils import DATA_DIR

DEFAULT_ORACLE_URL = "http://localhost:8001"
DEFAULT_SCAN_SERVICE_URL = "http://localhost:8001"
DEFAULT_EXCHANGE_URL = "http://localhost:3001"
DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass(slots=True)
class AutofillConfig:
    data_dir: Path
    profile_path: Path
    patterns_path: Path
    oracle_url: str = DEFAULT_ORACLE_URL
    scan_service_url: str = DEFAULT_SCAN_SERVICE_URL
    exchange_url: str = DEFAULT_EXCHANGE_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AutofillConfig":
        env = os.environ if environ is None else environ
        data_dir = Path(env.get("AUTOFILL_DATA_DIR") or DATA_DIR)
        profile_path = Path(
            env.get("AUTOFILL_PROFILE_PATH") or data_dir / "profile.json"
        )
        patterns_path = Path(
            env.get("AUTOFILL_PATTERNS_PATH") or data_dir / "learned_patterns.json"
        )
        return cls(
            data_dir=data_dir,
            profile_path=profile_path,
            patterns_path=patterns_path,
            oracle_url=_strip_url(env.get("AUTOFILL_ORACLE_URL"), DEFAULT_ORACLE_URL),
            scan_service_url=_strip_url(
                env.get("AUTOFILL_SCAN_SERVICE_URL"), DEFAULT_SCAN_SERVICE_URL
            ),
            exchange_url=_strip_url(
                env.get("AUTOFILL_EXCHANGE_URL"), DEFAULT_EXCHANGE_URL
            ),
            http_timeout=_parse_float(
                env.get("AUTOFILL_HTTP_TIMEOUT"), DEFAULT_HTTP_TIMEOUT
            ),
        )


def _strip_url(value: Optional[str], default: str) -> str:
    return (value or default).rstrip("/")


def _parse_float(value: Optional[str], default: float) -> float:
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


__all__ = ["AutofillConfig"]
