"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

from .io_utils import RunPaths

SENSITIVE_MARKERS = ("data:", "base64,")
SENSITIVE_INTENTS = {
    "personal.email",
    "personal.phone",
    "personal.dateOfBirth",
    "personal.governmentId",
}


def build_logger(run_paths: RunPaths, verbose: bool = False) -> logging.Logger:
    logger_name = f"autofill.{run_paths.run_id}"
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    if not logger.handlers:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        log_file = run_paths.base_dir / "autofill.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def preview_answer(value: object, intent: Optional[str] = None) -> str:
    return mask_value(value, sensitive=intent in SENSITIVE_INTENTS)


def mask_value(value: object, *, sensitive: bool = False) -> str:
    """Short, log-safe preview of an answer."""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = "" if value is None else str(value)
    if sensitive and text:
        return "***"
    if text.startswith(SENSITIVE_MARKERS):
        return "<file>"
    if len(text) > 40:
        return f"{text[:24]}…"
    return text


__all__ = ["build_logger", "mask_value", "preview_answer", "SENSITIVE_INTENTS"]
