from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

REDACTED = "<redacted>"

LOGGER_NAME = "tracegrid"


def get_logger(name: str = "") -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def build_logger(log_path: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the package logger once per CLI invocation.

    With a log_path, events go to that file (one JSON object per line);
    otherwise warnings and above go to stderr through rich.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    # Close existing handlers (re-configuration in the same process)
    for h in list(logger.handlers):
        try:
            h.close()
        except Exception:  # noqa: BLE001
            pass
    logger.handlers.clear()

    logger.propagate = False

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_path), encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logger.addHandler(fh)
    else:
        sh = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
        sh.setLevel(logging.DEBUG if verbose else logging.WARNING)
        logger.addHandler(sh)

    return logger


def redact_text(text: str) -> str:
    if not text:
        return text
    return REDACTED


def log_event(logger: logging.Logger, event: Dict, level: int = logging.INFO) -> None:
    logger.log(level, json.dumps(event, ensure_ascii=False, sort_keys=True, default=str))
