"""Logging for the request throttle.

Emits structured log records to stdout and appends them to an append-only
log file for local review.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("throttle")


def setup_logging(log_file: str, level: str = "INFO") -> None:
    """Configure the throttle logger with stdout and file handlers.

    Args:
        log_file: Path to the append-only log file.
        level: Logger level name; DEBUG also records admitted requests and
            sweeps.
    """
    log_level = logging.getLevelName(level.upper())
    logger.setLevel(log_level)

    if not logger.handlers:
        # Stdout handler
        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(log_level)
        stdout_fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
        stdout_handler.setFormatter(stdout_fmt)
        logger.addHandler(stdout_handler)

        # File handler (append-only)
        log_path = Path(log_file)
        os.makedirs(log_path.parent, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(stdout_fmt)
        logger.addHandler(file_handler)


def log_decision(
    *,
    policy: str,
    client_key: str,
    admitted: bool,
    remaining: Optional[int] = None,
    retry_after: Optional[int] = None,
    path: Optional[str] = None,
) -> None:
    """Log a single throttle decision as one JSON line.

    Rejections are logged at WARNING, admissions at DEBUG.

    Args:
        policy: Name of the policy that was applied.
        client_key: The derived client identity.
        admitted: Whether the request was admitted.
        remaining: Requests left in the window (admitted requests).
        retry_after: Seconds until the window resets (rejected requests).
        path: Request path, if known.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "policy": policy,
        "client_key": client_key,
        "outcome": "admitted" if admitted else "rate_limited",
    }

    if path:
        record["path"] = path

    if admitted:
        record["remaining"] = remaining
        logger.debug(json.dumps(record))
    else:
        record["retry_after"] = retry_after
        logger.warning(json.dumps(record))
