"""
Traceback log for the telescope command line.

Users see a one-line message; the full traceback goes to
``telescope-errors.log`` in the store directory in use.
"""

import os
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

ERROR_LOG_FILENAME = "telescope-errors.log"


def error_log_path(store_path: Path) -> Path:
    return Path(store_path) / ERROR_LOG_FILENAME


def log_exception(exc: BaseException, store_path: Path, context: str = "") -> Path:
    """
    Append an exception and its traceback to the store's error log.

    Args:
        exc: The exception that occurred
        store_path: Store directory the failing command was using
        context: Where it happened (e.g. "telescope CLI")

    Returns:
        Path to the error log file
    """
    log_path = error_log_path(store_path)
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    lines = [
        "=" * 60,
        f"{header} {type(exc).__name__}: {exc}",
        f"argv: {' '.join(sys.argv)}",
        "".join(traceback.format_exception(exc)).rstrip(),
    ]
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write("\n" + "\n".join(lines) + "\n")
    except OSError:
        pass  # The original error is still reported on stderr
    return log_path
