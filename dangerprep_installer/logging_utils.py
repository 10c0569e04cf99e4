from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Tuple

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_file

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_CONFIGURED = "_dangerprep_configured"
_LOG_PATH = "_dangerprep_log_path"


def _fallback_log_path() -> str:
    return f"/tmp/dangerprep-setup-{os.getpid()}.log"


def _open_log(log_path: str) -> Tuple[logging.FileHandler, str]:
    """Open the log for appending, falling back to a per-process file in /tmp."""

    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, mode="a", encoding="utf-8"), log_path
    except OSError:
        fallback = _fallback_log_path()
        return logging.FileHandler(fallback, mode="a", encoding="utf-8"), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send every log call to the install log and mirror it on the console.

    Safe to call more than once: later calls only change the level and
    return the file chosen the first time. A dry run as a regular user
    cannot open /var/log, so the log then lands in /tmp.

    Returns the path actually written to.
    """

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED, False):
        return getattr(root, _LOG_PATH, log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    file_handler, chosen = _open_log(log_path)
    handlers: list = [file_handler]
    if also_console:
        handlers.append(logging.StreamHandler())

    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)

    setattr(root, _CONFIGURED, True)
    setattr(root, _LOG_PATH, chosen)

    logging.getLogger(__name__).info("Logging to %s (requested %s)", chosen, log_path)
    return chosen
