from __future__ import annotations

import logging

from .command import run_cmd

logger = logging.getLogger(__name__)

PROBE_HOST = "8.8.8.8"


def is_online(*, host: str = PROBE_HOST, timeout: int = 5, dry_run: bool = False) -> bool:
    """Best-effort online check: one ping with a short deadline."""

    r = run_cmd(["ping", "-c", "1", "-W", str(timeout), host], check=False, dry_run=dry_run)
    if r.returncode != 0:
        logger.debug("No reply from %s", host)
    return r.returncode == 0
