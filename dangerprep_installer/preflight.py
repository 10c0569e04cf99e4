from __future__ import annotations

import glob
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .errors import InsufficientDiskSpaceError, PreflightError
from .lib import net, pkg

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = (
    "lsblk",
    "blkid",
    "mount",
    "umount",
    "findmnt",
    "parted",
    "wipefs",
    "partprobe",
    "mkfs.ext4",
    "apt-get",
    "systemctl",
)

MIN_FREE_GB = 10
TMP_MAX_AGE_DAYS = 1
LOG_MAX_AGE_DAYS = 7

_GB = 1024 ** 3


def is_root() -> bool:
    return os.geteuid() == 0


def missing_tools(
    tools: Iterable[str] = REQUIRED_TOOLS,
    *,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> List[str]:
    return [t for t in tools if which(t) is None]


def free_gb(path: str = "/") -> int:
    return shutil.disk_usage(path).free // _GB


def _prune_older_than(paths: Iterable[Path], max_age_days: int, *, now: float) -> int:
    removed = 0
    cutoff = now - max_age_days * 86400
    for p in paths:
        try:
            if p.is_file() and not p.is_symlink() and p.stat().st_mtime < cutoff:
                p.unlink()
                removed += 1
        except OSError as e:
            logger.debug("Could not prune %s: %s", p, e)
    return removed


def cleanup_disk_space(
    *,
    tmp_dir: str = "/tmp",
    log_glob: str = "/var/log/*.log.*",
    dry_run: bool = False,
    now: Optional[float] = None,
) -> None:
    """Free space: apt cache, stale temp files, rotated logs."""

    logger.info("Attempting to free disk space...")
    now = time.time() if now is None else now
    pkg.apt_clean(dry_run=dry_run)
    if dry_run:
        logger.info("Would prune %s (> %s day) and %s (> %s days)", tmp_dir, TMP_MAX_AGE_DAYS, log_glob, LOG_MAX_AGE_DAYS)
        return

    n_tmp = _prune_older_than(Path(tmp_dir).rglob("*"), TMP_MAX_AGE_DAYS, now=now)
    n_log = _prune_older_than((Path(p) for p in glob.glob(log_glob)), LOG_MAX_AGE_DAYS, now=now)
    logger.info("Removed %s stale temp file(s) and %s rotated log(s)", n_tmp, n_log)


def ensure_disk_space(
    required_gb: int,
    operation: str = "installation",
    *,
    path: str = "/",
    cleanup: Callable[[], None] = cleanup_disk_space,
    measure: Callable[[str], int] = free_gb,
) -> None:
    """Make sure ``required_gb`` is free, cleaning up once if it is not."""

    available = measure(path)
    if available >= required_gb:
        logger.debug("Disk space OK for %s: %sGB available", operation, available)
        return

    logger.warning("Low disk space for %s: %sGB available, %sGB required", operation, available, required_gb)
    cleanup()
    available = measure(path)
    if available < required_gb:
        logger.error("Still insufficient disk space after cleanup: %sGB", available)
        raise InsufficientDiskSpaceError(required_gb, available, operation)
    logger.info("Disk space OK after cleanup: %sGB available", available)


def run_preflight(
    *,
    dry_run: bool = False,
    tools: Sequence[str] = REQUIRED_TOOLS,
    min_free_gb: int = MIN_FREE_GB,
) -> List[str]:
    """Check privileges, tools, connectivity and free space.

    Returns the list of problems found. Outside dry-run any problem raises
    PreflightError before anything on the system has been changed.
    """

    logger.info("Running pre-flight checks...")
    problems: List[str] = []

    if not is_root():
        problems.append("root privileges are required")

    missing = missing_tools(tools)
    if missing:
        problems.append("missing required tools: " + ", ".join(missing))

    if not net.is_online():
        problems.append("no network connectivity")

    available = free_gb("/")
    if available < min_free_gb:
        problems.append(f"insufficient disk space: {available}GB available, {min_free_gb}GB required")

    for problem in problems:
        if dry_run:
            logger.warning("Pre-flight (dry run): %s", problem)
        else:
            logger.error("Pre-flight: %s", problem)

    if problems and not dry_run:
        raise PreflightError("; ".join(problems))
    if not problems:
        logger.info("Pre-flight checks passed")
    return problems
