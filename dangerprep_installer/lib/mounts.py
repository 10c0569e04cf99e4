from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)

PROBE_NAME = ".mount-test"


def mount_source(mountpoint: str) -> Optional[str]:
    """Device currently mounted at ``mountpoint``, or None."""

    r = run_cmd(["findmnt", "-n", "-o", "SOURCE", mountpoint], check=False)
    if r.returncode != 0:
        return None
    return r.stdout.strip() or None


def mount(source: str, mountpoint: str) -> bool:
    Path(mountpoint).mkdir(parents=True, exist_ok=True)
    r = run_cmd(["mount", source, mountpoint], check=False)
    if r.returncode != 0:
        logger.error("Failed to mount %s on %s: %s", source, mountpoint, r.stderr.strip())
        return False
    return True


def unmount(mountpoint: str) -> bool:
    return run_cmd(["umount", mountpoint], check=False).returncode == 0


def unmount_escalating(mountpoint: str) -> Optional[str]:
    """Unmount trying normal, forced, then lazy unmount.

    Returns the method that worked, or None if every attempt failed.
    """

    for method, argv in (
        ("normal", ["umount", mountpoint]),
        ("forced", ["umount", "-f", mountpoint]),
        ("lazy", ["umount", "-l", mountpoint]),
    ):
        if run_cmd(argv, check=False).returncode == 0:
            if method == "lazy":
                logger.warning("Lazy unmounted %s (will complete when no longer busy)", mountpoint)
            else:
                logger.info("Unmounted %s (%s)", mountpoint, method)
            return method
    logger.warning("Failed to unmount %s", mountpoint)
    return None


def verify_writable(mountpoint: str) -> bool:
    """Write and remove a probe file to prove the mount accepts writes."""

    probe = Path(mountpoint) / PROBE_NAME
    try:
        probe.write_text("ok\n", encoding="utf-8")
        os.unlink(probe)
    except OSError as e:
        logger.warning("Mount %s is not writable: %s", mountpoint, e)
        return False
    return True


def sync() -> None:
    run_cmd(["sync"], check=False)
