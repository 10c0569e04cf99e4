"""System-wide installation lock.

The lock is a plain-text file holding the owner's PID. It is created with
O_CREAT|O_EXCL so two processes can never both believe they created it.
A lock whose PID is dead or unreadable is stale and is reclaimed once.
"""

from __future__ import annotations

import atexit
import logging
import os
from pathlib import Path
from typing import Optional

from .errors import LockError, LockHeld

logger = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Return True if a process with this PID exists."""

    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but is owned by someone else.
        return True
    return True


def read_lock_owner(path: str) -> Optional[int]:
    """Return the PID recorded in a lock file, or None if missing/malformed."""

    try:
        raw = Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    if not raw.isdigit():
        return None
    return int(raw)


class InstallLock:
    """Exclusive lock for the whole machine.

    Usage:
        with InstallLock(paths.lock_file):
            ...
    """

    def __init__(self, path: str):
        self.path = path
        self.acquired = False

    def _try_create(self) -> bool:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()}\n")
        return True

    def acquire(self) -> None:
        """Acquire the lock or raise LockHeld.

        Registers an exit-time release; signal handling is owned by the
        orchestrator, which unwinds through release() as well.
        """

        logger.debug("Attempting to acquire lock: %s", self.path)
        try:
            created = self._try_create()
        except OSError as e:
            raise LockError(f"Failed to create lock file {self.path}: {e}") from e

        if not created:
            owner = read_lock_owner(self.path)
            if owner is not None and pid_alive(owner):
                logger.error("Another instance is already running (PID: %s)", owner)
                logger.error("If you're sure no other instance is running, remove: %s", self.path)
                raise LockHeld(owner, self.path)

            if owner is None:
                logger.warning("Stale lock file found (empty/invalid PID), removing")
            else:
                logger.warning("Stale lock file found (PID: %s), removing", owner)
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass

            if not self._try_create():
                # Someone else won the race after the stale lock was removed.
                raise LockHeld(read_lock_owner(self.path), self.path)

        self.acquired = True
        atexit.register(self.release)
        logger.debug("Lock acquired successfully")

    def release(self) -> None:
        """Remove the lock file if, and only if, this process owns it."""

        if not self.acquired:
            return
        self.acquired = False
        atexit.unregister(self.release)

        owner = read_lock_owner(self.path)
        if owner == os.getpid():
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass
            logger.debug("Lock released successfully")
        else:
            logger.warning(
                "Lock file PID mismatch, not removing (expected: %s, found: %s)", os.getpid(), owner
            )

    def __enter__(self) -> "InstallLock":
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
