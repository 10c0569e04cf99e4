from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Dict, Optional, Protocol

from .lib.command import run_cmd
from .lib.files import latest_backup

logger = logging.getLogger(__name__)

CLEANUP_SCRIPT = "scripts/setup/cleanup-dangerprep.sh"

RESTORE_TARGETS: Dict[str, str] = {
    "sshd_config": "/etc/ssh/sshd_config",
    "sysctl.conf": "/etc/sysctl.conf",
}


class Rollback(Protocol):
    def __call__(self, *, backup_dir: str, reason: str) -> None:
        ...


class SystemRollback:
    """Undo what can be undone after a failed install.

    Prefers the project's cleanup script (keeping /data and /content);
    otherwise stops Docker and restores the saved system configs.
    Never raises; the original failure stays the reported one.
    """

    def __init__(self, install_root: str, *, restore_targets: Optional[Dict[str, str]] = None):
        self.install_root = install_root
        self.restore_targets = dict(RESTORE_TARGETS if restore_targets is None else restore_targets)

    def __call__(self, *, backup_dir: str, reason: str) -> None:
        logger.warning("Installation failed (%s), performing rollback...", reason)
        try:
            if self._run_cleanup_script():
                logger.info("Rollback completed using cleanup script")
                return
            self._basic_rollback(backup_dir)
        except Exception:
            logger.exception("Rollback encountered an error")

    def _run_cleanup_script(self) -> bool:
        script = Path(self.install_root) / CLEANUP_SCRIPT
        if not script.is_file():
            logger.debug("No cleanup script at %s", script)
            return False
        logger.info("Using cleanup script for rollback: %s", script)
        r = run_cmd(["bash", str(script), "--preserve-data"], check=False)
        if r.returncode != 0:
            logger.warning("Cleanup script failed (%s), falling back to basic rollback", r.returncode)
            return False
        return True

    def _basic_rollback(self, backup_dir: str) -> None:
        logger.info("Performing basic rollback...")
        run_cmd(["systemctl", "stop", "docker"], check=False)

        for name, target in self.restore_targets.items():
            backup = latest_backup(name, backup_dir)
            if backup is None:
                logger.debug("No backup of %s to restore", name)
                continue
            try:
                shutil.copy2(backup, target)
                logger.info("Restored %s from %s", target, backup)
            except OSError as e:
                logger.error("Failed to restore %s: %s", target, e)
        logger.info("Basic rollback completed")
