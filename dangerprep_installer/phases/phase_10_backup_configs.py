from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from ..context import InstallContext
from ..lib.files import backup_file

logger = logging.getLogger(__name__)

CONFIG_FILES = (
    "/etc/ssh/sshd_config",
    "/etc/sysctl.conf",
    "/etc/fail2ban/jail.conf",
)


class BackupConfigsPhase:
    phase_id = "backup_original_configs"
    description = "Backing up original configurations"
    min_free_gb = 0

    def __init__(self, files: Sequence[str] = CONFIG_FILES):
        self.files = list(files)

    def run(self, ctx: InstallContext) -> None:
        for f in self.files:
            if not Path(f).exists():
                logger.debug("Nothing to back up at %s", f)
                continue
            dst = backup_file(f, ctx.backup_dir)
            logger.info("Backed up %s -> %s", f, dst)
