from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional

from ..context import InstallContext
from ..errors import CommandError
from ..lib.command import run_cmd
from ..templates import package_template, render_template

logger = logging.getLogger(__name__)


class SshHardeningPhase:
    phase_id = "configure_ssh_hardening"
    description = "Configuring SSH hardening"
    min_free_gb = 0

    def __init__(self, *, template: Optional[str] = None, target: str = "/etc/ssh/sshd_config"):
        self.template = template or str(package_template("sshd_config.tmpl"))
        self.target = target

    def run(self, ctx: InstallContext) -> None:
        backup = render_template(self.template, self.target, backup_dir=ctx.backup_dir, well_known=ctx.bindings())

        check = run_cmd(["sshd", "-t", "-f", self.target], check=False)
        if not check.ok:
            logger.error("SSH configuration is invalid, restoring previous sshd_config")
            if backup is not None:
                shutil.copy2(backup, self.target)
            else:
                Path(self.target).unlink()
            raise CommandError(check.argv, check.returncode, check.stderr)

        if not run_cmd(["systemctl", "restart", "ssh"], check=False).ok:
            logger.warning("Could not restart ssh; the new configuration applies on next restart")
        logger.info("SSH configured on port %s with key-only authentication", ctx.config.ssh_port)
