from __future__ import annotations

import logging
from typing import Optional

from ..context import InstallContext
from ..lib.command import run_cmd
from ..templates import package_template, render_template

logger = logging.getLogger(__name__)


class Fail2banPhase:
    phase_id = "configure_fail2ban"
    description = "Setting up fail2ban"
    min_free_gb = 0

    def __init__(self, *, template: Optional[str] = None, target: str = "/etc/fail2ban/jail.local"):
        self.template = template or str(package_template("jail.local.tmpl"))
        self.target = target

    def run(self, ctx: InstallContext) -> None:
        render_template(self.template, self.target, backup_dir=ctx.backup_dir, well_known=ctx.bindings())
        if not run_cmd(["systemctl", "restart", "fail2ban"], check=False).ok:
            logger.warning("Could not restart fail2ban")
        logger.info(
            "fail2ban configured (bantime=%s, maxretry=%s)",
            ctx.config.get("FAIL2BAN_BANTIME"),
            ctx.config.get("FAIL2BAN_MAXRETRY"),
        )
