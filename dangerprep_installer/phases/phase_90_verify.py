from __future__ import annotations

import logging

from ..context import InstallContext
from ..lib.command import run_cmd

logger = logging.getLogger(__name__)


class VerifySetupPhase:
    phase_id = "verify_setup"
    description = "Verifying installation"
    min_free_gb = 0

    def run(self, ctx: InstallContext) -> None:
        problems = 0
        for svc in ctx.config.services:
            r = run_cmd(["systemctl", "is-enabled", svc], check=False)
            if not r.ok:
                logger.warning("Service %s is not enabled", svc)
                problems += 1

        result = ctx.extras.get("storage")
        if result is not None:
            for o in result.outcomes:
                if not o.persisted:
                    logger.warning("%s is not persisted in fstab (%s)", o.target.mountpoint, o.reason or "not mounted")
                    problems += 1

        if problems:
            logger.warning("Verification finished with %s warning(s)", problems)
        else:
            logger.info("Verification passed")
