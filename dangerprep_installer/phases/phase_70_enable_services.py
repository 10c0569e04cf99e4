from __future__ import annotations

import logging
import time
from typing import Callable

from ..context import InstallContext
from ..lib.command import run_cmd
from ..retry import retry

logger = logging.getLogger(__name__)


class EnableServicesPhase:
    phase_id = "enable_essential_services"
    description = "Enabling essential services"
    min_free_gb = 0

    def __init__(self, *, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(self, ctx: InstallContext) -> None:
        for svc in ctx.config.services:
            retry(
                lambda svc=svc: run_cmd(["systemctl", "enable", "--now", svc]),
                max_attempts=3,
                initial_delay=5,
                max_delay=60,
                description=f"enable {svc}",
                sleep=self._sleep,
            )
            logger.info("Enabled %s", svc)
