from __future__ import annotations

import logging
import time
from typing import Callable

from ..context import InstallContext
from ..lib import pkg
from ..retry import retry

logger = logging.getLogger(__name__)


class UpdatePackagesPhase:
    phase_id = "update_system_packages"
    description = "Updating system packages"
    min_free_gb = 0

    def __init__(self, *, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(self, ctx: InstallContext) -> None:
        if ctx.skip_updates:
            logger.info("Skipping system package updates (--skip-updates)")
            return

        retry(pkg.apt_update, max_attempts=3, initial_delay=5, max_delay=60, description="apt-get update", sleep=self._sleep)
        retry(pkg.apt_upgrade, max_attempts=3, initial_delay=5, max_delay=60, description="apt-get upgrade", sleep=self._sleep)
        logger.info("System packages updated")
