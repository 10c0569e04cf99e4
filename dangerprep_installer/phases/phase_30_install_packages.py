from __future__ import annotations

import logging
import time
from typing import Callable

from ..context import InstallContext
from ..lib import pkg
from ..retry import retry

logger = logging.getLogger(__name__)


class InstallPackagesPhase:
    phase_id = "install_essential_packages"
    description = "Installing essential packages"
    min_free_gb = 5

    def __init__(self, *, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(self, ctx: InstallContext) -> None:
        wanted = list(ctx.config.packages)
        available = [p for p in wanted if pkg.apt_has_package(p)]
        unknown = sorted(set(wanted) - set(available))
        if unknown:
            logger.warning("Packages not available from apt, skipping: %s", " ".join(unknown))
        if not available:
            logger.info("No packages to install")
            return

        retry(
            lambda: pkg.apt_install(available),
            max_attempts=3,
            initial_delay=5,
            max_delay=60,
            description="apt-get install",
            sleep=self._sleep,
        )
        logger.info("Installed %s package(s)", len(available))
