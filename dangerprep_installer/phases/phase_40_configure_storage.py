from __future__ import annotations

import logging
from typing import Callable, Optional

from ..context import InstallContext
from ..storage import StoragePartitioner, StorageState

logger = logging.getLogger(__name__)


class ConfigureStoragePhase:
    phase_id = "configure_nvme_storage"
    description = "Configuring NVMe storage"
    min_free_gb = 0

    def __init__(self, factory: Optional[Callable[[InstallContext], StoragePartitioner]] = None):
        self._factory = factory or (lambda ctx: StoragePartitioner(backup_dir=ctx.backup_dir))

    def run(self, ctx: InstallContext) -> None:
        partitioner = self._factory(ctx)
        result = partitioner.configure(consent=ctx.storage_consent, device_path=ctx.config.nvme_device)
        ctx.extras["storage"] = result

        if result.state is StorageState.SKIPPED:
            logger.warning("NVMe storage not configured (%s); it can be configured manually later", result.reason)
        else:
            logger.info(
                "NVMe storage configured: %s (%s, %s)",
                result.device,
                result.state.value,
                "new partitions" if result.formatted else "existing partitions",
            )
