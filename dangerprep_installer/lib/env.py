from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class InstallPaths:
    lock_file: str = "/var/run/dangerprep-setup.lock"
    state_file: str = "/etc/dangerprep/install-state.conf"
    config_file: str = "/etc/dangerprep/setup-config.conf"
    settings_file: str = "/etc/dangerprep/setup.yaml"
    log_file: str = "/var/log/dangerprep-setup.log"
    backup_root: str = "/var/backups"
    install_root: str = os.environ.get("DANGERPREP_INSTALL_ROOT", "/opt/dangerprep")

    def with_overrides(self, **overrides: Optional[str]) -> "InstallPaths":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


PATHS = InstallPaths()
