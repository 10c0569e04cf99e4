from __future__ import annotations

from dataclasses import dataclass, field

from .config import InstallConfig
from .lib.env import InstallPaths
from .lib.prompt import Prompter


@dataclass(frozen=True)
class InstallContext:
    """Everything a phase may read. Passed explicitly; there are no globals."""

    config: InstallConfig
    paths: InstallPaths
    backup_dir: str
    temp_dir: str
    prompter: Prompter
    dry_run: bool = False
    skip_updates: bool = False
    storage_consent: bool = False
    extras: dict = field(default_factory=dict)

    def bindings(self):
        return self.config.template_bindings(install_root=self.paths.install_root)
