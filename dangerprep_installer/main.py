from __future__ import annotations

import argparse
from typing import List, Optional

from . import __version__
from .lib.env import PATHS
from .orchestrator import Orchestrator, RunOptions
from .phases import (
    BackupConfigsPhase,
    ConfigureStoragePhase,
    EnableServicesPhase,
    Fail2banPhase,
    InstallPackagesPhase,
    SshHardeningPhase,
    UpdatePackagesPhase,
    VerifySetupPhase,
)


def build_phases():
    return [
        BackupConfigsPhase(),
        UpdatePackagesPhase(),
        InstallPackagesPhase(),
        ConfigureStoragePhase(),
        SshHardeningPhase(),
        Fail2banPhase(),
        EnableServicesPhase(),
        VerifySetupPhase(),
    ]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dangerprep-setup",
        description="Install and configure a DangerPrep appliance. Interrupted or failed runs resume where they stopped.",
    )
    p.add_argument("-d", "--dry-run", action="store_true", help="Show what would be done without making changes")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("-s", "--skip-updates", action="store_true", help="Skip system package updates")
    p.add_argument("-f", "--force", action="store_true", help="Discard saved state and run every phase again")
    p.add_argument(
        "--non-interactive",
        "--batch",
        dest="non_interactive",
        action="store_true",
        help="Use defaults and never prompt",
    )
    p.add_argument("--force-interactive", action="store_true", help="Prompt even without a terminal")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    paths = p.add_argument_group("paths")
    paths.add_argument("--lock", default=None, help=f"Lock file (default: {PATHS.lock_file})")
    paths.add_argument("--state", default=None, help=f"Phase state file (default: {PATHS.state_file})")
    paths.add_argument("--config-snapshot", default=None, help=f"Saved configuration (default: {PATHS.config_file})")
    paths.add_argument("--settings", default=None, help=f"YAML settings file (default: {PATHS.settings_file})")
    paths.add_argument("--log", default=None, help=f"Log file (default: {PATHS.log_file})")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    if args.non_interactive and args.force_interactive:
        p.error("--non-interactive and --force-interactive are mutually exclusive")

    paths = PATHS.with_overrides(
        lock_file=args.lock,
        state_file=args.state,
        config_file=args.config_snapshot,
        settings_file=args.settings,
        log_file=args.log,
    )
    options = RunOptions(
        dry_run=args.dry_run,
        verbose=args.verbose,
        skip_updates=args.skip_updates,
        force=args.force,
        non_interactive=args.non_interactive,
        force_interactive=args.force_interactive,
    )
    return Orchestrator(paths, options).run(build_phases())
