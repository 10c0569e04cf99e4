from __future__ import annotations

import logging
from typing import Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

# Never stop on a debconf/dpkg prompt.
APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
DPKG_OPTIONS = ["-o", "Dpkg::Options::=--force-confdef", "-o", "Dpkg::Options::=--force-confold"]


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=APT_ENV, dry_run=dry_run)


def apt_upgrade(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "upgrade", "-y", *DPKG_OPTIONS], env=APT_ENV, dry_run=dry_run)


def apt_install(
    packages: Sequence[str],
    *,
    with_recommends: bool = False,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    logger.info("Installing %d package(s): %s", len(packages), " ".join(packages))
    argv = ["apt-get", "install", "-y", *DPKG_OPTIONS]
    if not with_recommends:
        argv.append("--no-install-recommends")
    run_cmd([*argv, *packages], env=APT_ENV, dry_run=dry_run)


def apt_clean(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "clean"], check=False, dry_run=dry_run)


def apt_has_package(package: str, *, dry_run: bool = False) -> bool:
    """Return True if apt knows about a package name."""
    if dry_run:
        return True
    return run_cmd(["apt-cache", "show", package], check=False).returncode == 0
