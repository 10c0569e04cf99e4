"""
Pytest configuration and shared fixtures for dangerprep-installer tests.

System commands are never executed: every module's ``run_cmd`` is replaced
by a recording fake that answers from a small rule table.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from dangerprep_installer.config import DEFAULTS, InstallConfig
from dangerprep_installer.context import InstallContext
from dangerprep_installer.errors import CommandError
from dangerprep_installer.lib.command import CmdResult
from dangerprep_installer.lib.env import InstallPaths
from dangerprep_installer.lib.prompt import Prompter

TIB = 1024 ** 4
GIB = 1024 ** 3

RUN_CMD_TARGETS = [
    "dangerprep_installer.lib.block.run_cmd",
    "dangerprep_installer.lib.mounts.run_cmd",
    "dangerprep_installer.lib.fstab.run_cmd",
    "dangerprep_installer.lib.net.run_cmd",
    "dangerprep_installer.lib.pkg.run_cmd",
    "dangerprep_installer.storage.run_cmd",
    "dangerprep_installer.rollback.run_cmd",
    "dangerprep_installer.phases.phase_50_ssh_hardening.run_cmd",
    "dangerprep_installer.phases.phase_55_fail2ban.run_cmd",
    "dangerprep_installer.phases.phase_70_enable_services.run_cmd",
    "dangerprep_installer.phases.phase_90_verify.run_cmd",
]


class FakeRunner:
    """Stands in for ``run_cmd``.

    Rules match on an argv prefix; the most recently added matching rule
    wins. A rule may hold several results, consumed in order, with the last
    one repeated.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self._rules: List[tuple] = []

    def on(self, *prefix: str, returncode: Any = 0, stdout: Any = "", stderr: str = "") -> "FakeRunner":
        codes = list(returncode) if isinstance(returncode, (list, tuple)) else [returncode]
        outs = list(stdout) if isinstance(stdout, (list, tuple)) else [stdout]
        self._rules.append((tuple(prefix), codes, outs, stderr))
        return self

    def __call__(self, argv: Sequence[str], *, check: bool = True, dry_run: bool = False, **_kw) -> CmdResult:
        argv = list(argv)
        self.calls.append(argv)
        rc, out, err = 0, "", ""
        for prefix, codes, outs, stderr in reversed(self._rules):
            if tuple(argv[: len(prefix)]) == prefix:
                rc = codes.pop(0) if len(codes) > 1 else codes[0]
                out = outs.pop(0) if len(outs) > 1 else outs[0]
                err = stderr
                break
        if dry_run:
            rc, out, err = 0, "", ""
        if check and rc != 0:
            raise CommandError(argv, rc, err)
        return CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)

    def count(self, *prefix: str) -> int:
        return sum(1 for c in self.calls if tuple(c[: len(prefix)]) == prefix)


@pytest.fixture
def fake_cmd(mocker) -> FakeRunner:
    """Patch run_cmd everywhere it is imported and return the recorder."""
    runner = FakeRunner()
    for target in RUN_CMD_TARGETS:
        mocker.patch(target, side_effect=runner)
    return runner


# ==============================================================================
# Block device fixtures
# ==============================================================================


def nvme_disk(
    size: int = TIB,
    partitions: Optional[List[Dict[str, Any]]] = None,
    name: str = "nvme0n1",
) -> Dict[str, Any]:
    disk: Dict[str, Any] = {
        "name": name,
        "path": f"/dev/{name}",
        "size": size,
        "type": "disk",
        "fstype": None,
        "mountpoint": None,
        "label": None,
        "uuid": None,
    }
    if partitions:
        disk["children"] = partitions
    return disk


def nvme_partition(n: int, *, uuid: Optional[str] = None, mountpoint: Optional[str] = None,
                   label: Optional[str] = None, disk: str = "nvme0n1") -> Dict[str, Any]:
    return {
        "name": f"{disk}p{n}",
        "path": f"/dev/{disk}p{n}",
        "size": 256 * GIB,
        "type": "part",
        "fstype": "ext4",
        "mountpoint": mountpoint,
        "label": label,
        "uuid": uuid,
    }


def lsblk_json(*disks: Dict[str, Any]) -> str:
    return json.dumps({"blockdevices": list(disks)})


@pytest.fixture
def blank_nvme() -> str:
    """lsblk output for a 1 TiB NVMe disk with no partitions."""
    return lsblk_json(nvme_disk())


@pytest.fixture
def two_partition_nvme() -> str:
    """lsblk output for an NVMe disk holding the expected two partitions, unmounted."""
    return lsblk_json(
        nvme_disk(
            partitions=[
                nvme_partition(1, uuid="1111-aaaa", label="danger-data"),
                nvme_partition(2, uuid="2222-bbbb", label="danger-content"),
            ]
        )
    )


# ==============================================================================
# Install environment fixtures
# ==============================================================================


@pytest.fixture
def install_paths(tmp_path) -> InstallPaths:
    """Install paths rooted in a temporary directory."""
    return InstallPaths(
        lock_file=str(tmp_path / "run" / "dangerprep-setup.lock"),
        state_file=str(tmp_path / "etc" / "install-state.conf"),
        config_file=str(tmp_path / "etc" / "setup-config.conf"),
        settings_file=str(tmp_path / "etc" / "setup.yaml"),
        log_file=str(tmp_path / "log" / "dangerprep-setup.log"),
        backup_root=str(tmp_path / "backups"),
        install_root=str(tmp_path / "opt" / "dangerprep"),
    )


@pytest.fixture
def install_config() -> InstallConfig:
    return InstallConfig(values=dict(DEFAULTS))


@pytest.fixture
def ctx(tmp_path, install_paths, install_config) -> InstallContext:
    backup_dir = tmp_path / "backups" / "run"
    backup_dir.mkdir(parents=True)
    return InstallContext(
        config=install_config,
        paths=install_paths,
        backup_dir=str(backup_dir),
        temp_dir=str(tmp_path),
        prompter=Prompter(False),
    )


@pytest.fixture
def no_sleep() -> List[float]:
    """A sleep replacement that records requested delays."""

    class _Sleeps(list):
        def __call__(self, seconds: float) -> None:
            self.append(seconds)

    return _Sleeps()


@pytest.fixture
def mount_dirs(tmp_path) -> Dict[str, Path]:
    return {"data": tmp_path / "data", "content": tmp_path / "content", "fstab": tmp_path / "fstab"}
