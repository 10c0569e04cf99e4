from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import StorageError
from .command import run_cmd

logger = logging.getLogger(__name__)

LSBLK_COLUMNS = "NAME,PATH,SIZE,TYPE,FSTYPE,MOUNTPOINT,LABEL,UUID"


@dataclass(frozen=True)
class Partition:
    name: str
    path: str
    size_bytes: int = 0
    fstype: Optional[str] = None
    mountpoint: Optional[str] = None
    label: Optional[str] = None
    uuid: Optional[str] = None

    @property
    def mounted(self) -> bool:
        return bool(self.mountpoint) and self.mountpoint != "[SWAP]"


@dataclass(frozen=True)
class BlockDevice:
    name: str
    path: str
    size_bytes: int
    partitions: List[Partition] = field(default_factory=list)

    @property
    def size_gib(self) -> int:
        return self.size_bytes // (1024 ** 3)

    def mounted_partitions(self) -> List[Partition]:
        return [p for p in self.partitions if p.mounted]


def part_path(disk: str, n: int) -> str:
    # nvme/mmcblk devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def _int(v: Any) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def _parse_partition(d: Dict[str, Any]) -> Partition:
    mountpoint = d.get("mountpoint")
    if mountpoint is None and d.get("mountpoints"):
        mountpoint = next((m for m in d["mountpoints"] if m), None)
    return Partition(
        name=str(d.get("name")),
        path=str(d.get("path") or f"/dev/{d.get('name')}"),
        size_bytes=_int(d.get("size")),
        fstype=d.get("fstype") or None,
        mountpoint=mountpoint or None,
        label=d.get("label") or None,
        uuid=d.get("uuid") or None,
    )


def parse_lsblk(output: str) -> List[BlockDevice]:
    """Parse ``lsblk -J -b`` output into disks with their partitions."""

    data = json.loads(output or "{}")
    disks: List[BlockDevice] = []
    for d in data.get("blockdevices") or []:
        if d.get("type") != "disk":
            continue
        parts = [_parse_partition(c) for c in (d.get("children") or []) if c.get("type") == "part"]
        disks.append(
            BlockDevice(
                name=str(d.get("name")),
                path=str(d.get("path") or f"/dev/{d.get('name')}"),
                size_bytes=_int(d.get("size")),
                partitions=parts,
            )
        )
    return disks


def list_disks() -> List[BlockDevice]:
    r = run_cmd(["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS])
    return parse_lsblk(r.stdout)


def list_nvme_disks() -> List[BlockDevice]:
    found = [d for d in list_disks() if d.name.startswith("nvme")]
    logger.debug("NVMe disks: %s", ", ".join(d.path for d in found) or "none")
    return found


def read_disk(path: str) -> BlockDevice:
    """Re-read one disk (its partitions and current mountpoints)."""

    r = run_cmd(["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS, path])
    disks = parse_lsblk(r.stdout)
    if not disks:
        raise StorageError(f"lsblk returned no disk for {path}")
    return disks[0]


def get_uuid(dev: str, *, dry_run: bool = False) -> str:
    """Return filesystem UUID for a block device ("" if it has none)."""

    r = run_cmd(["blkid", "-s", "UUID", "-o", "value", dev], check=False, dry_run=dry_run)
    return (r.stdout or "").strip()
