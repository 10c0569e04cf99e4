from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from .command import run_cmd
from .files import atomic_write_text, backup_file

logger = logging.getLogger(__name__)

DEFAULT_FSTAB = "/etc/fstab"


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str = "ext4"
    options: str = "defaults,noatime,nofail"
    dump: int = 0
    passno: int = 2

    def render(self) -> str:
        return f"{self.spec} {self.mountpoint} {self.fstype} {self.options} {self.dump} {self.passno}"


def render_fstab(entries: Sequence[FstabEntry]) -> str:
    return "".join(e.render() + "\n" for e in entries)


def _line_mountpoint(line: str) -> str:
    fields = line.split()
    if len(fields) < 2 or line.lstrip().startswith("#"):
        return ""
    return fields[1]


def merge_entries(existing: str, entries: Sequence[FstabEntry]) -> str:
    """Drop lines for the entries' mountpoints, then append the entries."""

    targets = {e.mountpoint for e in entries}
    kept: List[str] = [ln for ln in existing.splitlines() if _line_mountpoint(ln) not in targets]
    body = "\n".join(kept)
    if body and not body.endswith("\n"):
        body += "\n"
    return body + render_fstab(entries)


def validate_fstab() -> bool:
    """Dry-run every fstab entry."""
    return run_cmd(["mount", "-a", "--fake"], check=False).returncode == 0


def update_fstab(
    entries: Sequence[FstabEntry],
    *,
    backup_dir: str,
    fstab_path: str = DEFAULT_FSTAB,
) -> bool:
    """Apply entries to fstab and keep the edit only if it validates.

    On validation failure the previous fstab is restored from its backup.
    Returns True if the new entries were kept.
    """

    if not entries:
        return False

    p = Path(fstab_path)
    existing = p.read_text(encoding="utf-8") if p.exists() else ""
    backup = backup_file(p, backup_dir) if p.exists() else None

    atomic_write_text(p, merge_entries(existing, entries))
    for e in entries:
        logger.info("Added %s to fstab (%s)", e.mountpoint, e.spec)

    if validate_fstab():
        logger.info("fstab entries validated successfully")
        return True

    logger.error("fstab validation failed, restoring previous fstab")
    if backup is not None:
        shutil.copy2(backup, p)
    else:
        p.unlink()
    return False
