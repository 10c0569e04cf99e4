from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FMT)


def atomic_write_text(path: str | Path, contents: str, *, mode: Optional[int] = None) -> None:
    """Write a file via a sibling temp file and rename.

    Readers see either the old or the new contents, never a truncated file.
    If mode is None an existing file keeps its permissions and a new one
    gets 0644.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if mode is None:
        mode = p.stat().st_mode & 0o7777 if p.exists() else 0o644

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(contents)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def backup_file(path: str | Path, backup_dir: str | Path, *, now: Optional[datetime] = None) -> Path:
    """Copy a file verbatim to <backup_dir>/<basename>.backup-<timestamp>.

    Never overwrites an earlier backup: a numeric suffix is added when two
    backups of the same file land in the same second.
    """

    src = Path(path)
    dst_dir = Path(backup_dir)
    dst_dir.mkdir(parents=True, exist_ok=True)

    base = dst_dir / f"{src.name}.backup-{timestamp(now)}"
    dst = base
    n = 1
    while dst.exists():
        dst = base.with_name(f"{base.name}.{n}")
        n += 1

    if src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
    else:
        shutil.copy2(src, dst)
    logger.debug("Backed up %s -> %s", src, dst)
    return dst


def _backup_order(path: Path, name: str) -> Tuple[str, int]:
    stamp, _, n = path.name[len(name) + len(".backup-"):].partition(".")
    return stamp, int(n) if n.isdigit() else 0


def latest_backup(name: str, backup_dir: str | Path) -> Optional[Path]:
    """Return the newest backup of a file basename, if any.

    Ordered by the timestamp in the backup name, then the collision suffix.
    """

    d = Path(backup_dir)
    if not d.is_dir():
        return None
    candidates = sorted(d.glob(f"{name}.backup-*"), key=lambda p: _backup_order(p, name))
    return candidates[-1] if candidates else None
