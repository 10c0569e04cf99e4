from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .lib.files import atomic_write_text

logger = logging.getLogger(__name__)

_SECRET_MODE = 0o600


class PhaseStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _read_lines(p: Path) -> List[str]:
    if not p.exists():
        return []
    return p.read_text(encoding="utf-8").splitlines()


class PhaseStateStore:
    """Persisted phase -> status record.

    File format: one ``phase=status`` line per phase, in the order phases
    were first recorded, plus ``#`` comment lines. Every write is a full
    read-modify-write of the file.
    """

    HEADER = (
        "# DangerPrep Installation State\n"
        "# Tracks completion status of installation phases\n"
    )

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def _entries(self) -> List[Tuple[str, str]]:
        out: List[Tuple[str, str]] = []
        for line in _read_lines(self.path):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                logger.warning("Ignoring malformed state line: %r", line)
                continue
            name, status = line.split("=", 1)
            out.append((name.strip(), status.strip()))
        return out

    def statuses(self) -> "OrderedDict[str, PhaseStatus]":
        result: "OrderedDict[str, PhaseStatus]" = OrderedDict()
        for name, raw in self._entries():
            try:
                result[name] = PhaseStatus(raw)
            except ValueError:
                logger.warning("Unknown status %r for phase %s; treating as not_started", raw, name)
                result[name] = PhaseStatus.NOT_STARTED
        return result

    def set_status(self, phase: str, status: PhaseStatus) -> None:
        status = PhaseStatus(status)
        lines = _read_lines(self.path)
        if not lines:
            lines = self.HEADER.splitlines() + [f"# Generated on {datetime.now().isoformat(timespec='seconds')}", ""]

        replaced = False
        for i, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("#") or "=" not in stripped:
                continue
            if stripped.split("=", 1)[0].strip() == phase:
                lines[i] = f"{phase}={status.value}"
                replaced = True
                break
        if not replaced:
            lines.append(f"{phase}={status.value}")

        atomic_write_text(self.path, "\n".join(lines) + "\n", mode=_SECRET_MODE)
        logger.debug("Saved install state: %s=%s", phase, status.value)

    def get_status(self, phase: str) -> PhaseStatus:
        return self.statuses().get(phase, PhaseStatus.NOT_STARTED)

    def is_completed(self, phase: str) -> bool:
        return self.get_status(phase) is PhaseStatus.COMPLETED

    def last_completed_phase(self) -> Optional[str]:
        """Return the last ``completed`` entry in file order (the resume point)."""

        last: Optional[str] = None
        for name, status in self.statuses().items():
            if status is PhaseStatus.COMPLETED:
                last = name
        return last

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Cleared installation state")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        raw = raw[1:-1]
    out: List[str] = []
    it = iter(raw)
    for ch in it:
        if ch == "\\":
            nxt = next(it, "")
            out.append("\n" if nxt == "n" else nxt)
        else:
            out.append(ch)
    return "".join(out)


class ConfigSnapshot:
    """Persisted configuration so an interrupted run resumes with the same answers.

    One ``KEY="value"`` line per parameter; the file is owner-read-only.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, values: Mapping[str, str]) -> None:
        lines = [
            "# DangerPrep Setup Configuration",
            f"# Generated on {datetime.now().isoformat(timespec='seconds')}",
            "# This file stores configuration choices for resumable installations",
            "",
        ]
        lines.extend(f"{key}={_quote(str(values[key]))}" for key in sorted(values))
        atomic_write_text(self.path, "\n".join(lines) + "\n", mode=_SECRET_MODE)
        logger.info("Configuration saved to %s", self.path)

    def load(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for line in _read_lines(self.path):
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, raw = line.split("=", 1)
            values[key.strip()] = _unquote(raw)
        return values

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Cleared saved configuration")
