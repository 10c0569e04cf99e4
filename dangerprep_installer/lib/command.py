from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

NOT_FOUND = 127
TIMED_OUT = 124


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _settle(argv: list[str], returncode: int, stdout: str, stderr: str, check: bool) -> CmdResult:
    if check and returncode != 0:
        raise CommandError(argv, returncode, stderr)
    return CmdResult(argv=argv, returncode=returncode, stdout=stdout, stderr=stderr)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a system command and capture its text output.

    The command line is logged at INFO before anything happens, so dry runs
    leave the same trail as real ones. A binary that is not installed comes
    back as exit 127 and a timeout as exit 124; with ``check`` any non-zero
    exit raises CommandError.
    """

    cmd = list(argv)
    logger.info("CMD %s", shlex.join(cmd))
    if dry_run:
        return CmdResult(argv=cmd, returncode=0, stdout="", stderr="")

    merged_env = {**os.environ, **(env or {})}
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            env=merged_env,
            timeout=timeout,
        )
    except FileNotFoundError:
        return _settle(cmd, NOT_FOUND, "", f"{cmd[0]}: command not found", check)
    except subprocess.TimeoutExpired:
        return _settle(cmd, TIMED_OUT, "", f"{cmd[0]} timed out after {timeout}s", check)

    for stream, text in (("stdout", proc.stdout), ("stderr", proc.stderr)):
        if text and text.strip():
            logger.debug("%s %s: %s", cmd[0], stream, text.strip())

    return _settle(cmd, proc.returncode, proc.stdout, proc.stderr, check)
