"""Exception hierarchy for the installer.

    InstallerError
        ├── ConfigurationError
        │   └── TemplateNotFoundError
        ├── LockError
        │   └── LockHeld
        ├── CommandError
        ├── RetryError
        ├── PreflightError
        │   └── InsufficientDiskSpaceError
        ├── StorageError
        │   └── StorageSafetyError
        ├── PhaseFailed
        └── InstallInterrupted

Lower layers raise these; only the CLI entrypoint turns them into exit codes.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class InstallerError(Exception):
    """Base exception for all installer errors."""


class ConfigurationError(InstallerError):
    """A supplied value failed validation. Never retried."""


class TemplateNotFoundError(ConfigurationError):
    def __init__(self, template_path: str):
        self.template_path = template_path
        super().__init__(f"Template file not found: {template_path}")


class LockError(InstallerError):
    """The installation lock could not be acquired."""


class LockHeld(LockError):
    """Another live process owns the installation lock."""

    def __init__(self, owner_pid: Optional[int], lock_path: str):
        self.owner_pid = owner_pid
        self.lock_path = lock_path
        owner = owner_pid if owner_pid is not None else "unknown"
        super().__init__(f"Another instance is already running (PID: {owner}); lock file: {lock_path}")


class CommandError(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr:
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class RetryError(InstallerError):
    """All attempts of a retried operation failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}")


class PreflightError(InstallerError):
    """A pre-flight check failed before any mutation began."""


class InsufficientDiskSpaceError(PreflightError):
    def __init__(self, required_gb: int, available_gb: int, operation: str = "installation"):
        self.required_gb = required_gb
        self.available_gb = available_gb
        self.operation = operation
        super().__init__(
            f"Insufficient disk space for {operation}: required {required_gb}GB, available {available_gb}GB"
        )


class StorageError(InstallerError):
    """Base exception for storage configuration errors."""


class StorageSafetyError(StorageError):
    """Partitions stayed mounted after unmount escalation on a confirmed repartition.

    The device must be inspected by an operator before anything is formatted.
    """

    def __init__(self, device: str, mounted: List[str]):
        self.device = device
        self.mounted = list(mounted)
        super().__init__(
            f"Partitions on {device} are still mounted ({', '.join(self.mounted)}); "
            "manual intervention is required before repartitioning"
        )


class PhaseFailed(InstallerError):
    def __init__(self, phase_id: str, cause: BaseException):
        self.phase_id = phase_id
        self.cause = cause
        super().__init__(f"Phase {phase_id} failed: {cause}")


class InstallInterrupted(InstallerError):
    """Raised from the SIGINT/SIGTERM handlers so scoped cleanup can unwind."""

    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")
