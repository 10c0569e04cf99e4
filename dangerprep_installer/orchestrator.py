"""Top-level driver for an installation run.

Run order: logging, lock, temp/backup locations, pre-flight, configuration
(fresh or resumed from the snapshot), then the ordered phases. A failed
phase triggers rollback and leaves the phase state in place so the next
run resumes instead of restarting. Full success clears the state.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import tempfile
import time
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from . import preflight, storage
from .config import InstallConfig, build_config, load_settings, validate_ip_address, validate_port
from .context import InstallContext
from .errors import (
    ConfigurationError,
    InstallInterrupted,
    LockHeld,
    PhaseFailed,
    PreflightError,
)
from .lib.env import InstallPaths
from .lib.files import timestamp
from .lib.prompt import Prompter, detect_interactive
from .lock import InstallLock
from .logging_utils import configure_logging
from .pipeline import Phase, resume_index, run_phases
from .rollback import Rollback, SystemRollback
from .state_store import ConfigSnapshot, PhaseStateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_LOCKED = 3
EXIT_PREFLIGHT = 4
EXIT_SIGINT = 130
EXIT_SIGTERM = 143

RESUME = "Resume from last completed phase"
RESTART = "Restart from beginning"

# (key, question, validator, secret)
PROMPTS: List[Tuple[str, str, Optional[Callable[[str], str]], bool]] = [
    ("WIFI_SSID", "WiFi network name (SSID)", None, False),
    ("WIFI_PASSWORD", "WiFi password", None, True),
    ("LAN_IP", "LAN gateway IP address", validate_ip_address, False),
    ("SSH_PORT", "SSH port", validate_port, False),
    ("NEW_USERNAME", "Administrator username", None, False),
]


@dataclass(frozen=True)
class RunOptions:
    dry_run: bool = False
    verbose: bool = False
    skip_updates: bool = False
    force: bool = False
    non_interactive: bool = False
    force_interactive: bool = False


def collect_configuration(prompter: Prompter, config: InstallConfig) -> InstallConfig:
    """Ask the operator for the main parameters, offering current values as defaults."""

    if not prompter.interactive:
        logger.info("Non-interactive mode: using default configuration values")
        return config

    answers = {}
    for key, question, validator, secret in PROMPTS:
        answers[key] = prompter.ask(question, default=config.get(key), validator=validator, secret=secret)
    return config.with_values(**answers)


def _exit_code_for_signal(signum: int) -> int:
    return EXIT_SIGTERM if signum == signal.SIGTERM else EXIT_SIGINT


class Orchestrator:
    def __init__(
        self,
        paths: InstallPaths,
        options: RunOptions = RunOptions(),
        *,
        prompter: Optional[Prompter] = None,
        rollback: Optional[Rollback] = None,
        run_preflight: Callable[..., object] = preflight.run_preflight,
        disk_guard: Optional[Callable[[int, str], None]] = preflight.ensure_disk_space,
        consent: Callable[[InstallConfig, Prompter], bool] = storage.collect_consent,
        environ: Optional[Mapping[str, str]] = None,
        handle_signals: bool = True,
    ):
        self.paths = paths
        self.options = options
        self.prompter = prompter or Prompter(
            detect_interactive(
                non_interactive=options.non_interactive,
                force_interactive=options.force_interactive,
                dry_run=options.dry_run,
            )
        )
        self.rollback = rollback or SystemRollback(paths.install_root)
        self.run_preflight = run_preflight
        self.disk_guard = disk_guard
        self.consent = consent
        self.environ = os.environ if environ is None else environ
        self.handle_signals = handle_signals

        self.store = PhaseStateStore(paths.state_file)
        self.snapshot = ConfigSnapshot(paths.config_file)

    # -- scoped resources ----------------------------------------------

    def _install_signal_handlers(self, stack: ExitStack) -> None:
        def _raise(signum, _frame):
            raise InstallInterrupted(signum)

        for sig in (signal.SIGINT, signal.SIGTERM):
            previous = signal.signal(sig, _raise)
            stack.callback(signal.signal, sig, previous)

    def _make_temp_dir(self, stack: ExitStack) -> str:
        path = tempfile.mkdtemp(prefix="dangerprep-setup-")
        os.chmod(path, 0o700)
        stack.callback(shutil.rmtree, path, True)
        return path

    def _make_backup_dir(self) -> str:
        stamp = timestamp()
        path = Path(self.paths.backup_root) / f"dangerprep-setup-{stamp}"
        if self.options.dry_run:
            return str(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            fallback = Path(tempfile.gettempdir()) / f"dangerprep-backups-{stamp}"
            logger.warning("Cannot create backup directory %s (%s), using %s", path, e, fallback)
            fallback.mkdir(parents=True, exist_ok=True)
            path = fallback
        os.chmod(path, 0o700)
        return str(path)

    # -- state ---------------------------------------------------------

    def _clear_state(self) -> None:
        if self.options.dry_run:
            logger.info("Would clear installation state and saved configuration")
            return
        self.store.clear()
        self.snapshot.clear()

    def _resume_decision(self, phases: Sequence[Phase]) -> Tuple[int, bool]:
        """Return the phase index to start at and whether this run resumes.

        A restart (chosen or forced) clears state and starts fresh; any other
        run with saved state resumes, even if no phase completed yet.
        """

        if self.options.force:
            logger.warning("Force install requested: discarding previous installation state")
            self._clear_state()
            return 0, False

        if not self.store.exists():
            return 0, False

        last = self.store.last_completed_phase()
        logger.info("Previous installation detected (last completed phase: %s)", last or "none")
        choice = self.prompter.choose("Previous installation detected. What would you like to do?", [RESUME, RESTART])
        if choice == RESTART:
            logger.info("Restarting installation from the beginning")
            self._clear_state()
            return 0, False

        index = resume_index(phases, self.store)
        if index < len(phases):
            logger.info("Resuming installation at phase %s", phases[index].phase_id)
        return index, True

    def _load_config(self, resuming: bool) -> InstallConfig:
        settings = load_settings(self.paths.settings_file)

        if resuming and self.snapshot.exists():
            logger.info("Loading saved configuration from %s", self.snapshot.path)
            return build_config(settings=settings, environ={}, overrides=self.snapshot.load())

        config = collect_configuration(self.prompter, build_config(settings=settings, environ=self.environ))
        if self.options.dry_run:
            logger.info("Would save configuration to %s", self.snapshot.path)
        else:
            self.snapshot.save(config.values)
        return config

    # -- run -----------------------------------------------------------

    def run(self, phases: Sequence[Phase]) -> int:
        """Run ``phases`` and return the process exit code."""

        started = time.monotonic()
        log_path = configure_logging(
            self.paths.log_file, level=logging.DEBUG if self.options.verbose else logging.INFO
        )
        if self.options.dry_run:
            logger.info("DRY RUN: no changes will be made")

        try:
            with ExitStack() as stack:
                if self.handle_signals:
                    self._install_signal_handlers(stack)
                stack.enter_context(InstallLock(self.paths.lock_file))
                temp_dir = self._make_temp_dir(stack)
                backup_dir = self._make_backup_dir()
                logger.info("Log file: %s", log_path)
                logger.info("Backup directory: %s", backup_dir)

                self.run_preflight(dry_run=self.options.dry_run)

                start_index, resuming = self._resume_decision(phases)
                config = self._load_config(resuming=resuming)
                ctx = InstallContext(
                    config=config,
                    paths=self.paths,
                    backup_dir=backup_dir,
                    temp_dir=temp_dir,
                    prompter=self.prompter,
                    dry_run=self.options.dry_run,
                    skip_updates=self.options.skip_updates,
                    storage_consent=self.consent(config, self.prompter),
                )
                return self._run_phases(phases, ctx, start_index, started)
        except LockHeld as e:
            logger.error("%s", e)
            return EXIT_LOCKED
        except PreflightError as e:
            logger.error("Pre-flight checks failed: %s", e)
            return EXIT_PREFLIGHT
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            return EXIT_FAILURE
        except InstallInterrupted as e:
            logger.warning("Installation interrupted by signal %s", e.signum)
            logger.info("Re-run the installer to resume from the last completed phase")
            return _exit_code_for_signal(e.signum)

    def _run_phases(self, phases: Sequence[Phase], ctx: InstallContext, start_index: int, started: float) -> int:
        try:
            result = run_phases(
                phases=phases,
                store=self.store,
                ctx=ctx,
                start_index=start_index,
                disk_guard=self.disk_guard,
            )
        except InstallInterrupted:
            raise
        except PhaseFailed as e:
            logger.error("Installation failed at phase %s: %s", e.phase_id, e.cause)
            self.rollback(backup_dir=ctx.backup_dir, reason=str(e))
            logger.info("Installation state kept in %s; re-running resumes safely", self.paths.state_file)
            return EXIT_FAILURE
        except Exception as e:
            logger.exception("Unexpected error during installation")
            self.rollback(backup_dir=ctx.backup_dir, reason=str(e))
            return EXIT_FAILURE

        if ctx.dry_run:
            logger.info("Dry run complete: %s phase(s) would run", len(phases) - start_index)
            return EXIT_OK

        self._clear_state()
        elapsed = int(time.monotonic() - started)
        logger.info("Installation completed successfully in %sm %ss", elapsed // 60, elapsed % 60)
        logger.info("Phases run: %s", ", ".join(result.ran) or "none")
        logger.info("Backups of modified files: %s", ctx.backup_dir)
        return EXIT_OK
