from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from .context import InstallContext
from .errors import InstallInterrupted, PhaseFailed
from .state_store import PhaseStateStore, PhaseStatus

logger = logging.getLogger(__name__)


class Phase(Protocol):
    """One named, ordered unit of installation work."""

    phase_id: str
    description: str
    min_free_gb: int

    def run(self, ctx: InstallContext) -> None:
        ...


@dataclass(frozen=True)
class FunctionPhase:
    """Adapts a plain callable to the Phase protocol."""

    phase_id: str
    description: str
    func: Callable[[InstallContext], None]
    min_free_gb: int = 0

    def run(self, ctx: InstallContext) -> None:
        self.func(ctx)


@dataclass
class PipelineResult:
    ran: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def resume_index(phases: Sequence[Phase], store: PhaseStateStore) -> int:
    """Index of the phase after the last ``completed`` one (0 when there is none)."""

    last = store.last_completed_phase()
    if last is None:
        return 0
    ids = [p.phase_id for p in phases]
    if last not in ids:
        logger.warning("Last completed phase %r is not a known phase, starting from the beginning", last)
        return 0
    return ids.index(last) + 1


def run_phases(
    *,
    phases: Sequence[Phase],
    store: PhaseStateStore,
    ctx: InstallContext,
    start_index: int = 0,
    disk_guard: Optional[Callable[[int, str], None]] = None,
) -> PipelineResult:
    """Run phases in order from ``start_index``.

    ``in_progress`` is persisted before a phase body runs and ``completed``
    before the next one starts. A phase that raises is persisted as
    ``failed`` and re-raised as PhaseFailed. An interrupt leaves the phase
    ``in_progress`` so the next run re-attempts it.
    """

    result = PipelineResult()
    total = len(phases)

    for i, phase in enumerate(phases):
        if i < start_index:
            result.skipped.append(phase.phase_id)
            continue

        if ctx.dry_run:
            logger.info("[%s/%s] Would execute %s: %s", i + 1, total, phase.phase_id, phase.description)
            result.skipped.append(phase.phase_id)
            continue

        if store.is_completed(phase.phase_id):
            logger.info("Skipping phase %s (already completed)", phase.phase_id)
            result.skipped.append(phase.phase_id)
            continue

        logger.info("[%s/%s] %s", i + 1, total, phase.description)
        store.set_status(phase.phase_id, PhaseStatus.IN_PROGRESS)
        try:
            required = getattr(phase, "min_free_gb", 0)
            if required and disk_guard is not None:
                disk_guard(required, phase.phase_id)
            phase.run(ctx)
        except InstallInterrupted:
            raise
        except Exception as e:
            store.set_status(phase.phase_id, PhaseStatus.FAILED)
            logger.error("Phase %s failed: %s", phase.phase_id, e)
            raise PhaseFailed(phase.phase_id, e) from e

        store.set_status(phase.phase_id, PhaseStatus.COMPLETED)
        logger.info("Completed phase %s", phase.phase_id)
        result.ran.append(phase.phase_id)

    return result
