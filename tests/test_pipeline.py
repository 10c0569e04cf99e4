"""Tests for pipeline.py - ordered, resumable phase execution."""

import signal

import pytest

from dangerprep_installer.errors import InstallInterrupted, InsufficientDiskSpaceError, PhaseFailed
from dangerprep_installer.pipeline import FunctionPhase, resume_index, run_phases
from dangerprep_installer.state_store import PhaseStateStore, PhaseStatus


class Recorder:
    def __init__(self):
        self.ran = []

    def phase(self, phase_id, *, fail=None, min_free_gb=0):
        def _run(_ctx):
            self.ran.append(phase_id)
            if fail is not None:
                raise fail

        return FunctionPhase(phase_id, f"Running {phase_id}", _run, min_free_gb=min_free_gb)


@pytest.fixture
def rec():
    return Recorder()


@pytest.fixture
def store(install_paths):
    return PhaseStateStore(install_paths.state_file)


class TestResumeIndex:
    def test_fresh_start(self, rec, store):
        assert resume_index([rec.phase("update")], store) == 0

    def test_after_last_completed(self, rec, store):
        phases = [rec.phase("update"), rec.phase("install"), rec.phase("configure")]
        store.set_status("update", PhaseStatus.COMPLETED)

        assert resume_index(phases, store) == 1

    def test_unknown_phase_restarts(self, rec, store):
        store.set_status("retired_phase", PhaseStatus.COMPLETED)

        assert resume_index([rec.phase("update")], store) == 0


class TestRunPhases:
    """Tests for run_phases()."""

    def test_resume_skips_completed_phase(self, rec, store, ctx):
        """[update, install, configure] with update completed resumes at install."""
        phases = [rec.phase("update"), rec.phase("install"), rec.phase("configure")]
        store.set_status("update", PhaseStatus.COMPLETED)

        result = run_phases(phases=phases, store=store, ctx=ctx, start_index=resume_index(phases, store))

        assert rec.ran == ["install", "configure"]
        assert result.ran == ["install", "configure"]
        assert result.skipped == ["update"]
        assert all(store.is_completed(p) for p in ("update", "install", "configure"))

    def test_in_progress_phase_is_reattempted(self, rec, store, ctx):
        phases = [rec.phase("update"), rec.phase("install"), rec.phase("configure")]
        store.set_status("update", PhaseStatus.COMPLETED)
        store.set_status("install", PhaseStatus.IN_PROGRESS)

        run_phases(phases=phases, store=store, ctx=ctx, start_index=resume_index(phases, store))

        assert rec.ran == ["install", "configure"]

    def test_in_progress_is_persisted_before_body(self, store, ctx):
        seen = []
        phase = FunctionPhase("update", "Updating", lambda _c: seen.append(store.get_status("update")))

        run_phases(phases=[phase], store=store, ctx=ctx)

        assert seen == [PhaseStatus.IN_PROGRESS]
        assert store.get_status("update") is PhaseStatus.COMPLETED

    def test_failure_marks_failed_and_stops(self, rec, store, ctx):
        phases = [rec.phase("update"), rec.phase("install", fail=OSError("mirror down")), rec.phase("configure")]

        with pytest.raises(PhaseFailed) as exc:
            run_phases(phases=phases, store=store, ctx=ctx)

        assert exc.value.phase_id == "install"
        assert isinstance(exc.value.cause, OSError)
        assert rec.ran == ["update", "install"]
        assert store.get_status("install") is PhaseStatus.FAILED
        assert store.get_status("configure") is PhaseStatus.NOT_STARTED
        assert store.last_completed_phase() == "update"

    def test_interrupt_leaves_phase_in_progress(self, rec, store, ctx):
        phases = [rec.phase("update", fail=InstallInterrupted(signal.SIGINT))]

        with pytest.raises(InstallInterrupted):
            run_phases(phases=phases, store=store, ctx=ctx)

        assert store.get_status("update") is PhaseStatus.IN_PROGRESS

    def test_disk_guard_runs_for_heavy_phases(self, mocker, rec, store, ctx):
        guard = mocker.Mock()
        phases = [rec.phase("update"), rec.phase("install", min_free_gb=5)]

        run_phases(phases=phases, store=store, ctx=ctx, disk_guard=guard)

        guard.assert_called_once_with(5, "install")

    def test_disk_guard_failure_fails_phase(self, rec, store, ctx):
        def guard(required, operation):
            raise InsufficientDiskSpaceError(required, 1, operation)

        phases = [rec.phase("install", min_free_gb=5)]

        with pytest.raises(PhaseFailed):
            run_phases(phases=phases, store=store, ctx=ctx, disk_guard=guard)

        assert rec.ran == []
        assert store.get_status("install") is PhaseStatus.FAILED

    def test_dry_run_changes_nothing(self, rec, store, ctx):
        from dataclasses import replace

        phases = [rec.phase("update"), rec.phase("install")]

        result = run_phases(phases=phases, store=store, ctx=replace(ctx, dry_run=True))

        assert rec.ran == []
        assert result.skipped == ["update", "install"]
        assert not store.exists()
