"""End-to-end tests for BatchScheduler.run_week."""

import threading
from datetime import date

import pytest

from clinicroster.cli import create_sample_clinic
from clinicroster.domain.calendar import WeekKey
from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import BatchStatus, LeaveType, ShiftAssignment, ShiftKind
from clinicroster.errors import ConcurrencyConflict, SchedulingError, StorageError
from clinicroster.scheduling.context import AssignmentGrid, IssueKind, Severity
from clinicroster.scheduling.scheduler import BatchScheduler, diff_rows
from clinicroster.storage.store import InMemoryStore, MutationKind

from conftest import BATCH_ID, build_clinic, create_test_leave

WEEK = "2026-W10"


class FailingStore(InMemoryStore):
    """Store whose writes always fail."""

    def apply_mutations(self, batch_id, mutations):
        raise StorageError("disk full")


class PausingStore(InMemoryStore):
    """Store that holds the first run inside its lock until released."""

    def pause(self):
        self.inside = threading.Event()
        self.resume = threading.Event()

    def get_assignments(self, batch_id):
        if not self.inside.is_set():
            self.inside.set()
            self.resume.wait(timeout=5)
        return super().get_assignments(batch_id)


def rows_by_date(store, d):
    return [r for r in store.get_assignments(BATCH_ID) if r.assignment_date == d]


class TestRunWeek:
    """Tests for a full week run."""

    @pytest.fixture
    def scheduler(self, clinic):
        return BatchScheduler(clinic)

    def test_successful_run(self, scheduler, clinic):
        result = scheduler.run_week(BATCH_ID, WEEK)
        assert result.success
        assert str(result.week) == WEEK
        assert result.assigned_count == 18 + 2
        assert result.issues == []
        assert result.stats["method"] == "heuristic"

    def test_rows_written_for_whole_batch(self, scheduler, clinic):
        scheduler.run_week(BATCH_ID, WEEK)
        batch = clinic.get_batch(BATCH_ID)
        assert len(clinic.get_assignments(BATCH_ID)) == 5 * len(batch.dates)

    def test_headcount_identity(self, scheduler, clinic, week10_dates):
        scheduler.run_week(BATCH_ID, WEEK)
        for d in week10_dates:
            rows = rows_by_date(clinic, d)
            work = sum(1 for r in rows if r.is_work)
            annual = sum(1 for r in rows if r.is_annual)
            off = len(rows) - work - annual
            assert work + off + annual == 5

    def test_weekly_quota_met(self, scheduler, clinic, week10_dates):
        scheduler.run_week(BATCH_ID, WEEK)
        grid = AssignmentGrid(clinic.get_assignments(BATCH_ID))
        for sid in ("L1", "L2", "J1", "J2", "J3"):
            assert grid.workdays(sid, week10_dates) == 4

    def test_lock_released_after_run(self, scheduler, clinic):
        scheduler.run_week(BATCH_ID, WEEK)
        assert clinic.get_batch(BATCH_ID).status is BatchStatus.DRAFT

    def test_rerun_is_idempotent(self, scheduler, clinic):
        first = scheduler.run_week(BATCH_ID, WEEK)
        rows = clinic.get_assignments(BATCH_ID)
        second = scheduler.run_week(BATCH_ID, WEEK)
        assert first.mutations
        assert second.mutations == []
        assert clinic.get_assignments(BATCH_ID) == rows

    def test_every_week_rerun_is_idempotent(self, scheduler, clinic):
        weeks = [WeekKey.from_date(d) for d in clinic.get_batch(BATCH_ID).week_starts]
        for week in weeks:
            assert scheduler.run_week(BATCH_ID, week).success
        rows = clinic.get_assignments(BATCH_ID)
        for week in weeks:
            assert scheduler.run_week(BATCH_ID, week).mutations == []
        assert clinic.get_assignments(BATCH_ID) == rows

    def test_sample_clinic_rerun_is_idempotent(self):
        store, batch_id = create_sample_clinic(2026, 3)
        scheduler = BatchScheduler(store)
        weeks = [WeekKey.from_date(d) for d in store.get_batch(batch_id).week_starts]
        for week in weeks:
            scheduler.run_week(batch_id, week)
        rows = store.get_assignments(batch_id)
        for week in weeks:
            assert scheduler.run_week(batch_id, week).mutations == []
        assert store.get_assignments(batch_id) == rows

    def test_week_accepts_date(self, scheduler):
        result = scheduler.run_week(BATCH_ID, date(2026, 3, 11))
        assert str(result.week) == WEEK

    def test_to_dict(self, scheduler):
        data = scheduler.run_week(BATCH_ID, WEEK).to_dict()
        assert data == {"success": True, "week": WEEK, "assignedCount": 20, "issues": []}

    def test_week_outside_batch(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.run_week(BATCH_ID, "2026-W20")

    def test_unknown_batch(self, scheduler):
        with pytest.raises(KeyError):
            scheduler.run_week("nope", WEEK)


class TestLeaveHandling:
    """Confirmed leave during a run."""

    def test_leave_applied_in_week(self, clinic):
        clinic.add_leaves([create_test_leave("lv1", "J1", date(2026, 3, 11))])
        BatchScheduler(clinic).run_week(BATCH_ID, WEEK)
        row = next(r for r in rows_by_date(clinic, date(2026, 3, 11)) if r.staff_id == "J1")
        assert row.shift is ShiftKind.OFF
        assert row.leave_id == "lv1"

    def test_later_leave_converts_stored_work(self, clinic):
        later = date(2026, 3, 18)
        clinic.add_assignments(BATCH_ID, [
            ShiftAssignment("J1", later, ShiftKind.WORK_DAY, category="Junior"),
            ShiftAssignment("J2", later, ShiftKind.WORK_DAY, category="Junior"),
        ])
        clinic.add_leaves([create_test_leave("lv1", "J1", later)])
        result = BatchScheduler(clinic).run_week(BATCH_ID, WEEK)

        assert [c.leave_id for c in result.conflicts] == ["lv1"]
        row = next(r for r in rows_by_date(clinic, later) if r.staff_id == "J1")
        assert row.leave_id == "lv1"
        assert not row.is_work
        # J2 still covers the Junior minimum
        assert not any(i.kind is IssueKind.LEAVE_CONFLICT for i in result.issues)

    def test_annual_leave_shortage_reported(self, clinic):
        clinic.add_leaves([create_test_leave("a1", "J1", date(2026, 3, 11), LeaveType.ANNUAL)])
        result = BatchScheduler(clinic).run_week(BATCH_ID, WEEK)
        kinds = [(i.kind, i.severity) for i in result.issues]
        assert kinds == [(IssueKind.SHORTAGE, Severity.WARNING)]
        assert result.issues[0].to_dict()["type"] == "shortage"

    def test_no_invariant_violations_with_leave(self, clinic):
        clinic.add_leaves([
            create_test_leave("lv1", "L1", date(2026, 3, 9)),
            create_test_leave("lv2", "J2", date(2026, 3, 12), LeaveType.ANNUAL),
            create_test_leave("lv3", "J3", date(2026, 3, 25)),
        ])
        result = BatchScheduler(clinic).run_week(BATCH_ID, WEEK)
        assert not any(i.kind is IssueKind.INVARIANT_VIOLATION for i in result.issues)


class TestLocking:
    """Batch lock behaviour."""

    def test_concurrent_run_rejected(self, clinic):
        clinic.set_batch_status(BATCH_ID, BatchStatus.ASSIGNING)
        with pytest.raises(ConcurrencyConflict) as exc_info:
            BatchScheduler(clinic).run_week(BATCH_ID, WEEK)
        assert exc_info.value.retry_later
        assert exc_info.value.batch_id == BATCH_ID

    def test_deployed_batch_rejected(self, clinic):
        clinic.set_batch_status(BATCH_ID, BatchStatus.DEPLOYED)
        with pytest.raises(SchedulingError):
            BatchScheduler(clinic).run_week(BATCH_ID, WEEK)

    def test_confirmed_batch_can_be_reassigned(self, clinic):
        clinic.set_batch_status(BATCH_ID, BatchStatus.CONFIRMED)
        assert BatchScheduler(clinic).run_week(BATCH_ID, WEEK).success

    def test_lock_released_when_write_fails(self):
        store = build_clinic()
        failing = FailingStore()
        failing.__dict__.update(store.__dict__)
        with pytest.raises(StorageError):
            BatchScheduler(failing).run_week(BATCH_ID, WEEK)
        assert failing.get_batch(BATCH_ID).status is BatchStatus.DRAFT
        assert failing.get_assignments(BATCH_ID) == []

    def test_second_run_rejected_while_first_in_progress(self):
        store = PausingStore()
        store.__dict__.update(build_clinic().__dict__)
        store.pause()
        results = []
        first = threading.Thread(
            target=lambda: results.append(BatchScheduler(store).run_week(BATCH_ID, WEEK))
        )
        first.start()
        assert store.inside.wait(timeout=5)
        try:
            with pytest.raises(ConcurrencyConflict):
                BatchScheduler(store).run_week(BATCH_ID, WEEK)
        finally:
            store.resume.set()
            first.join(timeout=5)
        assert results[0].success
        assert store.get_batch(BATCH_ID).status is BatchStatus.DRAFT


class TestSolverSelection:
    """Phase 1 solver choice."""

    @pytest.mark.parametrize("solver", ["cpsat", "hybrid"])
    def test_cpsat_backed_runs_meet_quota(self, solver, week10_dates):
        store = build_clinic()
        config = EngineConfig.from_dict({"solver": {"solver_type": solver}})
        result = BatchScheduler(store, config).run_week(BATCH_ID, WEEK)
        assert result.success
        assert result.stats["method"] == solver
        grid = AssignmentGrid(store.get_assignments(BATCH_ID))
        for sid in ("L1", "L2", "J1", "J2", "J3"):
            assert grid.workdays(sid, week10_dates) == 4
        assert not any(i.kind is IssueKind.INVARIANT_VIOLATION for i in result.issues)

    def test_cpsat_rerun_is_idempotent(self):
        store = build_clinic()
        config = EngineConfig.from_dict({"solver": {"solver_type": "cpsat"}})
        scheduler = BatchScheduler(store, config)
        scheduler.run_week(BATCH_ID, WEEK)
        assert scheduler.run_week(BATCH_ID, WEEK).mutations == []


class TestDiffRows:
    """Tests for the stored-vs-planned diff."""

    def test_create_update_delete(self):
        mon, tue = date(2026, 3, 9), date(2026, 3, 10)
        stored = [
            ShiftAssignment("J1", mon, ShiftKind.OFF),
            ShiftAssignment("J2", mon, ShiftKind.OFF),
        ]
        grid = AssignmentGrid([
            ShiftAssignment("J1", mon, ShiftKind.WORK_DAY, category="Junior"),
            ShiftAssignment("J1", tue, ShiftKind.OFF),
        ])
        kinds = {(m.kind, m.key) for m in diff_rows(stored, grid, {mon, tue})}
        assert kinds == {
            (MutationKind.UPDATE, ("J1", mon)),
            (MutationKind.DELETE, ("J2", mon)),
            (MutationKind.CREATE, ("J1", tue)),
        }

    def test_no_delete_outside_week(self):
        later = date(2026, 3, 18)
        stored = [ShiftAssignment("J1", later, ShiftKind.OFF)]
        assert diff_rows(stored, AssignmentGrid(), {date(2026, 3, 9)}) == []
