"""Batch scheduler: runs the assignment phases for one week of a batch.

The BatchScheduler locks the batch, loads inputs once, runs the phases in
order, validates the resulting grid, and writes only the rows that changed.
The lock is released whether the run succeeds or fails.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Union

from clinicroster.domain.calendar import ClinicCalendar, WeekKey
from clinicroster.domain.config import EngineConfig, SolverType
from clinicroster.domain.models import LeaveStatus, ScheduleBatch, ShiftAssignment
from clinicroster.domain.requirements import RequirementResolver
from clinicroster.fairness.calculator import FairnessCalculator
from clinicroster.scheduling.context import (
    AssignmentGrid,
    Issue,
    IssueKind,
    LeaveConflict,
    PhaseOutcome,
    SchedulingContext,
    SchedulingInputs,
    Severity,
)
from clinicroster.scheduling.cpsat_fill import CPSATFill
from clinicroster.scheduling.initial_fill import initial_fill
from clinicroster.scheduling.rebalance import rebalance
from clinicroster.scheduling.reconciliation import reconcile_leaves
from clinicroster.storage.store import AssignmentMutation, MutationKind, ScheduleStore
from clinicroster.validation.validator import ScheduleValidator

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one scheduling run.

    Attributes:
        success: The run completed and its rows were written.
        week: The week that was rebuilt.
        assigned_count: WORK rows in the week after the run.
        issues: Unresolved business-rule problems.
        mutations: Row changes that were written.
        conflicts: Leave conflicts resolved during reconciliation.
        stats: Solver statistics.
    """

    success: bool
    week: WeekKey
    assigned_count: int = 0
    issues: list[Issue] = field(default_factory=list)
    mutations: list[AssignmentMutation] = field(default_factory=list)
    conflicts: list[LeaveConflict] = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "week": str(self.week),
            "assignedCount": self.assigned_count,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class BatchScheduler:
    """Runs the multi-phase assignment for a week of a schedule batch.

    Example:
        >>> scheduler = BatchScheduler(store)
        >>> result = scheduler.run_week("2026-03-nursing", "2026-W10")
        >>> result.to_dict()["assignedCount"]
    """

    def __init__(self, store: ScheduleStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()
        self.cpsat = CPSATFill(self.config.solver)

    def run_week(self, batch_id: str, week: Union[WeekKey, str, date]) -> RunResult:
        """Rebuild one week of a batch.

        Args:
            batch_id: Batch to assign.
            week: Week key, ``YYYY-Www`` string, or any date in the week.

        Returns:
            RunResult; business-rule shortfalls are listed in ``issues``.

        Raises:
            KeyError: Unknown batch.
            ValueError: Week outside the batch range.
            ConcurrencyConflict: Another run holds the batch.
            StorageError: The store failed.
        """
        week_key = _week_key(week)
        batch = self.store.get_batch(batch_id)
        if not (batch.start_date <= week_key.start and week_key.end <= batch.end_date):
            raise ValueError(
                f"Week {week_key} is outside batch {batch_id} "
                f"({batch.start_date} to {batch.end_date})"
            )

        self.store.acquire_batch_lock(batch_id)
        try:
            return self._run(batch, week_key)
        finally:
            self.store.release_batch_lock(batch_id)

    def load_inputs(self, batch: ScheduleBatch, week: WeekKey) -> tuple[SchedulingInputs, list[ShiftAssignment]]:
        """Read everything the phases need plus the stored rows."""
        clinic = batch.clinic_id
        staff = self.store.get_staff(clinic, batch.department)
        staff_ids = {s.id for s in staff}
        resolver = RequirementResolver(self.store.get_requirements(clinic))
        resolutions = resolver.resolve_many(
            self.store.get_rosters(clinic, batch.start_date, batch.end_date)
        )
        calendar = ClinicCalendar(self.store.get_holidays(), self.config.closed_weekdays)
        confirmed = [
            lv for lv in self.store.get_leaves(
                clinic, batch.start_date, batch.end_date, [LeaveStatus.CONFIRMED]
            )
            if lv.staff_id in staff_ids
        ]
        stored = self.store.get_assignments(batch.id)

        # actuals count only the weeks before this one
        calculator = FairnessCalculator(calendar, self.config.fairness)
        fairness = calculator.evaluate(
            staff=staff,
            resolutions=resolutions,
            assignments=[r for r in stored if r.assignment_date < week.start],
            leaves=[lv for lv in confirmed if lv.leave_date < week.start],
            profiles=self.store.period_profiles(batch, staff_ids),
            start=batch.start_date,
            end=batch.end_date,
        )
        inputs = SchedulingInputs(
            batch=batch,
            week=week,
            staff=staff,
            resolutions=resolutions,
            calendar=calendar,
            confirmed_leaves={(lv.staff_id, lv.leave_date): lv for lv in confirmed},
            fairness=fairness,
            config=self.config,
        )
        return inputs, stored

    def _run(self, batch: ScheduleBatch, week: WeekKey) -> RunResult:
        inputs, stored = self.load_inputs(batch, week)
        week_dates = set(week.dates)
        carried = AssignmentGrid(r for r in stored if r.assignment_date not in week_dates)
        context = SchedulingContext(inputs=inputs, grid=carried)
        logger.info(
            f"Scheduling batch {batch.id} week {week}: "
            f"{len(inputs.active_staff)} active staff, {len(inputs.resolutions)} roster days"
        )

        fill, stats = self._initial_fill(context.grid, inputs)
        context.apply(fill)
        context.apply(rebalance(context.grid, inputs))
        context.apply(reconcile_leaves(context.grid, inputs))

        validator = ScheduleValidator(inputs.calendar)
        validation = validator.validate(
            rows=context.grid.rows(),
            staff=inputs.staff,
            confirmed_leaves=inputs.confirmed_leaves,
            scope=week_dates | context.touched_dates,
            flagged_staff=context.flagged_staff(),
        )
        for error in validation.errors:
            context.issues.append(Issue(
                kind=IssueKind.INVARIANT_VIOLATION,
                severity=Severity.CRITICAL,
                message=str(error),
                suggestion="Re-run the week; if it persists, check the staff and leave data",
                issue_date=error.error_date,
                staff_id=error.staff_id,
            ))
            logger.error(f"Invariant violation in batch {batch.id}: {error}")

        mutations = diff_rows(stored, context.grid, week_dates)
        if mutations:
            self.store.apply_mutations(batch.id, mutations)

        assigned = sum(
            1 for r in context.grid.rows()
            if r.is_work and r.assignment_date in week_dates
        )
        logger.info(
            f"Batch {batch.id} week {week} done: {assigned} shifts, "
            f"{len(mutations)} mutations, {len(context.issues)} issues"
        )
        return RunResult(
            success=True,
            week=week,
            assigned_count=assigned,
            issues=context.issues,
            mutations=mutations,
            conflicts=context.conflicts,
            stats=stats,
        )

    def _initial_fill(
        self, grid: AssignmentGrid, inputs: SchedulingInputs
    ) -> tuple[PhaseOutcome, dict]:
        """Run Phase 1 with the configured solver."""
        stats: dict = {"solver_type": self.config.solver.solver_type.value}

        if self.config.solver.solver_type == SolverType.HEURISTIC:
            stats["method"] = "heuristic"
            return initial_fill(grid, inputs), stats

        result = self.cpsat.solve(grid, inputs)
        stats.update({
            "cpsat_status": result.status,
            "cpsat_time": result.solve_time_seconds,
        })
        if self.config.solver.solver_type == SolverType.CPSAT:
            stats["method"] = "cpsat"
            if result.is_feasible:
                return result.outcome, stats
            stats["fallback"] = True
            return initial_fill(grid, inputs), stats

        # HYBRID: keep whichever fill covers more slots
        stats["method"] = "hybrid"
        heuristic = initial_fill(grid, inputs)
        if result.is_feasible and _filled(result.outcome, inputs) > _filled(heuristic, inputs):
            stats["used"] = "cpsat"
            return result.outcome, stats
        stats["used"] = "heuristic"
        return heuristic, stats


def diff_rows(
    stored: list[ShiftAssignment],
    grid: AssignmentGrid,
    week_dates: set[date],
) -> list[AssignmentMutation]:
    """Mutations that turn the stored rows into the planned grid.

    Stored rows missing from the plan are deleted only inside the rebuilt
    week; elsewhere the plan already carries every stored row.
    """
    before = {r.key: r for r in stored}
    after = grid.as_dict()
    mutations = []
    for key in sorted(set(before) | set(after), key=lambda k: (k[1], k[0])):
        old, new = before.get(key), after.get(key)
        if old == new:
            continue
        if old is None:
            mutations.append(AssignmentMutation(MutationKind.CREATE, after=new))
        elif new is None:
            if key[1] in week_dates:
                mutations.append(AssignmentMutation(MutationKind.DELETE, before=old))
        else:
            mutations.append(AssignmentMutation(MutationKind.UPDATE, before=old, after=new))
    return mutations


def _filled(outcome: PhaseOutcome, inputs: SchedulingInputs) -> int:
    week = set(inputs.week_dates)
    return sum(1 for r in outcome.grid.rows() if r.is_work and r.assignment_date in week)


def _week_key(week: Union[WeekKey, str, date]) -> WeekKey:
    if isinstance(week, WeekKey):
        return week
    if isinstance(week, date):
        return WeekKey.from_date(week)
    return WeekKey.parse(week)
