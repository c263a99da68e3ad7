"""Scheduling context shared by the assignment phases.

A run owns one ``SchedulingContext``. Phases never mutate it directly: each
phase is a function ``(grid, inputs) -> PhaseOutcome`` that works on a copy
of the grid, and the context folds the outcome back in with ``apply``.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from clinicroster.domain.calendar import ClinicCalendar, FairnessDimension, WeekKey, week_start
from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import (
    LeaveApplication,
    LeaveType,
    ScheduleBatch,
    ShiftAssignment,
    ShiftKind,
    Staff,
)
from clinicroster.domain.requirements import Resolution, ResolvedRequirement
from clinicroster.fairness.calculator import FairnessReport


class IssueKind(Enum):
    """Business-rule outcomes reported by a run."""

    CONFIGURATION_GAP = "configuration_gap"
    SHORTAGE = "shortage"
    CONSTRAINT_UNSATISFIABLE = "constraint_unsatisfiable"
    LEAVE_CONFLICT = "leave_conflict"
    WEEKLY_CAP_EXCEEDED = "weekly_cap_exceeded"
    INVARIANT_VIOLATION = "invariant_violation"


class Severity(Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Issue:
    """An unresolved problem found during a run.

    Attributes:
        kind: What went wrong.
        severity: How urgent it is.
        message: Human-readable description.
        suggestion: What an administrator can do about it.
        issue_date: Date concerned, if any.
        staff_id: Staff member concerned, if any.
        category: Category concerned, if any.
        details: Extra numeric context.
    """

    kind: IssueKind
    severity: Severity
    message: str
    suggestion: str = ""
    issue_date: Optional[date] = None
    staff_id: Optional[str] = None
    category: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "suggestion": self.suggestion,
            "date": self.issue_date.isoformat() if self.issue_date else None,
            "staffId": self.staff_id,
            "category": self.category,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.kind.value}: {self.message}"


@dataclass(frozen=True)
class LeaveConflict:
    """A WORK row replaced by a confirmed leave during reconciliation."""

    staff_id: str
    conflict_date: date
    leave_id: str
    leave_type: LeaveType
    replaced_shift: ShiftKind
    replaced_category: Optional[str] = None


class AssignmentGrid:
    """(staff, date) -> ShiftAssignment map with headcount helpers."""

    def __init__(self, rows: Iterable[ShiftAssignment] = ()):
        self._rows: dict[tuple[str, date], ShiftAssignment] = {r.key: r for r in rows}

    def copy(self) -> "AssignmentGrid":
        grid = AssignmentGrid()
        grid._rows = dict(self._rows)
        return grid

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: tuple[str, date]) -> bool:
        return key in self._rows

    def get(self, staff_id: str, d: date) -> Optional[ShiftAssignment]:
        return self._rows.get((staff_id, d))

    def put(self, row: ShiftAssignment) -> None:
        self._rows[row.key] = row

    def rows(self) -> list[ShiftAssignment]:
        return sorted(self._rows.values(), key=lambda r: (r.assignment_date, r.staff_id))

    def as_dict(self) -> dict[tuple[str, date], ShiftAssignment]:
        return dict(self._rows)

    def for_date(self, d: date, staff_ids: Optional[set[str]] = None) -> list[ShiftAssignment]:
        return [
            r for r in self._rows.values()
            if r.assignment_date == d and (staff_ids is None or r.staff_id in staff_ids)
        ]

    def workdays(self, staff_id: str, dates: Iterable[date]) -> int:
        """WORK rows plus ANNUAL-linked rows for the staff member."""
        total = 0
        for d in dates:
            row = self._rows.get((staff_id, d))
            if row is not None and row.counts_as_workday:
                total += 1
        return total

    def off_count(self, d: date, staff_ids: set[str]) -> int:
        """Plain OFF rows (not ANNUAL) on a date."""
        return sum(
            1 for r in self.for_date(d, staff_ids)
            if not r.is_work and not r.is_annual
        )

    def covering(self, d: date, category: str, staff_ids: Optional[set[str]] = None) -> int:
        return sum(
            1 for r in self.for_date(d, staff_ids)
            if r.is_work and r.category == category
        )


@dataclass
class SchedulingInputs:
    """Everything a run reads, loaded once before Phase 1.

    Attributes:
        batch: The batch being assigned.
        week: The week being rebuilt.
        staff: Department staff, active and inactive.
        resolutions: Resolved requirements for dates with a doctor roster.
        calendar: Business days and holidays.
        confirmed_leaves: CONFIRMED leaves in the batch range by (staff, date).
        fairness: Fairness evaluated over the batch range with actuals taken
            only from dates before the week being rebuilt.
        config: Engine configuration.
    """

    batch: ScheduleBatch
    week: WeekKey
    staff: list[Staff]
    resolutions: Mapping[date, Resolution]
    calendar: ClinicCalendar
    confirmed_leaves: Mapping[tuple[str, date], LeaveApplication]
    fairness: FairnessReport
    config: EngineConfig = field(default_factory=EngineConfig)

    @property
    def department(self) -> str:
        return self.batch.department

    @property
    def week_dates(self) -> list[date]:
        return self.week.dates

    @property
    def active_staff(self) -> list[Staff]:
        return sorted((s for s in self.staff if s.is_active), key=lambda s: s.id)

    @property
    def active_ids(self) -> set[str]:
        return {s.id for s in self.staff if s.is_active}

    @property
    def staff_by_id(self) -> dict[str, Staff]:
        return {s.id: s for s in self.staff}

    def resolved(self, d: date) -> Optional[ResolvedRequirement]:
        """Resolution for a date when it is known and staffs this department."""
        resolution = self.resolutions.get(d)
        if resolution is None or not resolution.is_known:
            return None
        if not resolution.categories(self.department):
            return None
        return resolution

    def leave_on(self, staff_id: str, d: date) -> Optional[LeaveApplication]:
        return self.confirmed_leaves.get((staff_id, d))

    def quota(self, member: Staff, d: date) -> int:
        return self.calendar.weekly_quota(member.weekly_target, d)

    def week_of(self, d: date) -> list[date]:
        start = week_start(d)
        return [x for x in self.batch.dates if week_start(x) == start]

    def owed(
        self,
        grid: AssignmentGrid,
        staff_id: str,
        dimensions: Iterable[FairnessDimension],
    ) -> float:
        """Sum of adjusted_minimum - actual_so_far across dimensions.

        Actuals combine the evaluated report (dates before this week) with
        the rows already placed in this week's grid.
        """
        entry = self.fairness.staff.get(staff_id)
        if entry is None:
            return 0.0
        placed = self._placed_this_week(grid, staff_id)
        return float(sum(
            entry.dimensions[dim].adjusted_minimum - entry.dimensions[dim].actual - placed[dim]
            for dim in dimensions
        ))

    def _placed_this_week(self, grid: AssignmentGrid, staff_id: str) -> dict[FairnessDimension, int]:
        placed = {dim: 0 for dim in FairnessDimension}
        for d in self.week_dates:
            row = grid.get(staff_id, d)
            if row is None:
                continue
            if row.is_work:
                for dim in self.calendar.classify(d, row.shift is ShiftKind.WORK_NIGHT):
                    placed[dim] += 1
            elif row.is_annual:
                placed[FairnessDimension.TOTAL] += 1
        return placed


@dataclass
class PhaseOutcome:
    """What a phase returns: the new grid plus anything it reported."""

    grid: AssignmentGrid
    issues: list[Issue] = field(default_factory=list)
    conflicts: list[LeaveConflict] = field(default_factory=list)
    touched_dates: set[date] = field(default_factory=set)


@dataclass
class SchedulingContext:
    """State owned by one scheduling run."""

    inputs: SchedulingInputs
    grid: AssignmentGrid
    issues: list[Issue] = field(default_factory=list)
    conflicts: list[LeaveConflict] = field(default_factory=list)
    touched_dates: set[date] = field(default_factory=set)

    def apply(self, outcome: PhaseOutcome) -> None:
        self.grid = outcome.grid
        self.issues.extend(outcome.issues)
        self.conflicts.extend(outcome.conflicts)
        self.touched_dates.update(outcome.touched_dates)

    def flagged_staff(self) -> set[str]:
        return {i.staff_id for i in self.issues if i.staff_id}
