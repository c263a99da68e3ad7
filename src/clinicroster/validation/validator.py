"""Validation module for verifying schedule invariants.

This module provides a single source of truth for the assignment
invariants. Every scheduling run validates its grid before writing it.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Mapping, Optional

from clinicroster.domain.calendar import ClinicCalendar, week_start
from clinicroster.domain.models import LeaveApplication, ShiftAssignment, Staff


class ValidationErrorType(Enum):
    """Types of validation errors."""

    MISSING_ROW = "missing_row"
    HEADCOUNT_MISMATCH = "headcount_mismatch"
    WEEKLY_CAP_EXCEEDED = "weekly_cap_exceeded"
    LEAVE_NOT_APPLIED = "leave_not_applied"
    UNKNOWN_STAFF = "unknown_staff"


@dataclass
class ValidationError:
    """A single validation error."""

    error_type: ValidationErrorType
    message: str
    staff_id: Optional[str] = None
    error_date: Optional[date] = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.error_type.value}]"]
        if self.staff_id:
            parts.append(f"Staff {self.staff_id}:")
        parts.append(self.message)
        if self.error_date is not None:
            parts.append(f"({self.error_date})")
        return " ".join(parts)


@dataclass
class ValidationResult:
    """Result of validating a grid."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: ValidationError) -> None:
        """Add an error and mark as invalid."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(warning)


class ScheduleValidator:
    """Validates assignment rows against the scheduling invariants.

    Checks, for the dates in scope:
    - every active staff member has exactly one row per date, so
      work + off + annual equals the active headcount;
    - each staff member's workdays (WORK plus ANNUAL) per week stay within
      the weekly cap unless the member is already flagged;
    - every confirmed leave is applied as a linked OFF row.

    Example:
        >>> validator = ScheduleValidator(calendar)
        >>> result = validator.validate(rows, staff, leaves, scope)
        >>> if not result.is_valid:
        ...     for error in result.errors:
        ...         print(error)
    """

    def __init__(self, calendar: ClinicCalendar):
        self.calendar = calendar

    def validate(
        self,
        rows: Iterable[ShiftAssignment],
        staff: Iterable[Staff],
        confirmed_leaves: Mapping[tuple[str, date], LeaveApplication],
        scope: Iterable[date],
        flagged_staff: Optional[set[str]] = None,
    ) -> ValidationResult:
        """Validate rows over the dates in scope.

        Args:
            rows: Assignment rows; rows outside scope are used for weekly totals.
            staff: Department staff.
            confirmed_leaves: CONFIRMED leaves by (staff id, date).
            scope: Dates to check.
            flagged_staff: Staff already reported in the run's issues.

        Returns:
            ValidationResult with is_valid flag and any errors.
        """
        result = ValidationResult(is_valid=True)
        scope = sorted(set(scope))
        flagged = flagged_staff or set()
        members = {s.id: s for s in staff}
        active = {sid for sid, s in members.items() if s.is_active}
        grid = {r.key: r for r in rows}

        for d in scope:
            day_rows = [r for (sid, rd), r in grid.items() if rd == d]
            for row in day_rows:
                if row.staff_id not in members:
                    result.add_error(ValidationError(
                        error_type=ValidationErrorType.UNKNOWN_STAFF,
                        message="Row for unknown staff member",
                        staff_id=row.staff_id,
                        error_date=d,
                    ))
            counted = [r for r in day_rows if r.staff_id in active]
            work = sum(1 for r in counted if r.is_work)
            annual = sum(1 for r in counted if r.is_annual)
            off = len(counted) - work - annual
            if work + off + annual != len(active):
                missing = sorted(active - {r.staff_id for r in counted})
                result.add_error(ValidationError(
                    error_type=ValidationErrorType.HEADCOUNT_MISMATCH,
                    message=(
                        f"work {work} + off {off} + annual {annual} != "
                        f"{len(active)} active staff"
                    ),
                    error_date=d,
                    details={"missing": missing},
                ))
                for sid in missing:
                    result.add_error(ValidationError(
                        error_type=ValidationErrorType.MISSING_ROW,
                        message="No assignment row",
                        staff_id=sid,
                        error_date=d,
                    ))

        for start in sorted({week_start(d) for d in scope}):
            dates = [d for d in {rd for (_, rd) in grid} if week_start(d) == start]
            for sid in sorted(active):
                worked = sum(
                    1 for d in dates
                    if (sid, d) in grid and grid[(sid, d)].counts_as_workday
                )
                cap = self.calendar.weekly_quota(members[sid].weekly_target, start)
                if worked > cap:
                    if sid in flagged:
                        result.add_warning(
                            f"Staff {sid} has {worked} workdays in week of {start} (cap {cap}), already reported"
                        )
                        continue
                    result.add_error(ValidationError(
                        error_type=ValidationErrorType.WEEKLY_CAP_EXCEEDED,
                        message=f"{worked} workdays exceeds weekly cap of {cap}",
                        staff_id=sid,
                        error_date=start,
                        details={"workdays": worked, "cap": cap},
                    ))

        for (sid, d), leave in sorted(confirmed_leaves.items()):
            if d not in scope or sid not in active:
                continue
            row = grid.get((sid, d))
            if row is None or row.is_work or row.leave_id != leave.id:
                result.add_error(ValidationError(
                    error_type=ValidationErrorType.LEAVE_NOT_APPLIED,
                    message=f"Confirmed leave {leave.id} is not applied",
                    staff_id=sid,
                    error_date=d,
                ))

        return result
