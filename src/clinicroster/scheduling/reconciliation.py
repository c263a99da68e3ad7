"""Phase 3/4: leave reconciliation across the batch range.

Confirmed leaves win over whatever the grid holds for the same staff and
date: WORK rows become linked OFF rows, missing rows are created and stale
links are repaired. Afterwards every active staff member has a row on every
date of the batch.
"""

import logging
from datetime import date

from clinicroster.domain.models import ShiftAssignment, ShiftKind
from clinicroster.scheduling.context import (
    AssignmentGrid,
    Issue,
    IssueKind,
    LeaveConflict,
    PhaseOutcome,
    SchedulingInputs,
    Severity,
)

logger = logging.getLogger(__name__)


def reconcile_leaves(grid: AssignmentGrid, inputs: SchedulingInputs) -> PhaseOutcome:
    grid = grid.copy()
    outcome = PhaseOutcome(grid=grid)
    staff_by_id = inputs.staff_by_id
    active_ids = inputs.active_ids
    confirmed_ids = {lv.id for lv in inputs.confirmed_leaves.values()}

    for (staff_id, d), leave in sorted(inputs.confirmed_leaves.items()):
        member = staff_by_id.get(staff_id)
        if member is None or not member.is_active:
            outcome.issues.append(Issue(
                kind=IssueKind.LEAVE_CONFLICT,
                severity=Severity.INFO,
                message=f"Confirmed leave {leave.id} on {d} belongs to inactive or unknown staff {staff_id}",
                suggestion="Cancel the leave or reactivate the staff member",
                issue_date=d,
                staff_id=staff_id,
            ))
            continue

        linked = ShiftAssignment(
            staff_id, d, ShiftKind.OFF, leave_id=leave.id, leave_type=leave.leave_type
        )
        row = grid.get(staff_id, d)
        if row == linked:
            continue
        grid.put(linked)
        outcome.touched_dates.add(d)
        if row is None or not row.is_work:
            continue

        outcome.conflicts.append(LeaveConflict(
            staff_id=staff_id,
            conflict_date=d,
            leave_id=leave.id,
            leave_type=leave.leave_type,
            replaced_shift=row.shift,
            replaced_category=row.category,
        ))
        logger.warning(
            f"Leave {leave.id} replaces {row.shift.value} shift for {staff_id} on {d}"
        )
        breach = _minimum_breach(grid, inputs, d, row.category, active_ids)
        if breach is not None:
            outcome.issues.append(breach)

    # Unlink rows whose leave is no longer confirmed.
    for row in grid.rows():
        if row.leave_id is not None and row.leave_id not in confirmed_ids:
            grid.put(ShiftAssignment(row.staff_id, row.assignment_date, ShiftKind.OFF))
            outcome.touched_dates.add(row.assignment_date)

    for member in inputs.active_staff:
        for d in inputs.batch.dates:
            if grid.get(member.id, d) is None:
                grid.put(ShiftAssignment(member.id, d, ShiftKind.OFF))
                outcome.touched_dates.add(d)

    outcome.issues.extend(_cap_overruns(grid, inputs, outcome.touched_dates))
    if outcome.conflicts:
        logger.info(f"Reconciled {len(outcome.conflicts)} leave conflicts")
    return outcome


def _minimum_breach(
    grid: AssignmentGrid,
    inputs: SchedulingInputs,
    d: date,
    category: str,
    active_ids: set[str],
):
    resolution = inputs.resolved(d)
    if resolution is None or category is None:
        return None
    lookup = resolution.category(inputs.department, category)
    covering = grid.covering(d, category, active_ids)
    if not lookup.is_configured or covering >= lookup.minimum:
        return None
    return Issue(
        kind=IssueKind.LEAVE_CONFLICT,
        severity=Severity.CRITICAL,
        message=(
            f"{d}: confirmed leave drops {category} to {covering} "
            f"(minimum {lookup.minimum})"
        ),
        suggestion=f"Re-run the week or add flexible coverage for {category} on {d}",
        issue_date=d,
        category=category,
        details={"covering": covering, "minimum": lookup.minimum},
    )


def _cap_overruns(
    grid: AssignmentGrid, inputs: SchedulingInputs, touched: set[date]
) -> list[Issue]:
    issues = []
    seen_weeks = sorted({inputs.week_of(d)[0] for d in touched})
    for start in seen_weeks:
        dates = inputs.week_of(start)
        for member in inputs.active_staff:
            worked = grid.workdays(member.id, dates)
            quota = inputs.quota(member, start)
            if worked > quota:
                issues.append(Issue(
                    kind=IssueKind.WEEKLY_CAP_EXCEEDED,
                    severity=Severity.WARNING,
                    message=(
                        f"{member.name} ({member.id}) has {worked} workdays in the week of "
                        f"{start}, above the cap of {quota}"
                    ),
                    suggestion="Re-run that week so annual leave replaces a scheduled shift",
                    issue_date=start,
                    staff_id=member.id,
                    details={"workdays": worked, "quota": quota},
                ))
    return issues
