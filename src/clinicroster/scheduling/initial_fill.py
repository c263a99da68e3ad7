"""Phase 1: greedy initial fill.

Dates are filled in chronological order. For each date every category's slot
count is filled from staff of that category, most-owed first; remaining gaps
are then offered to flexible staff by flexibility priority. Anyone not placed
is recorded OFF.
"""

import logging
from datetime import date

from clinicroster.domain.calendar import FairnessDimension
from clinicroster.domain.models import ShiftAssignment, ShiftKind, Staff
from clinicroster.scheduling.context import (
    AssignmentGrid,
    Issue,
    IssueKind,
    PhaseOutcome,
    SchedulingInputs,
    Severity,
)

logger = logging.getLogger(__name__)


def initial_fill(grid: AssignmentGrid, inputs: SchedulingInputs) -> PhaseOutcome:
    """Fill the week's category slots and record everyone else OFF.

    Args:
        grid: Rows outside the week being rebuilt.
        inputs: Run inputs.

    Returns:
        PhaseOutcome whose grid holds a row for every active staff member on
        every date of the week.
    """
    grid = grid.copy()
    issues: list[Issue] = []

    for d in inputs.week_dates:
        _place_leaves(grid, inputs, d)

    for d in inputs.week_dates:
        resolution = inputs.resolutions.get(d)
        if resolution is None:
            continue
        if not resolution.is_known:
            issues.append(configuration_gap(resolution.reason, d))
            logger.warning(f"Configuration gap on {d}: {resolution.reason}")
            continue

        categories = resolution.categories(inputs.department)
        shift = resolution.shift_kind
        placed: set[str] = set()
        filled = {category: 0 for category in categories}

        for category in sorted(categories):
            native = [
                s for s in inputs.active_staff
                if s.category == category and _eligible(grid, inputs, s, d, placed)
            ]
            native.sort(key=lambda s: owed_key(grid, inputs, s, d))
            for member in native[:categories[category].count]:
                _work(grid, member, d, shift, category, placed)
                filled[category] += 1

        for category in sorted(categories):
            gap = categories[category].count - filled[category]
            if gap <= 0:
                continue
            flexible = [
                s for s in inputs.active_staff
                if s.is_flexible_for(category) and _eligible(grid, inputs, s, d, placed)
            ]
            flexible.sort(key=lambda s: (-s.flexibility_priority,) + owed_key(grid, inputs, s, d))
            for member in flexible[:gap]:
                _work(grid, member, d, shift, category, placed)
                filled[category] += 1
                logger.debug(f"{member.id} covers {category} on {d} (flexible)")

        for category in sorted(categories):
            req = categories[category]
            if filled[category] < req.count:
                issues.append(shortage(d, category, filled[category], req.count, req.minimum))

    for member in inputs.active_staff:
        for d in inputs.week_dates:
            if grid.get(member.id, d) is None:
                grid.put(ShiftAssignment(member.id, d, ShiftKind.OFF))

    logger.info(
        f"Initial fill for week {inputs.week}: "
        f"{sum(1 for r in grid.rows() if r.is_work and r.assignment_date in inputs.week_dates)} "
        f"shifts placed, {len(issues)} issues"
    )
    return PhaseOutcome(grid=grid, issues=issues)


def owed_key(
    grid: AssignmentGrid, inputs: SchedulingInputs, member: Staff, d: date
) -> tuple[float, float, str]:
    """Sort key: most owed total first, then most owed on the date's special dimensions."""
    resolution = inputs.resolutions.get(d)
    night = bool(resolution and resolution.roster.has_night_shift)
    special = inputs.calendar.classify(d, night) - {FairnessDimension.TOTAL}
    return (
        -inputs.owed(grid, member.id, [FairnessDimension.TOTAL]),
        -inputs.owed(grid, member.id, special),
        member.id,
    )


def configuration_gap(reason: str, d: date) -> Issue:
    return Issue(
        kind=IssueKind.CONFIGURATION_GAP,
        severity=Severity.WARNING,
        message=f"{d}: {reason}; date skipped",
        suggestion="Add a staffing requirement for this doctor combination",
        issue_date=d,
    )


def shortage(d: date, category: str, filled: int, count: int, minimum: int) -> Issue:
    below_minimum = filled < minimum
    return Issue(
        kind=IssueKind.SHORTAGE,
        severity=Severity.CRITICAL if below_minimum else Severity.WARNING,
        message=f"{d}: {category} has {filled} of {count} required staff (minimum {minimum})",
        suggestion=(
            f"Add flexible coverage for {category} or review approved leave on {d}"
            if below_minimum
            else f"Consider assigning additional {category} staff on {d}"
        ),
        issue_date=d,
        category=category,
        details={"filled": filled, "count": count, "minimum": minimum},
    )


def _eligible(
    grid: AssignmentGrid,
    inputs: SchedulingInputs,
    member: Staff,
    d: date,
    placed: set[str],
) -> bool:
    if member.id in placed or inputs.leave_on(member.id, d) is not None:
        return False
    return grid.workdays(member.id, inputs.week_dates) < inputs.quota(member, d)


def _work(
    grid: AssignmentGrid,
    member: Staff,
    d: date,
    shift: ShiftKind,
    category: str,
    placed: set[str],
) -> None:
    grid.put(ShiftAssignment(member.id, d, shift, category=category))
    placed.add(member.id)


def _place_leaves(grid: AssignmentGrid, inputs: SchedulingInputs, d: date) -> None:
    """Record confirmed leaves on ``d`` as linked OFF rows.

    ANNUAL rows count toward the weekly quota, so they go in before any
    date of the week is filled.
    """
    for member in inputs.active_staff:
        leave = inputs.leave_on(member.id, d)
        if leave is not None:
            grid.put(ShiftAssignment(
                member.id, d, ShiftKind.OFF, leave_id=leave.id, leave_type=leave.leave_type
            ))
