"""Phase 2: weekly-minimum rebalance.

Each round flips exactly one OFF day to work for every staff member still
below their weekly quota, most-owed first. Days that need a category the
member can cover come first; among those the eligible OFF day with the
highest OFF headcount wins and ties go to the earliest date.
"""

import logging
from datetime import date
from typing import Optional

from clinicroster.domain.calendar import FairnessDimension
from clinicroster.domain.models import ShiftAssignment, Staff
from clinicroster.scheduling.context import (
    AssignmentGrid,
    Issue,
    IssueKind,
    PhaseOutcome,
    SchedulingInputs,
    Severity,
)

logger = logging.getLogger(__name__)


def rebalance(grid: AssignmentGrid, inputs: SchedulingInputs) -> PhaseOutcome:
    grid = grid.copy()
    week = inputs.week_dates
    active_ids = inputs.active_ids
    floor = inputs.config.rebalance.off_floor
    stuck: set[str] = set()

    def short(member: Staff) -> bool:
        return grid.workdays(member.id, week) < inputs.quota(member, week[0])

    for round_number in range(1, inputs.config.rebalance.max_rounds + 1):
        pending = [s for s in inputs.active_staff if s.id not in stuck and short(s)]
        if not pending:
            break
        pending.sort(key=lambda s: (-inputs.owed(grid, s.id, [FairnessDimension.TOTAL]), s.id))
        for member in pending:
            target = pick_off_day(grid, inputs, member, active_ids, floor)
            if target is None:
                stuck.add(member.id)
                continue
            resolution = inputs.resolved(target)
            grid.put(ShiftAssignment(
                member.id, target, resolution.shift_kind,
                category=cover_category(inputs, member, target),
            ))
            logger.debug(f"Round {round_number}: {member.id} moved to work on {target}")

    issues = []
    for member in inputs.active_staff:
        worked = grid.workdays(member.id, week)
        quota = inputs.quota(member, week[0])
        if worked < quota:
            issues.append(Issue(
                kind=IssueKind.CONSTRAINT_UNSATISFIABLE,
                severity=Severity.CRITICAL if worked == 0 else Severity.WARNING,
                message=(
                    f"{member.name} ({member.id}) has {worked} of {quota} workdays "
                    f"in week {inputs.week}"
                ),
                suggestion="Review this member's leave in the week or add a workable roster day",
                staff_id=member.id,
                category=member.category,
                details={"workdays": worked, "quota": quota},
            ))
            logger.warning(f"{member.id} stays below weekly minimum ({worked}/{quota})")
    return PhaseOutcome(grid=grid, issues=issues)


def pick_off_day(
    grid: AssignmentGrid,
    inputs: SchedulingInputs,
    member: Staff,
    active_ids: set[str],
    floor: int,
) -> Optional[date]:
    """Eligible OFF day with the most staff OFF, earliest first on ties.

    A day that needs one of the member's categories always beats one that
    does not; the latter are only used when nothing else is left.
    """
    best: Optional[date] = None
    best_rank: Optional[tuple[bool, int]] = None
    for d in inputs.week_dates:
        row = grid.get(member.id, d)
        if row is None or row.is_work or row.leave_id is not None:
            continue
        if inputs.resolved(d) is None or inputs.leave_on(member.id, d) is not None:
            continue
        off = grid.off_count(d, active_ids)
        if off <= floor:
            continue
        rank = (cover_category(inputs, member, d) is not None, off)
        if best_rank is None or rank > best_rank:
            best, best_rank = d, rank
    return best


def cover_category(inputs: SchedulingInputs, member: Staff, d: date) -> Optional[str]:
    """Category a member covers when moved to work on ``d``.

    The member's own category when the date has slots for it, otherwise the
    first flexible category with slots, otherwise None.
    """
    resolution = inputs.resolved(d)
    if resolution is None:
        return None
    for category in [member.category, *sorted(member.flexible_categories)]:
        if resolution.category(inputs.department, category).count > 0:
            return category
    return None
