"""Category slot availability.

For a date and category:

    available  = active category staff - confirmed leave that day - category minimum
    should_hold = available <= 0

Dates without a roster or without a matching requirement are held unless the
caller explicitly allows unknown dates.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import LeaveApplication, LeaveStatus, Staff
from clinicroster.domain.requirements import Resolution, RequirementResolver
from clinicroster.storage.store import ScheduleStore

logger = logging.getLogger(__name__)

MINIMUM_BREACH_REASON = "category minimum breach"


class SlotOutcome(Enum):
    OPEN = "open"
    MINIMUM_BREACH = "minimum_breach"
    CATEGORY_NOT_CONFIGURED = "category_not_configured"
    REQUIREMENT_UNKNOWN = "requirement_unknown"
    NO_ROSTER = "no_roster"


@dataclass(frozen=True)
class SlotAvailability:
    """Leave headroom for one category on one date.

    Attributes:
        slot_date: Date checked.
        department: Department of the category.
        category: Category checked.
        outcome: Which rule decided the result.
        total_staff: Active staff in the category.
        approved_leaves: Confirmed leaves in the category that day, requester excluded.
        minimum: Category minimum (0 when not configured or unknown).
        available: Remaining leave slots.
        should_hold: True when a new leave should be held.
        reason: Human-readable explanation.
    """

    slot_date: date
    department: str
    category: str
    outcome: SlotOutcome
    total_staff: int
    approved_leaves: int
    minimum: int
    available: int
    should_hold: bool
    reason: str


def slot_availability(
    department: str,
    category: str,
    d: date,
    staff: Iterable[Staff],
    leaves: Iterable[LeaveApplication],
    resolution: Optional[Resolution],
    allow_unknown: bool = False,
    requester_id: Optional[str] = None,
) -> SlotAvailability:
    """Compute availability from already loaded data.

    Args:
        department: Department of the category.
        category: Category to check.
        d: Date to check.
        staff: Staff of the clinic or department.
        leaves: Leave applications; only CONFIRMED ones on ``d`` count.
        resolution: Resolved requirement for ``d``, or None without a roster.
        allow_unknown: Open unknown dates instead of holding them.
        requester_id: Staff member asking; their own leave is not counted.
    """
    members = {
        s.id for s in staff
        if s.is_active and s.department == department and s.category == category
    }
    approved = sum(
        1 for lv in leaves
        if lv.status is LeaveStatus.CONFIRMED
        and lv.leave_date == d
        and lv.staff_id in members
        and lv.staff_id != requester_id
    )
    total = len(members)

    def result(outcome, minimum, available, hold, reason):
        return SlotAvailability(d, department, category, outcome, total, approved, minimum, available, hold, reason)

    if resolution is None:
        return result(
            SlotOutcome.NO_ROSTER, 0, total - approved, not allow_unknown,
            f"No doctor roster for {d}",
        )
    if not resolution.is_known:
        return result(
            SlotOutcome.REQUIREMENT_UNKNOWN, 0, total - approved, not allow_unknown,
            resolution.reason,
        )

    lookup = resolution.category(department, category)
    available = total - approved - lookup.minimum
    if not lookup.is_configured:
        return result(
            SlotOutcome.CATEGORY_NOT_CONFIGURED, 0, available, available <= 0,
            f"{category} has no requirement in {department} on {d}; {available} staff remain",
        )
    if available <= 0:
        return result(
            SlotOutcome.MINIMUM_BREACH, lookup.minimum, available, True,
            f"{MINIMUM_BREACH_REASON}: {category} on {d} has {total} staff, "
            f"{approved} on leave, minimum {lookup.minimum}",
        )
    return result(
        SlotOutcome.OPEN, lookup.minimum, available, False,
        f"{available} {category} leave slot(s) open on {d}",
    )


class CategorySlotService:
    """Store-backed slot checks used by leave review and the simulator."""

    def __init__(self, store: ScheduleStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def check(
        self,
        member: Staff,
        d: date,
        allow_unknown: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> SlotAvailability:
        """Availability of ``member``'s category (or ``category``) on ``d``."""
        if allow_unknown is None:
            allow_unknown = self.config.leave.allow_unknown_requirement
        clinic = member.clinic_id
        availability = slot_availability(
            department=member.department,
            category=category or member.category,
            d=d,
            staff=self.store.get_staff(clinic, member.department),
            leaves=self.store.get_leaves(clinic, d, d, [LeaveStatus.CONFIRMED]),
            resolution=self._resolve(clinic, d),
            allow_unknown=allow_unknown,
            requester_id=member.id,
        )
        logger.debug(f"Slot check {member.id} {d}: {availability.outcome.value}")
        return availability

    def daily_overview(self, clinic_id: str, department: str, d: date) -> list[SlotAvailability]:
        """Availability for every category staffed or required in the department."""
        staff = self.store.get_staff(clinic_id, department)
        leaves = self.store.get_leaves(clinic_id, d, d, [LeaveStatus.CONFIRMED])
        resolution = self._resolve(clinic_id, d)
        categories = {s.category for s in staff if s.is_active}
        if resolution is not None and resolution.is_known:
            categories |= set(resolution.categories(department))
        return [
            slot_availability(
                department, category, d, staff, leaves, resolution,
                allow_unknown=self.config.leave.allow_unknown_requirement,
            )
            for category in sorted(categories)
        ]

    def _resolve(self, clinic_id: str, d: date) -> Optional[Resolution]:
        rosters = self.store.get_rosters(clinic_id, d, d)
        if not rosters:
            return None
        return RequirementResolver(self.store.get_requirements(clinic_id)).resolve(rosters[0])
