"""Leave eligibility simulator.

A leave request must pass three checks:

1. Weekly cap: the Sunday-anchored week must keep enough workable days for
   the weekly minimum.
2. Category slot: the category must keep its minimum headcount that day.
3. Fairness allowance: the staff member may not take more leave in the
   window than their fairness-adjusted minimum leaves room for.

All three are evaluated and reported; the first failure decides the verdict.
The simulator only reads from the store.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Mapping, Optional

from clinicroster.domain.calendar import (
    ClinicCalendar,
    FairnessDimension,
    date_range,
    week_start,
)
from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import (
    FairnessProfile,
    LeaveApplication,
    LeaveStatus,
    LeaveType,
    ScheduleBatch,
    Staff,
)
from clinicroster.domain.requirements import RequirementResolver, Resolution
from clinicroster.fairness.calculator import FairnessCalculator, adjusted_minimum
from clinicroster.leave.slots import slot_availability
from clinicroster.storage.store import ScheduleStore

logger = logging.getLogger(__name__)


class EligibilityCheck(Enum):
    WEEKLY_CAP = "weekly_cap"
    CATEGORY_SLOT = "category_slot"
    FAIRNESS_ALLOWANCE = "fairness_allowance"


@dataclass
class CheckOutcome:
    """Result of one check.

    ``margin`` is the headroom left if the request were granted; a check
    fails exactly when its margin is negative.
    """

    check: EligibilityCheck
    passed: bool
    margin: int
    detail: str
    values: dict = field(default_factory=dict)


@dataclass
class EligibilityVerdict:
    """Allow/deny answer for one requested date."""

    staff_id: str
    leave_date: date
    leave_type: LeaveType
    checks: list[CheckOutcome] = field(default_factory=list)
    suggested_dates: list[date] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failed_check(self) -> Optional[EligibilityCheck]:
        failed = self.first_failure
        return failed.check if failed else None

    @property
    def first_failure(self) -> Optional[CheckOutcome]:
        return next((c for c in self.checks if not c.passed), None)

    @property
    def margin(self) -> Optional[int]:
        failed = self.first_failure
        return failed.margin if failed else None

    @property
    def reason(self) -> str:
        failed = self.first_failure
        return failed.detail if failed else "eligible"

    def outcome(self, check: EligibilityCheck) -> CheckOutcome:
        return next(c for c in self.checks if c.check is check)

    def to_dict(self) -> dict:
        return {
            "staffId": self.staff_id,
            "date": self.leave_date.isoformat(),
            "type": self.leave_type.value,
            "allowed": self.allowed,
            "failedCheck": self.failed_check.value if self.failed_check else None,
            "margin": self.margin,
            "reason": self.reason,
            "suggestedDates": [d.isoformat() for d in self.suggested_dates],
        }


@dataclass
class LeaveSnapshot:
    """Data read once per simulation and reused for suggested dates."""

    member: Staff
    staff: list[Staff]
    calendar: ClinicCalendar
    leaves: list[LeaveApplication]
    resolutions: Mapping[date, Resolution]
    profile: Optional[FairnessProfile]
    window_start: date
    window_end: date

    def own_confirmed(self) -> list[LeaveApplication]:
        return [lv for lv in self.leaves if lv.staff_id == self.member.id]


class LeaveEligibilitySimulator:
    """Read-only eligibility checks for leave requests.

    Example:
        >>> simulator = LeaveEligibilitySimulator(store)
        >>> verdict = simulator.simulate("s1", date(2026, 3, 12), LeaveType.OFF)
        >>> verdict.allowed, verdict.failed_check, verdict.margin
    """

    def __init__(self, store: ScheduleStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def simulate(
        self,
        staff_id: str,
        leave_date: date,
        leave_type: LeaveType,
        already_selected: Iterable[date] = (),
        suggest: bool = True,
    ) -> EligibilityVerdict:
        """Check whether ``staff_id`` may take ``leave_type`` on ``leave_date``.

        Args:
            staff_id: Requesting staff member.
            leave_date: Requested date.
            leave_type: ANNUAL or OFF.
            already_selected: Other dates chosen in the same submission.
            suggest: Offer alternative dates when denied.

        Raises:
            KeyError: Unknown staff member.
        """
        snapshot = self.load(staff_id, leave_date)
        selected = sorted(set(already_selected) - {leave_date})
        verdict = self.evaluate(snapshot, leave_date, leave_type, selected)
        if not verdict.allowed and suggest:
            verdict.suggested_dates = self.suggest_dates(snapshot, leave_date, leave_type, selected)
        logger.debug(
            f"Leave simulation {staff_id} {leave_date} {leave_type.value}: "
            f"{'allowed' if verdict.allowed else verdict.failed_check.value}"
        )
        return verdict

    def load(self, staff_id: str, leave_date: date) -> LeaveSnapshot:
        member = self.store.get_staff_member(staff_id)
        clinic = member.clinic_id
        batch = ScheduleBatch.for_month("window", member.department, leave_date.year, leave_date.month, clinic)
        staff = self.store.get_staff(clinic, member.department)
        rosters = self.store.get_rosters(clinic, batch.start_date, batch.end_date)
        resolver = RequirementResolver(self.store.get_requirements(clinic))
        return LeaveSnapshot(
            member=member,
            staff=staff,
            calendar=ClinicCalendar(self.store.get_holidays(), self.config.closed_weekdays),
            leaves=self.store.get_leaves(
                clinic, batch.start_date, batch.end_date, [LeaveStatus.CONFIRMED]
            ),
            resolutions=resolver.resolve_many(rosters),
            profile=self.store.period_profiles(batch, [staff_id]).get(staff_id),
            window_start=batch.month_start,
            window_end=batch.month_end,
        )

    def evaluate(
        self,
        snapshot: LeaveSnapshot,
        leave_date: date,
        leave_type: LeaveType,
        selected: list[date],
    ) -> EligibilityVerdict:
        verdict = EligibilityVerdict(snapshot.member.id, leave_date, leave_type)
        verdict.checks.append(self.weekly_cap(snapshot, leave_date, leave_type, selected))
        verdict.checks.append(self.category_slot(snapshot, leave_date))
        verdict.checks.append(self.fairness_allowance(snapshot, leave_date, selected))
        return verdict

    def weekly_cap(
        self,
        snapshot: LeaveSnapshot,
        leave_date: date,
        leave_type: LeaveType,
        selected: list[date],
    ) -> CheckOutcome:
        cal = snapshot.calendar
        start = week_start(leave_date)
        end = start + timedelta(days=6)
        business = len(cal.business_days(start, end))
        holidays = cal.holidays_between(start, end)

        approved = {
            lv.leave_date for lv in snapshot.own_confirmed()
            if lv.leave_type is LeaveType.OFF
            and start <= lv.leave_date <= end
            and cal.is_workable(lv.leave_date)
        }
        counts_off = leave_type is LeaveType.OFF
        chosen = {
            d for d in selected
            if counts_off and start <= d <= end and cal.is_workable(d) and d not in approved
        }
        this_request = int(
            counts_off and cal.is_workable(leave_date) and leave_date not in approved
        )
        workable = business - holidays - (len(approved) + len(chosen) + this_request)

        target = self.config.leave.weekly_minimum
        if target is None:
            target = snapshot.member.weekly_target
        minimum = min(cal.weekly_quota(target, leave_date), business - holidays)
        margin = workable - minimum
        return CheckOutcome(
            check=EligibilityCheck.WEEKLY_CAP,
            passed=margin >= 0,
            margin=margin,
            detail=(
                f"Week of {start} keeps {workable} workable days against a minimum of {minimum}"
            ),
            values={
                "businessDays": business,
                "holidays": holidays,
                "approvedOffs": len(approved),
                "selectedOffs": len(chosen),
                "workableDays": workable,
                "minimum": minimum,
            },
        )

    def category_slot(self, snapshot: LeaveSnapshot, leave_date: date) -> CheckOutcome:
        member = snapshot.member
        availability = slot_availability(
            department=member.department,
            category=member.category,
            d=leave_date,
            staff=snapshot.staff,
            leaves=snapshot.leaves,
            resolution=snapshot.resolutions.get(leave_date),
            allow_unknown=self.config.leave.allow_unknown_requirement,
            requester_id=member.id,
        )
        margin = availability.available - 1
        if availability.should_hold:
            margin = min(margin, -1)
        else:
            margin = max(margin, 0)
        return CheckOutcome(
            check=EligibilityCheck.CATEGORY_SLOT,
            passed=not availability.should_hold,
            margin=margin,
            detail=availability.reason,
            values={
                "outcome": availability.outcome.value,
                "totalStaff": availability.total_staff,
                "approvedLeaves": availability.approved_leaves,
                "minimum": availability.minimum,
                "available": availability.available,
            },
        )

    def fairness_allowance(
        self,
        snapshot: LeaveSnapshot,
        leave_date: date,
        selected: list[date],
    ) -> CheckOutcome:
        member = snapshot.member
        start, end = snapshot.window_start, snapshot.window_end
        window_length = len(snapshot.calendar.workable_days(start, end))

        calculator = FairnessCalculator(snapshot.calendar, self.config.fairness)
        group = calculator.category_baseline(
            member.department, member.category, snapshot.staff, snapshot.resolutions, start, end
        )
        baseline = group.baseline(FairnessDimension.TOTAL)
        previous = snapshot.profile.deviation(FairnessDimension.TOTAL) if snapshot.profile else 0.0
        minimum = adjusted_minimum(baseline, previous)

        approved = {
            lv.leave_date for lv in snapshot.own_confirmed()
            if start <= lv.leave_date <= end and lv.leave_date != leave_date
        }
        chosen = {d for d in selected if start <= d <= end and d not in approved}
        max_allowed = window_length - minimum - len(approved)
        margin = max_allowed - (len(chosen) + 1)
        return CheckOutcome(
            check=EligibilityCheck.FAIRNESS_ALLOWANCE,
            passed=margin >= 0,
            margin=margin,
            detail=(
                f"{len(chosen) + 1} leave day(s) requested against an allowance of "
                f"{max_allowed} ({window_length} workable days, adjusted minimum {minimum}, "
                f"{len(approved)} approved)"
            ),
            values={
                "windowLength": window_length,
                "baseline": baseline,
                "previousDeviation": previous,
                "adjustedMinimum": minimum,
                "approvedLeaves": len(approved),
                "maxAllowed": max_allowed,
            },
        )

    def suggest_dates(
        self,
        snapshot: LeaveSnapshot,
        leave_date: date,
        leave_type: LeaveType,
        selected: list[date],
    ) -> list[date]:
        """Nearest dates in the window that would pass every check."""
        limit = self.config.leave.suggestion_limit
        taken = {lv.leave_date for lv in snapshot.own_confirmed()} | set(selected) | {leave_date}
        candidates = [
            d for d in date_range(snapshot.window_start, snapshot.window_end)
            if d not in taken and snapshot.calendar.is_workable(d)
        ]
        candidates.sort(key=lambda d: (abs((d - leave_date).days), d))
        suggestions = []
        for d in candidates:
            if len(suggestions) >= limit:
                break
            if self.evaluate(snapshot, d, leave_type, selected).allowed:
                suggestions.append(d)
        return suggestions

