"""Leave submission and bulk review.

Submission runs the simulator for each requested date before creating a
PENDING application. Bulk review later promotes PENDING applications in the
order they were created: CONFIRMED when every check passes, ON_HOLD when only
the category slot check fails, REJECTED otherwise.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import LeaveApplication, LeaveStatus, LeaveType
from clinicroster.leave.entitlement import remaining_annual_leave
from clinicroster.leave.simulator import (
    EligibilityCheck,
    EligibilityVerdict,
    LeaveEligibilitySimulator,
)
from clinicroster.storage.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    created: list[LeaveApplication] = field(default_factory=list)
    verdicts: list[EligibilityVerdict] = field(default_factory=list)
    over_entitlement: list[date] = field(default_factory=list)

    @property
    def denied(self) -> list[EligibilityVerdict]:
        return [v for v in self.verdicts if not v.allowed]


@dataclass
class ReviewResult:
    decisions: dict[str, LeaveStatus] = field(default_factory=dict)
    verdicts: dict[str, EligibilityVerdict] = field(default_factory=dict)

    def count(self, status: LeaveStatus) -> int:
        return sum(1 for s in self.decisions.values() if s is status)


def decide(verdict: EligibilityVerdict) -> LeaveStatus:
    """Map a verdict to the status bulk review assigns."""
    if verdict.allowed:
        return LeaveStatus.CONFIRMED
    failed = {c.check for c in verdict.checks if not c.passed}
    if failed == {EligibilityCheck.CATEGORY_SLOT}:
        return LeaveStatus.ON_HOLD
    return LeaveStatus.REJECTED


class LeaveService:
    """Self-service submission plus the bulk review collaborator."""

    def __init__(
        self,
        store: ScheduleStore,
        config: Optional[EngineConfig] = None,
        simulator: Optional[LeaveEligibilitySimulator] = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.simulator = simulator or LeaveEligibilitySimulator(store, self.config)

    def submit(
        self,
        staff_id: str,
        dates: Iterable[date],
        leave_type: LeaveType,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        """Simulate each date and create PENDING applications for allowed ones.

        Dates are processed in order; each allowed date is carried into the
        next simulation as already selected.
        """
        now = now or datetime.now()
        member = self.store.get_staff_member(staff_id)
        result = SubmissionResult()
        selected: list[date] = []
        remaining = None
        if leave_type is LeaveType.ANNUAL:
            remaining = remaining_annual_leave(member, now.date())

        for d in sorted(set(dates)):
            if remaining is not None and remaining <= 0:
                result.over_entitlement.append(d)
                continue
            verdict = self.simulator.simulate(staff_id, d, leave_type, already_selected=selected)
            result.verdicts.append(verdict)
            if not verdict.allowed:
                continue
            selected.append(d)
            if remaining is not None:
                remaining -= 1
            result.created.append(LeaveApplication(
                id=f"lv-{uuid.uuid4().hex[:12]}",
                staff_id=staff_id,
                leave_date=d,
                leave_type=leave_type,
                status=LeaveStatus.PENDING,
                created_at=now,
                clinic_id=member.clinic_id,
            ))

        if result.created:
            self.store.add_leaves(result.created)
        logger.info(
            f"Leave submission for {staff_id}: {len(result.created)} pending, "
            f"{len(result.denied)} denied, {len(result.over_entitlement)} over entitlement"
        )
        return result

    def review_pending(self, clinic_id: str, start: date, end: date) -> ReviewResult:
        """Decide every PENDING application in [start, end], oldest first."""
        return self._review(clinic_id, start, end, LeaveStatus.PENDING)

    def process_on_hold(self, clinic_id: str, start: date, end: date) -> ReviewResult:
        """Re-evaluate ON_HOLD applications, e.g. after another leave was cancelled."""
        return self._review(clinic_id, start, end, LeaveStatus.ON_HOLD)

    def _review(
        self, clinic_id: str, start: date, end: date, status: LeaveStatus
    ) -> ReviewResult:
        result = ReviewResult()
        with self.store.transaction():
            queue = sorted(
                self.store.get_leaves(clinic_id, start, end, [status]),
                key=lambda lv: (lv.created_at, lv.id),
            )
            for leave in queue:
                verdict = self.simulator.simulate(
                    leave.staff_id, leave.leave_date, leave.leave_type, suggest=False
                )
                decision = decide(verdict)
                result.verdicts[leave.id] = verdict
                result.decisions[leave.id] = decision
                if decision is not status:
                    # Later applications must see this decision.
                    self.store.update_leave_statuses({leave.id: decision})
        logger.info(
            f"Reviewed {len(result.decisions)} {status.value} leaves for {clinic_id}: "
            f"{result.count(LeaveStatus.CONFIRMED)} confirmed, "
            f"{result.count(LeaveStatus.ON_HOLD)} on hold, "
            f"{result.count(LeaveStatus.REJECTED)} rejected"
        )
        return result
