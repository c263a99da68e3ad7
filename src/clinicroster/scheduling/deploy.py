"""Deploying a batch closes its fairness period.

Deploy recomputes fairness over the batch month and persists the result as
every staff member's new previous deviation. The deviations the month opened
with are recorded at its first deploy, so a later batch that supersedes it
is closed from the same starting point instead of counting the month twice.
On a month's first deploy confirmed annual leave is added to the usage
counters. Deploy also archives any other deployed batch for the same
clinic department and month. All of it happens in one store transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from clinicroster.domain.calendar import ClinicCalendar
from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import BatchStatus, FairnessProfile, LeaveStatus, LeaveType
from clinicroster.domain.requirements import RequirementResolver
from clinicroster.errors import ConcurrencyConflict, DeployError
from clinicroster.fairness.calculator import FairnessCalculator, FairnessReport
from clinicroster.storage.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    batch_id: str
    deployed_at: datetime
    report: FairnessReport
    archived_batches: list[str] = field(default_factory=list)
    annual_leave_added: dict[str, int] = field(default_factory=dict)


class ScheduleDeployer:
    """Publishes a batch and closes its fairness period."""

    def __init__(self, store: ScheduleStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

    def deploy(self, batch_id: str, now: Optional[datetime] = None) -> DeployResult:
        """Deploy a batch.

        Raises:
            KeyError: Unknown batch.
            ConcurrencyConflict: The batch is being assigned.
            DeployError: The batch is already deployed or archived.
        """
        now = now or datetime.now()
        with self.store.transaction():
            batch = self.store.get_batch(batch_id)
            if batch.status is BatchStatus.ASSIGNING:
                raise ConcurrencyConflict(batch_id)
            if batch.status in (BatchStatus.DEPLOYED, BatchStatus.ARCHIVED):
                raise DeployError(f"Batch {batch_id} is already {batch.status.value}")

            first_close = self.store.get_opening_profiles(batch.period_key) is None
            staff_ids = [s.id for s in self.store.get_staff(batch.clinic_id, batch.department)]
            opening = self.store.period_profiles(batch, staff_ids)
            self.store.save_opening_profiles(
                batch.period_key,
                [opening.get(sid, FairnessProfile(sid)) for sid in staff_ids],
            )

            calculator = self._calculator()
            report = self.evaluate(batch_id, calculator)
            self.store.save_profiles(calculator.close_period(report, now))

            # a superseded deployment of this month already counted its annual leave
            added = self._count_annual_leave(batch) if first_close else {}
            for member in self.store.get_staff(batch.clinic_id, batch.department):
                if added.get(member.id):
                    member.annual_leave_used += added[member.id]
                    self.store.update_staff(member)

            archived = []
            for other in self.store.list_batches(batch.clinic_id, batch.department):
                if other.id != batch.id and other.status is BatchStatus.DEPLOYED and other.same_period(batch):
                    self.store.set_batch_status(other.id, BatchStatus.ARCHIVED)
                    archived.append(other.id)

            self.store.set_batch_status(batch.id, BatchStatus.DEPLOYED, deployed_at=now)

        logger.info(
            f"Deployed batch {batch_id}: {len(report.staff)} profiles saved, "
            f"{len(archived)} batches archived"
        )
        return DeployResult(
            batch_id=batch_id,
            deployed_at=now,
            report=report,
            archived_batches=archived,
            annual_leave_added=added,
        )

    def evaluate(
        self, batch_id: str, calculator: Optional[FairnessCalculator] = None
    ) -> FairnessReport:
        """Fairness over the batch's month from its stored rows and confirmed leave.

        Boundary weeks shared with neighbouring months are cut at the month
        edge so no day is closed twice.
        """
        calculator = calculator or self._calculator()
        batch = self.store.get_batch(batch_id)
        clinic = batch.clinic_id
        staff = self.store.get_staff(clinic, batch.department)
        resolver = RequirementResolver(self.store.get_requirements(clinic))
        return calculator.evaluate(
            staff=staff,
            resolutions=resolver.resolve_many(
                self.store.get_rosters(clinic, batch.start_date, batch.end_date)
            ),
            assignments=self.store.get_assignments(batch_id),
            leaves=self.store.get_leaves(
                clinic, batch.start_date, batch.end_date, [LeaveStatus.CONFIRMED]
            ),
            profiles=self.store.period_profiles(batch, (s.id for s in staff)),
            start=batch.month_start,
            end=batch.month_end,
        )

    def _calculator(self) -> FairnessCalculator:
        calendar = ClinicCalendar(self.store.get_holidays(), self.config.closed_weekdays)
        return FairnessCalculator(calendar, self.config.fairness)

    def _count_annual_leave(self, batch) -> dict[str, int]:
        """Confirmed ANNUAL leave inside the batch's own month."""
        counts: dict[str, int] = {}
        staff_ids = {s.id for s in self.store.get_staff(batch.clinic_id, batch.department)}
        for leave in self.store.get_leaves(
            batch.clinic_id, batch.start_date, batch.end_date, [LeaveStatus.CONFIRMED]
        ):
            if leave.leave_type is not LeaveType.ANNUAL or leave.staff_id not in staff_ids:
                continue
            if not (batch.month_start <= leave.leave_date <= batch.month_end):
                continue
            counts[leave.staff_id] = counts.get(leave.staff_id, 0) + 1
        return counts
