"""Storage seam for the scheduling engine.

``ScheduleStore`` is the interface the engine reads and writes through.
``InMemoryStore`` is the reference implementation: every operation runs under
one re-entrant lock, so the batch-lock check-and-set is atomic, and
``transaction()`` restores a snapshot if the block raises.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Iterator, Optional

from clinicroster.domain.models import (
    BatchStatus,
    DoctorRoster,
    FairnessProfile,
    LeaveApplication,
    LeaveStatus,
    PeriodKey,
    ScheduleBatch,
    ShiftAssignment,
    Staff,
    StaffingRequirement,
)
from clinicroster.errors import ConcurrencyConflict, SchedulingError, StorageError

logger = logging.getLogger(__name__)

LOCKABLE_STATUSES = (BatchStatus.DRAFT, BatchStatus.CONFIRMED)


class MutationKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class AssignmentMutation:
    """A single row change produced by a scheduling run."""

    kind: MutationKind
    before: Optional[ShiftAssignment] = None
    after: Optional[ShiftAssignment] = None

    @property
    def key(self) -> tuple[str, date]:
        row = self.after or self.before
        return row.key


class ScheduleStore(ABC):
    """Abstract store used by the scheduler, leave services and deployer."""

    # Reads

    @abstractmethod
    def get_batch(self, batch_id: str) -> ScheduleBatch:
        """Return a copy of the batch. Raises KeyError if unknown."""

    @abstractmethod
    def list_batches(self, clinic_id: str, department: Optional[str] = None) -> list[ScheduleBatch]:
        pass

    @abstractmethod
    def get_staff(self, clinic_id: str, department: Optional[str] = None) -> list[Staff]:
        pass

    @abstractmethod
    def get_staff_member(self, staff_id: str) -> Staff:
        """Return one staff member. Raises KeyError if unknown."""

    @abstractmethod
    def get_rosters(self, clinic_id: str, start: date, end: date) -> list[DoctorRoster]:
        pass

    @abstractmethod
    def get_requirements(self, clinic_id: str) -> list[StaffingRequirement]:
        pass

    @abstractmethod
    def get_holidays(self) -> set[date]:
        pass

    @abstractmethod
    def get_leaves(
        self,
        clinic_id: str,
        start: date,
        end: date,
        statuses: Optional[Iterable[LeaveStatus]] = None,
    ) -> list[LeaveApplication]:
        pass

    @abstractmethod
    def get_assignments(
        self, batch_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[ShiftAssignment]:
        pass

    @abstractmethod
    def get_profiles(self, staff_ids: Iterable[str]) -> dict[str, FairnessProfile]:
        pass

    @abstractmethod
    def get_opening_profiles(self, period: PeriodKey) -> Optional[dict[str, FairnessProfile]]:
        """Profiles a month opened with, recorded at its first deploy; None before that."""

    def period_profiles(
        self, batch: ScheduleBatch, staff_ids: Iterable[str]
    ) -> dict[str, FairnessProfile]:
        """Previous-period deviations for a batch's month.

        After a month is deployed the live profiles already hold its close, so
        every later read for that month goes through the opening snapshot.
        Staff missing from the snapshot fall back to their live profile.
        """
        staff_ids = list(staff_ids)
        opening = self.get_opening_profiles(batch.period_key)
        if opening is None:
            return self.get_profiles(staff_ids)
        profiles = self.get_profiles(sid for sid in staff_ids if sid not in opening)
        for sid in staff_ids:
            if sid in opening:
                profiles[sid] = opening[sid]
        return profiles

    # Writes

    @abstractmethod
    def acquire_batch_lock(self, batch_id: str) -> ScheduleBatch:
        """Atomically move the batch to ASSIGNING.

        Raises:
            ConcurrencyConflict: If the batch is already ASSIGNING.
            SchedulingError: If the batch is deployed or archived.
        """

    @abstractmethod
    def release_batch_lock(self, batch_id: str) -> None:
        """Return an ASSIGNING batch to DRAFT. No-op for other statuses."""

    @abstractmethod
    def set_batch_status(
        self, batch_id: str, status: BatchStatus, deployed_at: Optional[datetime] = None
    ) -> None:
        pass

    @abstractmethod
    def apply_mutations(self, batch_id: str, mutations: Iterable[AssignmentMutation]) -> None:
        """Apply all mutations or none."""

    @abstractmethod
    def add_leaves(self, leaves: Iterable[LeaveApplication]) -> None:
        pass

    @abstractmethod
    def update_leave_statuses(self, statuses: dict[str, LeaveStatus]) -> None:
        pass

    @abstractmethod
    def update_staff(self, staff: Staff) -> None:
        pass

    @abstractmethod
    def save_profiles(self, profiles: Iterable[FairnessProfile]) -> None:
        pass

    @abstractmethod
    def save_opening_profiles(
        self, period: PeriodKey, profiles: Iterable[FairnessProfile]
    ) -> None:
        """Record a month's opening profiles. Later calls for the same month are ignored."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator["ScheduleStore"]:
        """Group writes so they commit or roll back together."""


class InMemoryStore(ScheduleStore):
    """Thread-safe in-memory store.

    Example:
        >>> store = InMemoryStore()
        >>> store.add_staff([Staff("s1", "Kim", "Nursing", "Lead")])
        >>> store.add_batch(ScheduleBatch.for_month("b1", "Nursing", 2026, 3))
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._batches: dict[str, ScheduleBatch] = {}
        self._staff: dict[str, Staff] = {}
        self._rosters: dict[tuple[str, date], DoctorRoster] = {}
        self._requirements: list[StaffingRequirement] = []
        self._holidays: set[date] = set()
        self._leaves: dict[str, LeaveApplication] = {}
        self._assignments: dict[str, dict[tuple[str, date], ShiftAssignment]] = {}
        self._profiles: dict[str, FairnessProfile] = {}
        self._openings: dict[PeriodKey, dict[str, FairnessProfile]] = {}

    # Setup helpers

    def add_batch(self, batch: ScheduleBatch) -> None:
        with self._lock:
            self._batches[batch.id] = copy.deepcopy(batch)
            self._assignments.setdefault(batch.id, {})

    def add_staff(self, staff: Iterable[Staff]) -> None:
        with self._lock:
            for member in staff:
                self._staff[member.id] = copy.deepcopy(member)

    def add_rosters(self, rosters: Iterable[DoctorRoster]) -> None:
        with self._lock:
            for roster in rosters:
                self._rosters[(roster.clinic_id, roster.roster_date)] = roster

    def add_requirements(self, requirements: Iterable[StaffingRequirement]) -> None:
        with self._lock:
            self._requirements.extend(copy.deepcopy(list(requirements)))

    def add_holidays(self, holidays: Iterable[date]) -> None:
        with self._lock:
            self._holidays.update(holidays)

    def add_assignments(self, batch_id: str, rows: Iterable[ShiftAssignment]) -> None:
        with self._lock:
            table = self._assignments.setdefault(batch_id, {})
            for row in rows:
                table[row.key] = row

    # Reads

    def get_batch(self, batch_id: str) -> ScheduleBatch:
        with self._lock:
            if batch_id not in self._batches:
                raise KeyError(f"Unknown batch: {batch_id}")
            return copy.deepcopy(self._batches[batch_id])

    def list_batches(self, clinic_id: str, department: Optional[str] = None) -> list[ScheduleBatch]:
        with self._lock:
            return [
                copy.deepcopy(b)
                for b in sorted(self._batches.values(), key=lambda b: b.id)
                if b.clinic_id == clinic_id and (department is None or b.department == department)
            ]

    def get_staff(self, clinic_id: str, department: Optional[str] = None) -> list[Staff]:
        with self._lock:
            return [
                copy.deepcopy(s)
                for s in sorted(self._staff.values(), key=lambda s: s.id)
                if s.clinic_id == clinic_id and (department is None or s.department == department)
            ]

    def get_staff_member(self, staff_id: str) -> Staff:
        with self._lock:
            if staff_id not in self._staff:
                raise KeyError(f"Unknown staff member: {staff_id}")
            return copy.deepcopy(self._staff[staff_id])

    def get_rosters(self, clinic_id: str, start: date, end: date) -> list[DoctorRoster]:
        with self._lock:
            return sorted(
                (
                    r for (cid, d), r in self._rosters.items()
                    if cid == clinic_id and start <= d <= end
                ),
                key=lambda r: r.roster_date,
            )

    def get_requirements(self, clinic_id: str) -> list[StaffingRequirement]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._requirements if r.clinic_id == clinic_id]

    def get_holidays(self) -> set[date]:
        with self._lock:
            return set(self._holidays)

    def get_leaves(
        self,
        clinic_id: str,
        start: date,
        end: date,
        statuses: Optional[Iterable[LeaveStatus]] = None,
    ) -> list[LeaveApplication]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                copy.deepcopy(lv)
                for lv in sorted(self._leaves.values(), key=lambda lv: (lv.created_at, lv.id))
                if lv.clinic_id == clinic_id
                and start <= lv.leave_date <= end
                and (wanted is None or lv.status in wanted)
            ]

    def get_assignments(
        self, batch_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[ShiftAssignment]:
        with self._lock:
            if batch_id not in self._batches:
                raise KeyError(f"Unknown batch: {batch_id}")
            rows = self._assignments.get(batch_id, {}).values()
            return sorted(
                (
                    r for r in rows
                    if (start is None or r.assignment_date >= start)
                    and (end is None or r.assignment_date <= end)
                ),
                key=lambda r: (r.assignment_date, r.staff_id),
            )

    def get_profiles(self, staff_ids: Iterable[str]) -> dict[str, FairnessProfile]:
        with self._lock:
            return {
                sid: copy.deepcopy(self._profiles[sid])
                for sid in staff_ids
                if sid in self._profiles
            }

    def get_opening_profiles(self, period: PeriodKey) -> Optional[dict[str, FairnessProfile]]:
        with self._lock:
            opening = self._openings.get(tuple(period))
            return copy.deepcopy(opening) if opening is not None else None

    # Writes

    def acquire_batch_lock(self, batch_id: str) -> ScheduleBatch:
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise KeyError(f"Unknown batch: {batch_id}")
            if batch.status is BatchStatus.ASSIGNING:
                raise ConcurrencyConflict(batch_id)
            if batch.status not in LOCKABLE_STATUSES:
                raise SchedulingError(
                    f"Batch {batch_id} is {batch.status.value} and cannot be reassigned"
                )
            batch.status = BatchStatus.ASSIGNING
            logger.info(f"Acquired assignment lock on batch {batch_id}")
            return copy.deepcopy(batch)

    def release_batch_lock(self, batch_id: str) -> None:
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is not None and batch.status is BatchStatus.ASSIGNING:
                batch.status = BatchStatus.DRAFT
                logger.info(f"Released assignment lock on batch {batch_id}")

    def set_batch_status(
        self, batch_id: str, status: BatchStatus, deployed_at: Optional[datetime] = None
    ) -> None:
        with self._lock:
            batch = self._batches[batch_id]
            batch.status = status
            if deployed_at is not None:
                batch.deployed_at = deployed_at

    def apply_mutations(self, batch_id: str, mutations: Iterable[AssignmentMutation]) -> None:
        with self._lock:
            if batch_id not in self._batches:
                raise StorageError(f"Cannot write rows for unknown batch {batch_id}")
            staged = dict(self._assignments.get(batch_id, {}))
            for mutation in mutations:
                if mutation.kind is MutationKind.DELETE:
                    if staged.pop(mutation.key, None) is None:
                        raise StorageError(f"Row {mutation.key} does not exist")
                elif mutation.kind is MutationKind.CREATE:
                    if mutation.key in staged:
                        raise StorageError(f"Row {mutation.key} already exists")
                    staged[mutation.key] = mutation.after
                else:
                    if mutation.key not in staged:
                        raise StorageError(f"Row {mutation.key} does not exist")
                    staged[mutation.key] = mutation.after
            self._assignments[batch_id] = staged

    def add_leaves(self, leaves: Iterable[LeaveApplication]) -> None:
        with self._lock:
            for leave in leaves:
                self._leaves[leave.id] = copy.deepcopy(leave)

    def update_leave_statuses(self, statuses: dict[str, LeaveStatus]) -> None:
        with self._lock:
            missing = [lid for lid in statuses if lid not in self._leaves]
            if missing:
                raise StorageError(f"Unknown leave applications: {missing}")
            for leave_id, status in statuses.items():
                self._leaves[leave_id].status = status

    def update_staff(self, staff: Staff) -> None:
        with self._lock:
            if staff.id not in self._staff:
                raise StorageError(f"Unknown staff member: {staff.id}")
            self._staff[staff.id] = copy.deepcopy(staff)

    def save_profiles(self, profiles: Iterable[FairnessProfile]) -> None:
        with self._lock:
            for profile in profiles:
                self._profiles[profile.staff_id] = copy.deepcopy(profile)

    def save_opening_profiles(
        self, period: PeriodKey, profiles: Iterable[FairnessProfile]
    ) -> None:
        with self._lock:
            if tuple(period) in self._openings:
                return
            self._openings[tuple(period)] = {p.staff_id: copy.deepcopy(p) for p in profiles}

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.warning("Store transaction rolled back")
                raise

    def _snapshot(self) -> dict:
        return copy.deepcopy({
            "batches": self._batches,
            "staff": self._staff,
            "leaves": self._leaves,
            "assignments": self._assignments,
            "profiles": self._profiles,
            "openings": self._openings,
        })

    def _restore(self, snapshot: dict) -> None:
        self._batches = snapshot["batches"]
        self._staff = snapshot["staff"]
        self._leaves = snapshot["leaves"]
        self._assignments = snapshot["assignments"]
        self._profiles = snapshot["profiles"]
        self._openings = snapshot["openings"]
