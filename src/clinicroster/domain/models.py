"""Domain models for clinic staff scheduling.

This module contains the core data structures shared by the resolver,
fairness calculator, leave services and scheduler: staff, doctor rosters,
staffing requirements, shift assignments, leave applications, schedule
batches and persisted fairness profiles.
"""

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from clinicroster.domain.calendar import FairnessDimension, date_range, week_start
from clinicroster.errors import ConfigurationError

DEFAULT_CLINIC = "default"

# (clinic_id, department, year, month)
PeriodKey = tuple[str, str, int, int]


class ShiftKind(Enum):
    """A staff member's status for one calendar date."""

    WORK_DAY = "work_day"
    WORK_NIGHT = "work_night"
    OFF = "off"

    @property
    def is_work(self) -> bool:
        return self is not ShiftKind.OFF


class LeaveType(Enum):
    """Kinds of leave.

    ANNUAL is paid leave and still counts as a workday toward the weekly
    total. OFF is an unpaid rest day.
    """

    ANNUAL = "annual"
    OFF = "off"


class LeaveStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ON_HOLD = "on_hold"
    REJECTED = "rejected"


class BatchStatus(Enum):
    """Lifecycle of a schedule batch. ASSIGNING doubles as the run lock."""

    DRAFT = "draft"
    ASSIGNING = "assigning"
    CONFIRMED = "confirmed"
    DEPLOYED = "deployed"
    ARCHIVED = "archived"


@dataclass
class Staff:
    """A clinic staff member.

    Attributes:
        id: Unique identifier.
        name: Display name.
        department: Department the member belongs to.
        category: Staffing sub-group within the department (e.g. "Lead").
        weekly_target: Workdays owed per Sunday-anchored week (4 or 5).
        is_active: Inactive staff are never scheduled.
        flexible_categories: Other categories this member may cover.
        flexibility_priority: Higher values are tried first when covering
            another category.
        hire_date: Used for annual leave entitlement.
        annual_leave_used: Annual leave days consumed by deployed schedules.
        clinic_id: Owning clinic.
    """

    id: str
    name: str
    department: str
    category: str
    weekly_target: int = 4
    is_active: bool = True
    flexible_categories: set[str] = field(default_factory=set)
    flexibility_priority: int = 0
    hire_date: Optional[date] = None
    annual_leave_used: int = 0
    clinic_id: str = DEFAULT_CLINIC

    def can_cover(self, category: str) -> bool:
        return category == self.category or category in self.flexible_categories

    def is_flexible_for(self, category: str) -> bool:
        return category != self.category and category in self.flexible_categories


@dataclass(frozen=True)
class DoctorRoster:
    """Doctors on duty for a date plus the aggregate night-shift flag."""

    roster_date: date
    doctor_codes: tuple[str, ...]
    has_night_shift: bool = False
    clinic_id: str = DEFAULT_CLINIC

    def __post_init__(self):
        object.__setattr__(self, "doctor_codes", tuple(self.doctor_codes))

    @property
    def normalized_codes(self) -> tuple[str, ...]:
        return normalize_codes(self.doctor_codes)

    @property
    def shift_kind(self) -> ShiftKind:
        return ShiftKind.WORK_NIGHT if self.has_night_shift else ShiftKind.WORK_DAY


def normalize_codes(codes: Iterable[str]) -> tuple[str, ...]:
    """Sort and de-duplicate doctor codes."""
    return tuple(sorted({c.strip() for c in codes if c and c.strip()}))


@dataclass(frozen=True)
class CategoryRequirement:
    """Headcount a category needs on a date.

    Attributes:
        count: Slots the scheduler tries to fill.
        minimum: Floor below which the day is considered unsafe.
    """

    count: int
    minimum: int = 0

    def __post_init__(self):
        if self.count < 0 or self.minimum < 0:
            raise ConfigurationError(
                f"Category requirement cannot be negative (count={self.count}, minimum={self.minimum})"
            )
        if self.minimum > self.count:
            raise ConfigurationError(
                f"Category minimum {self.minimum} exceeds count {self.count}"
            )


@dataclass
class StaffingRequirement:
    """Staffing needed for one doctor-roster combination.

    Attributes:
        doctor_codes: Doctors on duty; order and duplicates are ignored.
        has_night_shift: Night flag that completes the lookup key.
        total_required: Total staff required across departments.
        departments: department -> category -> CategoryRequirement.
        clinic_id: Owning clinic.
    """

    doctor_codes: tuple[str, ...]
    has_night_shift: bool
    total_required: int
    departments: dict[str, dict[str, CategoryRequirement]] = field(default_factory=dict)
    clinic_id: str = DEFAULT_CLINIC

    def __post_init__(self):
        self.doctor_codes = normalize_codes(self.doctor_codes)
        if not self.doctor_codes:
            raise ConfigurationError("Staffing requirement needs at least one doctor code")
        if self.total_required < 0:
            raise ConfigurationError("total_required cannot be negative")
        for department, categories in self.departments.items():
            for category, req in categories.items():
                if not isinstance(req, CategoryRequirement):
                    raise ConfigurationError(
                        f"{department}/{category}: expected CategoryRequirement, got {type(req).__name__}"
                    )

    @property
    def key(self) -> tuple[tuple[str, ...], bool]:
        return (self.doctor_codes, self.has_night_shift)


@dataclass(frozen=True)
class ShiftAssignment:
    """One staff member's status for one date within a batch.

    Attributes:
        staff_id: Assigned staff member.
        assignment_date: Calendar date.
        shift: WORK_DAY, WORK_NIGHT or OFF.
        category: Category slot covered when working.
        leave_id: Linked leave application, if any.
        leave_type: Type of the linked leave.
    """

    staff_id: str
    assignment_date: date
    shift: ShiftKind
    category: Optional[str] = None
    leave_id: Optional[str] = None
    leave_type: Optional[LeaveType] = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.staff_id, self.assignment_date)

    @property
    def is_work(self) -> bool:
        return self.shift.is_work

    @property
    def is_annual(self) -> bool:
        return not self.is_work and self.leave_type is LeaveType.ANNUAL

    @property
    def counts_as_workday(self) -> bool:
        return self.is_work or self.is_annual


@dataclass
class LeaveApplication:
    """A leave request for a single date."""

    id: str
    staff_id: str
    leave_date: date
    leave_type: LeaveType
    status: LeaveStatus = LeaveStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    clinic_id: str = DEFAULT_CLINIC

    @property
    def is_confirmed(self) -> bool:
        return self.status is LeaveStatus.CONFIRMED


@dataclass
class ScheduleBatch:
    """Month-scoped container of assignments for one clinic department.

    The range covers every Sunday-anchored week that touches the month, so a
    batch may start in the previous month and end in the next.
    """

    id: str
    clinic_id: str
    department: str
    year: int
    month: int
    start_date: date
    end_date: date
    status: BatchStatus = BatchStatus.DRAFT
    deployed_at: Optional[datetime] = None

    @classmethod
    def for_month(
        cls,
        batch_id: str,
        department: str,
        year: int,
        month: int,
        clinic_id: str = DEFAULT_CLINIC,
    ) -> "ScheduleBatch":
        last_day = monthrange(year, month)[1]
        start = week_start(date(year, month, 1))
        end = week_start(date(year, month, last_day)) + timedelta(days=6)
        return cls(
            id=batch_id,
            clinic_id=clinic_id,
            department=department,
            year=year,
            month=month,
            start_date=start,
            end_date=end,
        )

    @property
    def month_start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def month_end(self) -> date:
        return date(self.year, self.month, monthrange(self.year, self.month)[1])

    @property
    def dates(self) -> list[date]:
        return date_range(self.start_date, self.end_date)

    @property
    def week_starts(self) -> list[date]:
        return self.dates[::7]

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    @property
    def period_key(self) -> PeriodKey:
        return (self.clinic_id, self.department, self.year, self.month)

    def same_period(self, other: "ScheduleBatch") -> bool:
        return self.period_key == other.period_key


@dataclass
class FairnessProfile:
    """Persisted cumulative deviation per dimension for one staff member.

    Positive deviation means the member is owed work; negative means they
    have worked more than their share.
    """

    staff_id: str
    deviations: dict[FairnessDimension, float] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def deviation(self, dimension: FairnessDimension) -> float:
        return self.deviations.get(dimension, 0.0)
