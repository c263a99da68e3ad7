"""Shared fixtures: a small Nursing department scheduled for March 2026.

March 2026 starts on a Sunday, so the batch covers 1 March to 4 April and
week 2026-W10 runs from Sunday 8 March to Saturday 14 March.
"""

from datetime import date, datetime

import pytest

from clinicroster.domain.models import (
    CategoryRequirement,
    DoctorRoster,
    LeaveApplication,
    LeaveStatus,
    LeaveType,
    ScheduleBatch,
    Staff,
    StaffingRequirement,
)
from clinicroster.storage.store import InMemoryStore

BATCH_ID = "2026-03"
DEPARTMENT = "Nursing"


def create_test_staff(
    id: str,
    category: str,
    department: str = DEPARTMENT,
    **kwargs,
) -> Staff:
    """Helper to create test staff."""
    return Staff(id=id, name=f"Staff {id}", department=department, category=category, **kwargs)


def create_test_leave(
    id: str,
    staff_id: str,
    leave_date: date,
    leave_type: LeaveType = LeaveType.OFF,
    status: LeaveStatus = LeaveStatus.CONFIRMED,
    created_at: datetime = datetime(2026, 2, 1),
) -> LeaveApplication:
    """Helper to create test leave applications."""
    return LeaveApplication(
        id=id,
        staff_id=staff_id,
        leave_date=leave_date,
        leave_type=leave_type,
        status=status,
        created_at=created_at,
    )


def build_clinic(
    staff=None,
    categories=None,
    year: int = 2026,
    month: int = 3,
    roster_weekdays=(0, 1, 2, 3, 4, 5),
) -> InMemoryStore:
    """Build a store with one batch and a D1 roster on every roster weekday.

    By default the department has two Leads and three Juniors, and each
    roster day needs one Lead (minimum 1) and two Juniors (minimum 1).
    """
    store = InMemoryStore()
    if staff is None:
        staff = [
            create_test_staff("L1", "Lead"),
            create_test_staff("L2", "Lead"),
            create_test_staff("J1", "Junior"),
            create_test_staff("J2", "Junior"),
            create_test_staff("J3", "Junior"),
        ]
    if categories is None:
        categories = {
            "Lead": CategoryRequirement(1, 1),
            "Junior": CategoryRequirement(2, 1),
        }
    store.add_staff(staff)
    store.add_requirements([
        StaffingRequirement(
            ("D1",), False, sum(c.count for c in categories.values()), {DEPARTMENT: categories}
        ),
    ])
    batch = ScheduleBatch.for_month(BATCH_ID, DEPARTMENT, year, month)
    store.add_rosters(
        DoctorRoster(d, ("D1",)) for d in batch.dates if d.weekday() in roster_weekdays
    )
    store.add_batch(batch)
    return store


@pytest.fixture
def clinic():
    """The default two-Lead, three-Junior department."""
    return build_clinic()


@pytest.fixture
def week10_dates():
    """Sunday 8 March to Saturday 14 March 2026."""
    return [date(2026, 3, d) for d in range(8, 15)]
