"""Tests for leave submission, bulk review and annual leave entitlement."""

from datetime import date, datetime

import pytest

from clinicroster.domain.models import CategoryRequirement, LeaveStatus, LeaveType
from clinicroster.leave.entitlement import (
    annual_leave_entitlement,
    completed_months,
    remaining_annual_leave,
)
from clinicroster.leave.service import LeaveService, decide
from clinicroster.leave.simulator import CheckOutcome, EligibilityCheck, EligibilityVerdict

from conftest import build_clinic, create_test_leave, create_test_staff

LEAVE_DAY = date(2026, 3, 11)


@pytest.fixture
def store():
    """Four Leads with a floor of two; L1 already has confirmed leave."""
    store = build_clinic(
        staff=[create_test_staff(f"L{i}", "Lead", hire_date=date(2020, 1, 1)) for i in range(1, 5)],
        categories={"Lead": CategoryRequirement(2, 2)},
    )
    store.add_leaves([create_test_leave("c1", "L1", LEAVE_DAY)])
    return store


@pytest.fixture
def service(store):
    return LeaveService(store)


def verdict_with(*failed):
    verdict = EligibilityVerdict("L1", LEAVE_DAY, LeaveType.OFF)
    for check in EligibilityCheck:
        passed = check not in failed
        verdict.checks.append(CheckOutcome(check, passed, 0 if passed else -1, ""))
    return verdict


class TestDecide:
    """Tests for the review decision rule."""

    def test_allowed_confirms(self):
        assert decide(verdict_with()) is LeaveStatus.CONFIRMED

    def test_slot_only_failure_holds(self):
        assert decide(verdict_with(EligibilityCheck.CATEGORY_SLOT)) is LeaveStatus.ON_HOLD

    @pytest.mark.parametrize("failed", [
        (EligibilityCheck.WEEKLY_CAP,),
        (EligibilityCheck.FAIRNESS_ALLOWANCE,),
        (EligibilityCheck.CATEGORY_SLOT, EligibilityCheck.WEEKLY_CAP),
    ])
    def test_other_failures_reject(self, failed):
        assert decide(verdict_with(*failed)) is LeaveStatus.REJECTED


class TestSubmit:
    """Tests for LeaveService.submit."""

    def test_allowed_dates_become_pending(self, store, service):
        result = service.submit("L2", [date(2026, 3, 12), date(2026, 3, 13)], LeaveType.OFF,
                                now=datetime(2026, 2, 20))
        assert len(result.created) == 2
        assert all(lv.status is LeaveStatus.PENDING for lv in result.created)
        assert all(lv.id.startswith("lv-") for lv in result.created)
        pending = store.get_leaves("default", date(2026, 3, 1), date(2026, 3, 31), [LeaveStatus.PENDING])
        assert {lv.leave_date for lv in pending} == {date(2026, 3, 12), date(2026, 3, 13)}

    def test_selected_dates_carried_into_weekly_check(self, service):
        dates = [date(2026, 3, d) for d in (9, 10, 12)]
        result = service.submit("L2", dates, LeaveType.OFF)
        assert [lv.leave_date for lv in result.created] == dates[:2]
        assert len(result.denied) == 1
        assert result.denied[0].failed_check is EligibilityCheck.WEEKLY_CAP

    def test_denied_dates_not_created(self, store, service):
        # Sunday 15 March has no doctor roster
        result = service.submit("L3", [date(2026, 3, 15)], LeaveType.OFF)
        assert result.created == []
        assert result.denied[0].failed_check is EligibilityCheck.CATEGORY_SLOT
        assert store.get_leaves("default", date(2026, 3, 15), date(2026, 3, 15)) == []

    def test_annual_leave_limited_by_entitlement(self, store):
        member = store.get_staff_member("L2")
        member.hire_date = date(2026, 1, 1)
        store.update_staff(member)
        dates = [date(2026, 3, 12), date(2026, 3, 16), date(2026, 3, 17)]
        result = LeaveService(store).submit("L2", dates, LeaveType.ANNUAL, now=datetime(2026, 3, 5))
        assert [lv.leave_date for lv in result.created] == dates[:2]
        assert result.over_entitlement == [date(2026, 3, 17)]


class TestReview:
    """Tests for bulk review of PENDING and ON_HOLD leave."""

    @pytest.fixture
    def pending(self, store):
        store.add_leaves([
            create_test_leave("p-old", "L2", LEAVE_DAY, status=LeaveStatus.PENDING,
                              created_at=datetime(2026, 2, 1, 9)),
            create_test_leave("p-new", "L3", LEAVE_DAY, status=LeaveStatus.PENDING,
                              created_at=datetime(2026, 2, 1, 10)),
        ])
        return store

    def test_oldest_application_wins_the_slot(self, pending, service):
        result = service.review_pending("default", date(2026, 3, 1), date(2026, 3, 31))
        assert result.decisions == {"p-old": LeaveStatus.CONFIRMED, "p-new": LeaveStatus.ON_HOLD}
        assert result.count(LeaveStatus.CONFIRMED) == 1

    def test_decisions_are_persisted(self, pending, service):
        service.review_pending("default", date(2026, 3, 1), date(2026, 3, 31))
        statuses = {lv.id: lv.status for lv in pending.get_leaves("default", LEAVE_DAY, LEAVE_DAY)}
        assert statuses == {
            "c1": LeaveStatus.CONFIRMED,
            "p-old": LeaveStatus.CONFIRMED,
            "p-new": LeaveStatus.ON_HOLD,
        }

    def test_on_hold_released_after_cancellation(self, pending, service):
        service.review_pending("default", date(2026, 3, 1), date(2026, 3, 31))
        pending.update_leave_statuses({"c1": LeaveStatus.REJECTED})
        result = service.process_on_hold("default", date(2026, 3, 1), date(2026, 3, 31))
        assert result.decisions == {"p-new": LeaveStatus.CONFIRMED}

    def test_review_outside_range_untouched(self, pending, service):
        result = service.review_pending("default", date(2026, 4, 1), date(2026, 4, 30))
        assert result.decisions == {}


class TestEntitlement:
    """Tests for statutory annual leave entitlement."""

    def test_completed_months(self):
        assert completed_months(date(2025, 1, 15), date(2025, 6, 14)) == 4
        assert completed_months(date(2025, 1, 15), date(2025, 6, 15)) == 5

    def test_first_year_one_day_per_month(self):
        assert annual_leave_entitlement(date(2025, 1, 15), date(2025, 6, 20)) == 5

    def test_first_year_capped(self):
        assert annual_leave_entitlement(date(2025, 1, 1), date(2025, 12, 31)) == 11

    def test_one_to_three_years(self):
        assert annual_leave_entitlement(date(2024, 1, 1), date(2025, 1, 1)) == 15
        assert annual_leave_entitlement(date(2023, 1, 2), date(2026, 1, 1)) == 15

    def test_long_service_adds_days(self):
        assert annual_leave_entitlement(date(2023, 1, 1), date(2026, 1, 1)) == 16
        assert annual_leave_entitlement(date(2021, 1, 1), date(2026, 1, 1)) == 17

    def test_capped_at_twenty_five(self):
        assert annual_leave_entitlement(date(1990, 1, 1), date(2026, 1, 1)) == 25

    def test_no_hire_date(self):
        assert annual_leave_entitlement(None, date(2026, 1, 1)) == 0

    def test_remaining_subtracts_usage(self):
        member = create_test_staff("L1", "Lead", hire_date=date(2024, 1, 1), annual_leave_used=4)
        assert remaining_annual_leave(member, date(2026, 1, 1)) == 11
        assert remaining_annual_leave(create_test_staff("L2", "Lead"), date(2026, 1, 1)) is None
