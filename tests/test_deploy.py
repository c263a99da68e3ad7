"""Tests for batch deploy and fairness period close."""

from datetime import date, datetime

import pytest

from clinicroster.domain.calendar import FairnessDimension, WeekKey
from clinicroster.domain.models import BatchStatus, LeaveType, ScheduleBatch
from clinicroster.errors import ConcurrencyConflict, DeployError
from clinicroster.scheduling.deploy import ScheduleDeployer
from clinicroster.scheduling.scheduler import BatchScheduler

from conftest import BATCH_ID, DEPARTMENT, create_test_leave

NOW = datetime(2026, 3, 31, 18, 0)


@pytest.fixture
def scheduled(clinic):
    """The default clinic with every week of March assigned."""
    scheduler = BatchScheduler(clinic)
    for start in clinic.get_batch(BATCH_ID).week_starts:
        scheduler.run_week(BATCH_ID, WeekKey.from_date(start))
    return clinic


def supersede(store, batch_id="2026-03-v2"):
    """Copy March's rows into a new draft batch for the same month."""
    store.add_batch(ScheduleBatch.for_month(batch_id, DEPARTMENT, 2026, 3))
    store.add_assignments(batch_id, store.get_assignments(BATCH_ID))


class TestDeploy:
    """Tests for ScheduleDeployer.deploy."""

    def test_marks_batch_deployed(self, scheduled):
        result = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW)
        batch = scheduled.get_batch(BATCH_ID)
        assert batch.status is BatchStatus.DEPLOYED
        assert batch.deployed_at == NOW
        assert result.deployed_at == NOW

    def test_profiles_saved_for_active_staff(self, scheduled):
        result = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW)
        profiles = scheduled.get_profiles(["L1", "L2", "J1", "J2", "J3"])
        assert set(profiles) == {"L1", "L2", "J1", "J2", "J3"}
        for sid, profile in profiles.items():
            assert profile.deviation(FairnessDimension.TOTAL) == pytest.approx(
                result.report.staff[sid].deviation(FairnessDimension.TOTAL)
            )
            assert profile.updated_at == NOW

    def test_window_is_batch_month(self, scheduled):
        report = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        assert report.window_start == date(2026, 3, 1)
        assert report.window_end == date(2026, 3, 31)

    def test_fully_staffed_category_has_no_gap(self, scheduled):
        report = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        assert report.conservation_gap(DEPARTMENT, "Junior", FairnessDimension.TOTAL) == pytest.approx(0)
        juniors = [e for e in report.staff.values() if e.category == "Junior"]
        assert sum(e.deviation(FairnessDimension.TOTAL) for e in juniors) == pytest.approx(0)

    def test_overstaffed_category_has_negative_gap(self, scheduled):
        """Two Leads with a weekly minimum of 4 work 8 days against 6 Lead slots.

        March has 26 roster days, so 26 Lead slots; the four full weeks give
        32 Lead workdays and Monday 30 and Tuesday 31 give 4 more.
        """
        report = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        assert report.conservation_gap(DEPARTMENT, "Lead", FairnessDimension.TOTAL) == pytest.approx(-10)
        for sid in ("L1", "L2"):
            assert report.staff[sid].deviation(FairnessDimension.TOTAL) == pytest.approx(-5)

    def test_annual_leave_usage_added(self, clinic):
        clinic.add_leaves([
            create_test_leave("a1", "J1", date(2026, 3, 11), LeaveType.ANNUAL),
            create_test_leave("a2", "J1", date(2026, 4, 2), LeaveType.ANNUAL),
            create_test_leave("o1", "J2", date(2026, 3, 12), LeaveType.OFF),
        ])
        result = ScheduleDeployer(clinic).deploy(BATCH_ID, NOW)
        assert result.annual_leave_added == {"J1": 1}
        assert clinic.get_staff_member("J1").annual_leave_used == 1
        assert clinic.get_staff_member("J2").annual_leave_used == 0

    def test_previous_deployment_archived(self, scheduled):
        scheduled.add_batch(ScheduleBatch.for_month("2026-03-old", DEPARTMENT, 2026, 3))
        scheduled.set_batch_status("2026-03-old", BatchStatus.DEPLOYED)
        result = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW)
        assert result.archived_batches == ["2026-03-old"]
        assert scheduled.get_batch("2026-03-old").status is BatchStatus.ARCHIVED

    def test_superseding_deploy_reuses_opening_deviation(self, scheduled):
        first = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        supersede(scheduled)
        second = ScheduleDeployer(scheduled).deploy("2026-03-v2", NOW).report
        assert scheduled.get_batch(BATCH_ID).status is BatchStatus.ARCHIVED
        for sid in ("L1", "L2", "J1", "J2", "J3"):
            closed = first.staff[sid].deviation(FairnessDimension.TOTAL)
            assert second.staff[sid].deviation(FairnessDimension.TOTAL) == pytest.approx(closed)
            assert scheduled.get_profiles([sid])[sid].deviation(FairnessDimension.TOTAL) == pytest.approx(closed)
        l1 = second.staff["L1"].dimensions[FairnessDimension.TOTAL]
        assert l1.previous_deviation == pytest.approx(0)
        assert second.staff["L1"].deviation(FairnessDimension.TOTAL) == pytest.approx(-5)

    def test_superseding_deploy_adds_no_annual_usage(self, scheduled):
        scheduled.add_leaves([create_test_leave("a1", "J1", date(2026, 3, 11), LeaveType.ANNUAL)])
        ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW)
        supersede(scheduled)
        result = ScheduleDeployer(scheduled).deploy("2026-03-v2", NOW)
        assert result.annual_leave_added == {}
        assert scheduled.get_staff_member("J1").annual_leave_used == 1

    def test_other_months_untouched(self, scheduled):
        scheduled.add_batch(ScheduleBatch.for_month("2026-02", DEPARTMENT, 2026, 2))
        scheduled.set_batch_status("2026-02", BatchStatus.DEPLOYED)
        ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW)
        assert scheduled.get_batch("2026-02").status is BatchStatus.DEPLOYED

    def test_redeploy_rejected(self, scheduled):
        deployer = ScheduleDeployer(scheduled)
        deployer.deploy(BATCH_ID, NOW)
        with pytest.raises(DeployError):
            deployer.deploy(BATCH_ID, NOW)

    def test_assigning_batch_rejected(self, clinic):
        clinic.set_batch_status(BATCH_ID, BatchStatus.ASSIGNING)
        with pytest.raises(ConcurrencyConflict):
            ScheduleDeployer(clinic).deploy(BATCH_ID, NOW)
        assert clinic.get_profiles(["L1"]) == {}

    def test_next_period_starts_from_closed_deviation(self, scheduled):
        report = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        scheduled.add_batch(ScheduleBatch.for_month("2026-04", DEPARTMENT, 2026, 4))
        april = ScheduleDeployer(scheduled).evaluate("2026-04")
        l1 = april.staff["L1"].dimensions[FairnessDimension.TOTAL]
        assert l1.previous_deviation == pytest.approx(
            report.staff["L1"].deviation(FairnessDimension.TOTAL)
        )

    def test_deployed_month_reevaluates_from_opening(self, scheduled):
        report = ScheduleDeployer(scheduled).deploy(BATCH_ID, NOW).report
        again = ScheduleDeployer(scheduled).evaluate(BATCH_ID)
        for sid in ("L1", "L2"):
            assert again.staff[sid].deviation(FairnessDimension.TOTAL) == pytest.approx(
                report.staff[sid].deviation(FairnessDimension.TOTAL)
            )
