"""Fairness score calculator.

Fairness is computed per category group (department, category), never
pooled, because required slots differ by category. For each dimension:

    baseline         = required slots in window / active staff in category
    deviation_new    = deviation_previous + baseline - actual
    adjusted_minimum = max(0, round_half_up(baseline + deviation_previous))

Positive deviation means a staff member is owed work; negative means they
have worked more than their share.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Mapping, Optional

from clinicroster.domain.calendar import ClinicCalendar, FairnessDimension
from clinicroster.domain.config import FairnessConfig
from clinicroster.domain.models import (
    FairnessProfile,
    LeaveApplication,
    LeaveType,
    ShiftAssignment,
    ShiftKind,
    Staff,
)
from clinicroster.domain.requirements import Resolution

logger = logging.getLogger(__name__)

DIMENSIONS = tuple(FairnessDimension)

CategoryKey = tuple[str, str]


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def adjusted_minimum(baseline: float, previous_deviation: float) -> int:
    """Workdays a staff member should get this window, carrying prior debt."""
    return max(0, round_half_up(baseline + previous_deviation))


class FairnessStatus(Enum):
    OVERWORKED = "overworked"
    UNDERWORKED = "underworked"
    BALANCED = "balanced"


@dataclass
class CategoryBaseline:
    """Fair share for one category group over a window.

    Attributes:
        department: Department of the group.
        category: Category of the group.
        active_staff: Active staff counted in the denominator.
        required_slots: Required slots per dimension over the window.
    """

    department: str
    category: str
    active_staff: int
    required_slots: dict[FairnessDimension, int] = field(default_factory=dict)

    def baseline(self, dimension: FairnessDimension) -> float:
        if self.active_staff <= 0:
            return 0.0
        return self.required_slots.get(dimension, 0) / self.active_staff


@dataclass
class DimensionScore:
    """One staff member's standing in one dimension."""

    baseline: float
    actual: int
    previous_deviation: float
    deviation: float
    adjusted_minimum: int
    score: float
    status: FairnessStatus


@dataclass
class StaffFairness:
    staff_id: str
    department: str
    category: str
    dimensions: dict[FairnessDimension, DimensionScore] = field(default_factory=dict)
    overall_score: float = 100.0

    def deviation(self, dimension: FairnessDimension) -> float:
        return self.dimensions[dimension].deviation


@dataclass
class FairnessReport:
    """Fairness evaluation for a window."""

    window_start: date
    window_end: date
    baselines: dict[CategoryKey, CategoryBaseline] = field(default_factory=dict)
    staff: dict[str, StaffFairness] = field(default_factory=dict)

    def adjusted_minimum(self, staff_id: str, dimension: FairnessDimension) -> int:
        return self.staff[staff_id].dimensions[dimension].adjusted_minimum

    def conservation_gap(
        self, department: str, category: str, dimension: FairnessDimension
    ) -> float:
        """Sum of (baseline - actual) over the group; zero when fully staffed."""
        members = [
            s for s in self.staff.values()
            if s.department == department and s.category == category
        ]
        return sum(
            m.dimensions[dimension].baseline - m.dimensions[dimension].actual
            for m in members
        )


class FairnessCalculator:
    """Computes baselines, actuals and deviations for category groups."""

    def __init__(
        self,
        calendar: ClinicCalendar,
        config: Optional[FairnessConfig] = None,
    ):
        self.calendar = calendar
        self.config = config or FairnessConfig()

    def classify(self, d: date, night: bool) -> frozenset[FairnessDimension]:
        return self.calendar.classify(d, night)

    def required_slots(
        self,
        department: str,
        category: str,
        resolutions: Mapping[date, Resolution],
        start: date,
        end: date,
    ) -> dict[FairnessDimension, int]:
        """Sum the category's slot counts per dimension over resolvable dates."""
        slots = {dim: 0 for dim in DIMENSIONS}
        for d, resolution in resolutions.items():
            if not (start <= d <= end) or not resolution.is_known:
                continue
            count = resolution.category(department, category).count
            if count == 0:
                continue
            for dim in self.classify(d, resolution.roster.has_night_shift):
                slots[dim] += count
        return slots

    def category_baseline(
        self,
        department: str,
        category: str,
        staff: Iterable[Staff],
        resolutions: Mapping[date, Resolution],
        start: date,
        end: date,
    ) -> CategoryBaseline:
        active = sum(
            1 for s in staff
            if s.is_active and s.department == department and s.category == category
        )
        return CategoryBaseline(
            department=department,
            category=category,
            active_staff=active,
            required_slots=self.required_slots(department, category, resolutions, start, end),
        )

    def count_actuals(
        self,
        staff_ids: Iterable[str],
        assignments: Iterable[ShiftAssignment],
        leaves: Iterable[LeaveApplication],
        start: date,
        end: date,
    ) -> dict[str, dict[FairnessDimension, int]]:
        """Count worked days per dimension from the leave-reconciled view.

        A confirmed leave overrides the stored row for its date: ANNUAL
        counts toward TOTAL only and OFF counts toward nothing.
        """
        wanted = set(staff_ids)
        actuals = {sid: {dim: 0 for dim in DIMENSIONS} for sid in wanted}
        confirmed = {
            (lv.staff_id, lv.leave_date): lv
            for lv in leaves
            if lv.is_confirmed and lv.staff_id in wanted and start <= lv.leave_date <= end
        }
        rows = {
            a.key: a for a in assignments
            if a.staff_id in wanted and start <= a.assignment_date <= end
        }

        for key in set(confirmed) | set(rows):
            staff_id, d = key
            counts = actuals[staff_id]
            leave = confirmed.get(key)
            if leave is not None:
                if leave.leave_type is LeaveType.ANNUAL:
                    counts[FairnessDimension.TOTAL] += 1
                continue
            row = rows[key]
            if row.is_work:
                for dim in self.classify(d, row.shift is ShiftKind.WORK_NIGHT):
                    counts[dim] += 1
            elif row.is_annual:
                counts[FairnessDimension.TOTAL] += 1
        return actuals

    def score(self, deviation: float) -> float:
        return max(0.0, min(100.0, 100.0 - abs(deviation) * self.config.score_scale))

    def status(self, deviation: float) -> FairnessStatus:
        if deviation > self.config.status_threshold:
            return FairnessStatus.UNDERWORKED
        if deviation < -self.config.status_threshold:
            return FairnessStatus.OVERWORKED
        return FairnessStatus.BALANCED

    def evaluate(
        self,
        staff: Iterable[Staff],
        resolutions: Mapping[date, Resolution],
        assignments: Iterable[ShiftAssignment],
        leaves: Iterable[LeaveApplication],
        profiles: Mapping[str, FairnessProfile],
        start: date,
        end: date,
    ) -> FairnessReport:
        """Evaluate every active staff member over [start, end].

        Args:
            staff: Staff to evaluate; inactive members are skipped.
            resolutions: Resolved requirements by date.
            assignments: Stored shift rows.
            leaves: Leave applications; only CONFIRMED ones are used.
            profiles: Previous-period deviations by staff id.
            start: First date of the window.
            end: Last date of the window.

        Returns:
            FairnessReport with per-group baselines and per-staff scores.
        """
        active = [s for s in staff if s.is_active]
        report = FairnessReport(window_start=start, window_end=end)
        for key in sorted({(s.department, s.category) for s in active}):
            report.baselines[key] = self.category_baseline(
                key[0], key[1], active, resolutions, start, end
            )

        actuals = self.count_actuals([s.id for s in active], assignments, leaves, start, end)
        weights = self.config.dimension_weights
        total_weight = sum(weights.get(dim, 0.0) for dim in DIMENSIONS) or 1.0

        for member in active:
            group = report.baselines[(member.department, member.category)]
            profile = profiles.get(member.id)
            entry = StaffFairness(member.id, member.department, member.category)
            weighted = 0.0
            for dim in DIMENSIONS:
                baseline = group.baseline(dim)
                previous = profile.deviation(dim) if profile else 0.0
                actual = actuals[member.id][dim]
                deviation = previous + baseline - actual
                score = self.score(deviation)
                entry.dimensions[dim] = DimensionScore(
                    baseline=baseline,
                    actual=actual,
                    previous_deviation=previous,
                    deviation=deviation,
                    adjusted_minimum=adjusted_minimum(baseline, previous),
                    score=score,
                    status=self.status(deviation),
                )
                weighted += score * weights.get(dim, 0.0)
            entry.overall_score = round(weighted / total_weight, 1)
            report.staff[member.id] = entry

        logger.debug(
            f"Evaluated fairness for {len(report.staff)} staff in "
            f"{len(report.baselines)} category groups ({start} to {end})"
        )
        return report

    def close_period(
        self, report: FairnessReport, closed_at: Optional[datetime] = None
    ) -> list[FairnessProfile]:
        """Turn a report into the profiles carried into the next period."""
        closed_at = closed_at or datetime.now()
        return [
            FairnessProfile(
                staff_id=sid,
                deviations={dim: score.deviation for dim, score in entry.dimensions.items()},
                updated_at=closed_at,
            )
            for sid, entry in sorted(report.staff.items())
        ]
