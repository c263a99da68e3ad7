"""Tests for requirement resolution and engine configuration."""

from datetime import date

import pytest

from clinicroster.domain.calendar import FairnessDimension
from clinicroster.domain.config import EngineConfig, SolverType
from clinicroster.domain.models import (
    CategoryRequirement,
    DoctorRoster,
    ShiftKind,
    StaffingRequirement,
)
from clinicroster.domain.requirements import (
    LookupOutcome,
    RequirementResolver,
    RequirementUnknown,
    ResolvedRequirement,
)
from clinicroster.errors import ConfigurationError


@pytest.fixture
def requirements():
    return [
        StaffingRequirement(
            ("D2", "D1"), False, 5,
            {"Nursing": {"Lead": CategoryRequirement(2, 1), "Junior": CategoryRequirement(0, 0)}},
        ),
        StaffingRequirement(
            ("D1", "D2"), True, 6,
            {"Nursing": {"Lead": CategoryRequirement(3, 2)}},
        ),
    ]


class TestRequirementResolver:
    """Tests for (doctor codes, night flag) lookup."""

    def test_code_order_and_duplicates_ignored(self, requirements):
        resolver = RequirementResolver(requirements)
        roster = DoctorRoster(date(2026, 3, 9), ("D1", " D2", "D1"))
        resolution = resolver.resolve(roster)
        assert isinstance(resolution, ResolvedRequirement)
        assert resolution.total_required == 5
        assert resolution.shift_kind is ShiftKind.WORK_DAY

    def test_night_flag_is_part_of_key(self, requirements):
        resolver = RequirementResolver(requirements)
        resolution = resolver.resolve(DoctorRoster(date(2026, 3, 9), ("D1", "D2"), True))
        assert resolution.total_required == 6
        assert resolution.shift_kind is ShiftKind.WORK_NIGHT

    def test_unknown_combination(self, requirements):
        resolver = RequirementResolver(requirements)
        resolution = resolver.resolve(DoctorRoster(date(2026, 3, 9), ("D3",)))
        assert isinstance(resolution, RequirementUnknown)
        assert not resolution.is_known
        assert "D3" in resolution.reason

    def test_zero_requirement_differs_from_not_configured(self, requirements):
        resolution = RequirementResolver(requirements).resolve(
            DoctorRoster(date(2026, 3, 9), ("D1", "D2"))
        )
        junior = resolution.category("Nursing", "Junior")
        senior = resolution.category("Nursing", "Senior")
        assert junior.outcome is LookupOutcome.CONFIGURED
        assert junior.count == 0
        assert senior.outcome is LookupOutcome.NOT_CONFIGURED
        assert not senior.is_configured

    def test_duplicate_requirement_rejected(self, requirements):
        with pytest.raises(ConfigurationError):
            RequirementResolver(requirements + [StaffingRequirement(("D1", "D2"), False, 1)])

    def test_resolve_many_keys_by_date(self, requirements):
        resolver = RequirementResolver(requirements)
        rosters = [DoctorRoster(date(2026, 3, d), ("D1", "D2")) for d in (9, 10)]
        assert sorted(resolver.resolve_many(rosters)) == [date(2026, 3, 9), date(2026, 3, 10)]


class TestRequirementModels:
    """Tests for requirement validation."""

    def test_minimum_above_count_rejected(self):
        with pytest.raises(ConfigurationError):
            CategoryRequirement(1, 2)

    def test_negative_rejected(self):
        with pytest.raises(ConfigurationError):
            CategoryRequirement(-1)

    def test_empty_doctor_codes_rejected(self):
        with pytest.raises(ConfigurationError):
            StaffingRequirement((" ",), False, 1)


class TestEngineConfig:
    """Tests for EngineConfig.from_dict."""

    def test_defaults(self):
        config = EngineConfig.from_dict(None)
        assert config.solver.solver_type is SolverType.HEURISTIC
        assert config.fairness.dimension_weights[FairnessDimension.TOTAL] == 0.4
        assert config.closed_weekdays == frozenset({6})

    def test_overrides(self):
        config = EngineConfig.from_dict({
            "solver": {"solver_type": "cpsat", "time_limit_seconds": 2},
            "rebalance": {"off_floor": 1},
            "leave": {"weekly_minimum": 3, "allow_unknown_requirement": True},
            "closed_weekdays": [5, 6],
        })
        assert config.solver.solver_type is SolverType.CPSAT
        assert config.solver.time_limit_seconds == 2.0
        assert config.rebalance.off_floor == 1
        assert config.leave.weekly_minimum == 3
        assert config.leave.allow_unknown_requirement
        assert config.closed_weekdays == frozenset({5, 6})

    @pytest.mark.parametrize("data", [
        {"unknown": {}},
        {"solver": {"solver_type": "magic"}},
        {"rebalance": {"max_rounds": 0}},
        {"fairness": {"status_threshold": "high"}},
        {"closed_weekdays": [7]},
    ])
    def test_invalid_values_rejected(self, data):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict(data)
