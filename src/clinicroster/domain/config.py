"""Engine configuration.

All knobs are plain dataclasses with defaults, so callers only override what
they need. ``EngineConfig.from_dict`` validates externally supplied values
(JSON files, CLI) and raises ``ConfigurationError`` on bad input.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from clinicroster.domain.calendar import SUNDAY, FairnessDimension
from clinicroster.errors import ConfigurationError


class SolverType(Enum):
    """Which Phase 1 fill to use."""

    HEURISTIC = "heuristic"  # Greedy most-owed-first fill
    CPSAT = "cpsat"  # OR-Tools CP-SAT
    HYBRID = "hybrid"  # Try CP-SAT, fall back to heuristic


@dataclass
class FairnessConfig:
    """Configuration for fairness scoring.

    Attributes:
        dimension_weights: Weight of each dimension in the overall score.
        status_threshold: Deviations within +/- this value are BALANCED.
        score_scale: Points lost per unit of absolute deviation.
    """

    dimension_weights: dict[FairnessDimension, float] = field(
        default_factory=lambda: {
            FairnessDimension.TOTAL: 0.4,
            FairnessDimension.NIGHT: 0.15,
            FairnessDimension.WEEKEND: 0.15,
            FairnessDimension.HOLIDAY: 0.15,
            FairnessDimension.HOLIDAY_ADJACENT: 0.15,
        }
    )
    status_threshold: float = 0.5
    score_scale: float = 10.0


@dataclass
class RebalanceConfig:
    """Phase 2 settings.

    Attributes:
        off_floor: A date must keep more than this many staff OFF before one
            of them may be flipped to work.
        max_rounds: Upper bound on rebalance rounds per run.
    """

    off_floor: int = 0
    max_rounds: int = 7


@dataclass
class SolverConfig:
    """Configuration for the CP-SAT initial fill.

    Attributes:
        solver_type: Which fill to use.
        time_limit_seconds: Maximum solver runtime.
        num_workers: Parallel search workers; 1 keeps results reproducible.
        random_seed: Solver seed.
        owed_weight: Objective weight for placing staff who are owed work.
        flexible_penalty: Objective penalty per cross-category placement.
    """

    solver_type: SolverType = SolverType.HEURISTIC
    time_limit_seconds: float = 10.0
    num_workers: int = 1
    random_seed: int = 0
    owed_weight: int = 1
    flexible_penalty: int = 1


@dataclass
class LeavePolicy:
    """Leave eligibility settings.

    Attributes:
        weekly_minimum: Fixed weekly minimum; None uses each staff member's
            weekly_target.
        suggestion_limit: Alternative dates offered on denial.
        allow_unknown_requirement: Treat dates without a resolvable
            requirement as open instead of holding them.
    """

    weekly_minimum: Optional[int] = None
    suggestion_limit: int = 3
    allow_unknown_requirement: bool = False


@dataclass
class EngineConfig:
    """Bundle of every engine setting."""

    fairness: FairnessConfig = field(default_factory=FairnessConfig)
    rebalance: RebalanceConfig = field(default_factory=RebalanceConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    leave: LeavePolicy = field(default_factory=LeavePolicy)
    closed_weekdays: frozenset[int] = frozenset({SUNDAY})

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "EngineConfig":
        """Build a config from a plain mapping such as a parsed JSON file.

        Raises:
            ConfigurationError: On unknown keys or out-of-range values.
        """
        config = cls()
        if not data:
            return config
        unknown = set(data) - {"fairness", "rebalance", "solver", "leave", "closed_weekdays"}
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {sorted(unknown)}")

        fairness = data.get("fairness", {})
        if "dimension_weights" in fairness:
            try:
                config.fairness.dimension_weights = {
                    FairnessDimension(k): float(v)
                    for k, v in fairness["dimension_weights"].items()
                }
            except ValueError as e:
                raise ConfigurationError(f"Invalid fairness weights: {e}") from e
        _set_number(config.fairness, fairness, "status_threshold", float, minimum=0)
        _set_number(config.fairness, fairness, "score_scale", float, minimum=0)

        rebalance = data.get("rebalance", {})
        _set_number(config.rebalance, rebalance, "off_floor", int, minimum=0)
        _set_number(config.rebalance, rebalance, "max_rounds", int, minimum=1)

        solver = data.get("solver", {})
        if "solver_type" in solver:
            try:
                config.solver.solver_type = SolverType(solver["solver_type"])
            except ValueError as e:
                raise ConfigurationError(f"Invalid solver_type: {solver['solver_type']!r}") from e
        _set_number(config.solver, solver, "time_limit_seconds", float, minimum=0)
        _set_number(config.solver, solver, "num_workers", int, minimum=1)
        _set_number(config.solver, solver, "random_seed", int, minimum=0)

        leave = data.get("leave", {})
        if leave.get("weekly_minimum") is not None:
            _set_number(config.leave, leave, "weekly_minimum", int, minimum=0)
        _set_number(config.leave, leave, "suggestion_limit", int, minimum=0)
        if "allow_unknown_requirement" in leave:
            config.leave.allow_unknown_requirement = bool(leave["allow_unknown_requirement"])

        if "closed_weekdays" in data:
            days = frozenset(int(d) for d in data["closed_weekdays"])
            if any(d < 0 or d > 6 for d in days):
                raise ConfigurationError(f"closed_weekdays must be 0-6, got {sorted(days)}")
            config.closed_weekdays = days
        return config


def _set_number(target: Any, source: dict, name: str, kind: type, minimum: float) -> None:
    if name not in source:
        return
    try:
        value = kind(source[name])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a {kind.__name__}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    setattr(target, name, value)
