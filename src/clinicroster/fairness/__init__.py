"""Fairness scoring across workload dimensions."""

from clinicroster.fairness.calculator import (
    CategoryBaseline,
    DimensionScore,
    FairnessCalculator,
    FairnessReport,
    FairnessStatus,
    StaffFairness,
    adjusted_minimum,
)

__all__ = [
    "CategoryBaseline",
    "DimensionScore",
    "FairnessCalculator",
    "FairnessReport",
    "FairnessStatus",
    "StaffFairness",
    "adjusted_minimum",
]
