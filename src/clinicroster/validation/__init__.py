"""Validation module for schedule invariants."""

from clinicroster.validation.validator import ScheduleValidator, ValidationError, ValidationResult

__all__ = [
    "ScheduleValidator",
    "ValidationError",
    "ValidationResult",
]
