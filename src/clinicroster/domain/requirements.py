"""Requirement resolver: doctor roster to staffing requirement.

The resolver is the typed boundary for requirement configuration. Tables are
validated once at construction; lookups never raise for a missing match and
instead return ``RequirementUnknown`` so callers can skip the date.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional, Union

from clinicroster.domain.models import (
    CategoryRequirement,
    DoctorRoster,
    ShiftKind,
    StaffingRequirement,
)
from clinicroster.errors import ConfigurationError

logger = logging.getLogger(__name__)


class LookupOutcome(Enum):
    CONFIGURED = "configured"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class CategoryLookup:
    """Result of looking up one category on a resolved date.

    A category that the requirement does not mention is NOT_CONFIGURED,
    which is different from a configured requirement of zero.
    """

    department: str
    category: str
    outcome: LookupOutcome
    requirement: Optional[CategoryRequirement] = None

    @property
    def is_configured(self) -> bool:
        return self.outcome is LookupOutcome.CONFIGURED

    @property
    def count(self) -> int:
        return self.requirement.count if self.requirement else 0

    @property
    def minimum(self) -> int:
        return self.requirement.minimum if self.requirement else 0


@dataclass(frozen=True)
class ResolvedRequirement:
    """A roster matched to its staffing requirement."""

    roster: DoctorRoster
    requirement: StaffingRequirement

    is_known = True

    @property
    def roster_date(self) -> date:
        return self.roster.roster_date

    @property
    def total_required(self) -> int:
        return self.requirement.total_required

    @property
    def shift_kind(self) -> ShiftKind:
        return self.roster.shift_kind

    def categories(self, department: str) -> dict[str, CategoryRequirement]:
        return dict(self.requirement.departments.get(department, {}))

    def category(self, department: str, category: str) -> CategoryLookup:
        req = self.requirement.departments.get(department, {}).get(category)
        if req is None:
            return CategoryLookup(department, category, LookupOutcome.NOT_CONFIGURED)
        return CategoryLookup(department, category, LookupOutcome.CONFIGURED, req)


@dataclass(frozen=True)
class RequirementUnknown:
    """No requirement matches the roster; the date is unschedulable."""

    roster: DoctorRoster

    is_known = False

    @property
    def roster_date(self) -> date:
        return self.roster.roster_date

    @property
    def reason(self) -> str:
        codes = ", ".join(self.roster.normalized_codes) or "none"
        night = "with" if self.roster.has_night_shift else "without"
        return f"No staffing requirement for doctors [{codes}] {night} night shift"


Resolution = Union[ResolvedRequirement, RequirementUnknown]


class RequirementResolver:
    """Looks up staffing requirements by (sorted doctor codes, night flag).

    Example:
        >>> resolver = RequirementResolver(requirements)
        >>> resolution = resolver.resolve(roster)
        >>> if resolution.is_known:
        ...     resolution.category("Nursing", "Lead").minimum
    """

    def __init__(self, requirements: Iterable[StaffingRequirement]):
        self._index: dict[tuple[tuple[str, ...], bool], StaffingRequirement] = {}
        for req in requirements:
            if req.key in self._index:
                codes, night = req.key
                raise ConfigurationError(
                    f"Duplicate staffing requirement for {list(codes)} (night={night})"
                )
            self._index[req.key] = req

    def __len__(self) -> int:
        return len(self._index)

    def resolve(self, roster: DoctorRoster) -> Resolution:
        req = self._index.get((roster.normalized_codes, roster.has_night_shift))
        if req is None:
            logger.debug(f"No requirement for roster on {roster.roster_date}")
            return RequirementUnknown(roster)
        return ResolvedRequirement(roster, req)

    def resolve_many(self, rosters: Iterable[DoctorRoster]) -> dict[date, Resolution]:
        return {r.roster_date: self.resolve(r) for r in rosters}
