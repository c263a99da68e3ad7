"""Domain models, calendar, configuration and requirement resolution."""

from clinicroster.domain.calendar import (
    ClinicCalendar,
    FairnessDimension,
    WeekKey,
    week_dates,
    week_start,
)
from clinicroster.domain.config import (
    EngineConfig,
    FairnessConfig,
    LeavePolicy,
    RebalanceConfig,
    SolverConfig,
    SolverType,
)
from clinicroster.domain.models import (
    BatchStatus,
    CategoryRequirement,
    DoctorRoster,
    FairnessProfile,
    LeaveApplication,
    LeaveStatus,
    LeaveType,
    ScheduleBatch,
    ShiftAssignment,
    ShiftKind,
    Staff,
    StaffingRequirement,
)
from clinicroster.domain.requirements import (
    CategoryLookup,
    LookupOutcome,
    RequirementResolver,
    RequirementUnknown,
    ResolvedRequirement,
)

__all__ = [
    # Models
    "BatchStatus",
    "CategoryRequirement",
    "DoctorRoster",
    "FairnessProfile",
    "LeaveApplication",
    "LeaveStatus",
    "LeaveType",
    "ScheduleBatch",
    "ShiftAssignment",
    "ShiftKind",
    "Staff",
    "StaffingRequirement",
    # Calendar
    "ClinicCalendar",
    "FairnessDimension",
    "WeekKey",
    "week_dates",
    "week_start",
    # Configuration
    "EngineConfig",
    "FairnessConfig",
    "LeavePolicy",
    "RebalanceConfig",
    "SolverConfig",
    "SolverType",
    # Requirements
    "CategoryLookup",
    "LookupOutcome",
    "RequirementResolver",
    "RequirementUnknown",
    "ResolvedRequirement",
]
