"""Leave slot checks, eligibility simulation and review."""

from clinicroster.leave.entitlement import annual_leave_entitlement, remaining_annual_leave
from clinicroster.leave.service import LeaveService, ReviewResult, SubmissionResult
from clinicroster.leave.simulator import (
    CheckOutcome,
    EligibilityCheck,
    EligibilityVerdict,
    LeaveEligibilitySimulator,
)
from clinicroster.leave.slots import (
    CategorySlotService,
    SlotAvailability,
    SlotOutcome,
    slot_availability,
)

__all__ = [
    # Slots
    "CategorySlotService",
    "SlotAvailability",
    "SlotOutcome",
    "slot_availability",
    # Simulator
    "CheckOutcome",
    "EligibilityCheck",
    "EligibilityVerdict",
    "LeaveEligibilitySimulator",
    # Review
    "LeaveService",
    "ReviewResult",
    "SubmissionResult",
    # Entitlement
    "annual_leave_entitlement",
    "remaining_annual_leave",
]
