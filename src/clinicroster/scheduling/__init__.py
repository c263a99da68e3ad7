"""Multi-phase assignment scheduling for schedule batches."""

from clinicroster.scheduling.context import (
    AssignmentGrid,
    Issue,
    IssueKind,
    LeaveConflict,
    PhaseOutcome,
    SchedulingContext,
    SchedulingInputs,
    Severity,
)
from clinicroster.scheduling.cpsat_fill import CPSATFill, FillResult
from clinicroster.scheduling.deploy import DeployResult, ScheduleDeployer
from clinicroster.scheduling.initial_fill import initial_fill
from clinicroster.scheduling.rebalance import rebalance
from clinicroster.scheduling.reconciliation import reconcile_leaves
from clinicroster.scheduling.scheduler import BatchScheduler, RunResult

__all__ = [
    # Runner
    "BatchScheduler",
    "RunResult",
    "ScheduleDeployer",
    "DeployResult",
    # Phases
    "initial_fill",
    "rebalance",
    "reconcile_leaves",
    "CPSATFill",
    "FillResult",
    # Context
    "AssignmentGrid",
    "Issue",
    "IssueKind",
    "LeaveConflict",
    "PhaseOutcome",
    "SchedulingContext",
    "SchedulingInputs",
    "Severity",
]
