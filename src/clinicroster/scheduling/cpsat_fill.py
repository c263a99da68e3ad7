"""OR-Tools CP-SAT alternative to the greedy Phase 1 fill.

The week is modelled as one problem: a boolean per (staff, date, category)
for every placement the greedy fill could make. The objective fills as many
slots as possible, then prefers staff who are owed work, then native staff
over flexible cover. The solver runs with a fixed seed and one worker so a
re-run produces the same grid.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ortools.sat.python import cp_model

from clinicroster.domain.calendar import FairnessDimension
from clinicroster.domain.config import SolverConfig
from clinicroster.domain.models import ShiftAssignment, ShiftKind
from clinicroster.scheduling.context import (
    AssignmentGrid,
    PhaseOutcome,
    SchedulingInputs,
)
from clinicroster.scheduling.initial_fill import configuration_gap, shortage

logger = logging.getLogger(__name__)

SLOT_WEIGHT = 1000


@dataclass
class FillResult:
    """Result from the CP-SAT fill.

    Attributes:
        outcome: Phase outcome, or None when no feasible solution was found.
        status: Solver status (OPTIMAL, FEASIBLE, etc.).
        objective_value: Final objective value.
        solve_time_seconds: Time taken to solve.
        filled_slots: Category slots filled across the week.
    """

    outcome: Optional[PhaseOutcome]
    status: str
    objective_value: int = 0
    solve_time_seconds: float = 0.0
    filled_slots: int = 0

    @property
    def is_feasible(self) -> bool:
        return self.status in ("OPTIMAL", "FEASIBLE")


class CPSATFill:
    """Phase 1 fill using the CP-SAT solver."""

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()

    def solve(self, grid: AssignmentGrid, inputs: SchedulingInputs) -> FillResult:
        grid = grid.copy()
        issues = []
        week = inputs.week_dates

        for d in week:
            for member in inputs.active_staff:
                leave = inputs.leave_on(member.id, d)
                if leave is not None:
                    grid.put(ShiftAssignment(
                        member.id, d, ShiftKind.OFF, leave_id=leave.id, leave_type=leave.leave_type
                    ))

        model = cp_model.CpModel()
        x: dict[tuple[str, date, str], cp_model.IntVar] = {}
        requirements = {}
        for d in week:
            resolution = inputs.resolutions.get(d)
            if resolution is None:
                continue
            if not resolution.is_known:
                issues.append(configuration_gap(resolution.reason, d))
                continue
            categories = resolution.categories(inputs.department)
            requirements[d] = (resolution, categories)
            for category in sorted(categories):
                for member in inputs.active_staff:
                    if not member.can_cover(category) or inputs.leave_on(member.id, d):
                        continue
                    x[(member.id, d, category)] = model.NewBoolVar(
                        f"x_{member.id}_{d.isoformat()}_{category}"
                    )

        # One placement per staff per date
        for member in inputs.active_staff:
            for d in week:
                day_vars = [v for (sid, vd, _), v in x.items() if sid == member.id and vd == d]
                if len(day_vars) > 1:
                    model.AddAtMostOne(day_vars)

        # Slot counts
        for d, (_, categories) in requirements.items():
            for category, req in categories.items():
                slot_vars = [v for (_, vd, c), v in x.items() if vd == d and c == category]
                if slot_vars:
                    model.Add(sum(slot_vars) <= req.count)

        # Weekly quota, with ANNUAL leave already counted
        for member in inputs.active_staff:
            staff_vars = [v for (sid, _, _), v in x.items() if sid == member.id]
            if staff_vars:
                remaining = max(0, inputs.quota(member, week[0]) - grid.workdays(member.id, week))
                model.Add(sum(staff_vars) <= remaining)

        owed = {
            member.id: inputs.owed(grid, member.id, [FairnessDimension.TOTAL])
            for member in inputs.active_staff
        }
        objective_terms = []
        for (sid, d, category), var in x.items():
            member = inputs.staff_by_id[sid]
            weight = SLOT_WEIGHT + self.config.owed_weight * int(round(owed[sid] * 10))
            if member.is_flexible_for(category):
                weight -= self.config.flexible_penalty * 10 * (1 + max(0, 10 - member.flexibility_priority))
            objective_terms.append(var * weight)
        model.Maximize(sum(objective_terms))

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.config.time_limit_seconds
        solver.parameters.num_workers = self.config.num_workers
        solver.parameters.random_seed = self.config.random_seed
        status = solver.Solve(model)

        status_map = {
            cp_model.OPTIMAL: "OPTIMAL",
            cp_model.FEASIBLE: "FEASIBLE",
            cp_model.INFEASIBLE: "INFEASIBLE",
            cp_model.MODEL_INVALID: "MODEL_INVALID",
            cp_model.UNKNOWN: "UNKNOWN",
        }
        status_str = status_map.get(status, "UNKNOWN")
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.warning(f"CP-SAT fill for week {inputs.week} returned {status_str}")
            return FillResult(outcome=None, status=status_str, solve_time_seconds=solver.WallTime())

        filled_total = 0
        for (sid, d, category), var in sorted(x.items()):
            if solver.Value(var) == 1:
                resolution, _ = requirements[d]
                grid.put(ShiftAssignment(sid, d, resolution.shift_kind, category=category))
                filled_total += 1

        for d, (_, categories) in sorted(requirements.items()):
            for category in sorted(categories):
                req = categories[category]
                filled = grid.covering(d, category, inputs.active_ids)
                if filled < req.count:
                    issues.append(shortage(d, category, filled, req.count, req.minimum))

        for member in inputs.active_staff:
            for d in week:
                if grid.get(member.id, d) is None:
                    grid.put(ShiftAssignment(member.id, d, ShiftKind.OFF))

        logger.info(
            f"CP-SAT fill for week {inputs.week}: {status_str}, {filled_total} shifts placed"
        )
        return FillResult(
            outcome=PhaseOutcome(grid=grid, issues=issues),
            status=status_str,
            objective_value=int(solver.ObjectiveValue()),
            solve_time_seconds=solver.WallTime(),
            filled_slots=filled_total,
        )

