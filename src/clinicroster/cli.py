"""Command-line interface for the clinicroster scheduling engine."""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from clinicroster.domain.calendar import SATURDAY, SUNDAY, FairnessDimension, WeekKey
from clinicroster.domain.config import EngineConfig, SolverType
from clinicroster.domain.models import (
    CategoryRequirement,
    DoctorRoster,
    LeaveType,
    ScheduleBatch,
    Staff,
    StaffingRequirement,
)
from clinicroster.errors import SchedulingError
from clinicroster.fairness.calculator import FairnessStatus
from clinicroster.leave.service import LeaveService
from clinicroster.leave.simulator import LeaveEligibilitySimulator
from clinicroster.leave.slots import CategorySlotService
from clinicroster.scheduling.deploy import ScheduleDeployer
from clinicroster.scheduling.scheduler import BatchScheduler, RunResult
from clinicroster.storage.loader import dump_clinic, load_clinic
from clinicroster.storage.store import InMemoryStore

logger = logging.getLogger(__name__)

DEPARTMENT = "Nursing"


def create_sample_clinic(
    year: int,
    month: int,
    leads: int = 4,
    seniors: int = 6,
    juniors: int = 6,
) -> tuple[InMemoryStore, str]:
    """Create an in-memory clinic with one month of doctor rosters.

    Weekdays run with doctors D1 and D2 (Wednesday adds a night shift),
    Saturdays with D1 only, and Sundays are closed.

    Returns:
        Tuple of (store, batch_id).
    """
    store = InMemoryStore()
    names = [
        "Kim", "Lee", "Park", "Choi", "Jung", "Kang", "Cho", "Yoon",
        "Jang", "Lim", "Han", "Oh", "Seo", "Shin", "Kwon", "Hwang",
    ]
    staff = []
    for category, count in (("Lead", leads), ("Senior", seniors), ("Junior", juniors)):
        for i in range(count):
            idx = len(staff)
            staff.append(Staff(
                id=f"{category[0]}{i + 1:02d}",
                name=names[idx % len(names)],
                department=DEPARTMENT,
                category=category,
                flexible_categories={"Junior"} if category == "Senior" else set(),
                flexibility_priority=1 if category == "Senior" else 0,
                hire_date=date(year - 1 - idx % 5, 1 + idx % 12, 1),
            ))
    store.add_staff(staff)

    weekday = {
        "Lead": CategoryRequirement(2, 1),
        "Senior": CategoryRequirement(3, 2),
        "Junior": CategoryRequirement(3, 1),
    }
    saturday = {
        "Lead": CategoryRequirement(1, 1),
        "Senior": CategoryRequirement(2, 1),
        "Junior": CategoryRequirement(2, 1),
    }
    store.add_requirements([
        StaffingRequirement(("D1", "D2"), False, 8, {DEPARTMENT: weekday}),
        StaffingRequirement(("D1", "D2"), True, 8, {DEPARTMENT: weekday}),
        StaffingRequirement(("D1",), False, 5, {DEPARTMENT: saturday}),
    ])

    batch = ScheduleBatch.for_month(f"{year}-{month:02d}-{DEPARTMENT.lower()}", DEPARTMENT, year, month)
    rosters = []
    for d in batch.dates:
        if d.weekday() == SUNDAY:
            continue
        if d.weekday() == SATURDAY:
            rosters.append(DoctorRoster(d, ("D1",)))
        else:
            rosters.append(DoctorRoster(d, ("D2", "D1"), has_night_shift=d.weekday() == 2))
    store.add_rosters(rosters)
    store.add_batch(batch)
    return store, batch.id


def print_run_result(result: RunResult) -> None:
    print(f"\n{'=' * 60}")
    print(f"Week {result.week}: {'completed' if result.success else 'failed'}")
    print(f"{'=' * 60}")
    print(f"  Shifts assigned: {result.assigned_count}")
    print(f"  Rows changed: {len(result.mutations)}")
    print(f"  Leave conflicts resolved: {len(result.conflicts)}")
    if result.stats:
        print(f"  Solver: {result.stats.get('method')}")
    if not result.issues:
        print("\n  Issues: none")
        return
    print(f"\n  Issues ({len(result.issues)}):")
    for issue in result.issues[:10]:
        print(f"    - {issue}")
        if issue.suggestion:
            print(f"      suggestion: {issue.suggestion}")
    if len(result.issues) > 10:
        print(f"    ... and {len(result.issues) - 10} more issues")


def run_demo(year: int, month: int, solver: str) -> int:
    config = EngineConfig()
    config.solver.solver_type = SolverType(solver)
    store, batch_id = create_sample_clinic(year, month)
    batch = store.get_batch(batch_id)
    print(f"Scheduling sample clinic for {year}-{month:02d} ({batch.start_date} to {batch.end_date})")

    scheduler = BatchScheduler(store, config)
    for start in batch.week_starts:
        print_run_result(scheduler.run_week(batch_id, WeekKey.from_date(start)))

    report = ScheduleDeployer(store, config).deploy(batch_id).report
    print(f"\nFairness after deploy ({report.window_start} to {report.window_end}):")
    for sid, entry in sorted(report.staff.items()):
        total = entry.dimensions[FairnessDimension.TOTAL]
        print(
            f"  {sid} ({entry.category}): worked {total.actual}, "
            f"baseline {total.baseline:.1f}, deviation {total.deviation:+.1f}, "
            f"score {entry.overall_score:.1f}"
        )
    return 0


def run_week(data: str, batch_id: str, week: str, solver: Optional[str], output: Optional[str], as_json: bool) -> int:
    store, config, clinic = load_clinic(data)
    if solver:
        config.solver.solver_type = SolverType(solver)
    result = BatchScheduler(store, config).run_week(batch_id, week)
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_run_result(result)
    _save(store, clinic, output)
    return 0


def check_leave(data: str, staff_id: str, dates: list[str], leave_type: str, submit: bool, output: Optional[str]) -> int:
    store, config, clinic = load_clinic(data)
    parsed = [date.fromisoformat(d) for d in dates]
    kind = LeaveType(leave_type)
    if submit:
        result = LeaveService(store, config).submit(staff_id, parsed, kind)
        verdicts = result.verdicts
        print(f"Created {len(result.created)} pending application(s)")
        for d in result.over_entitlement:
            print(f"  {d}: no annual leave entitlement left")
    else:
        simulator = LeaveEligibilitySimulator(store, config)
        verdicts = []
        for d in sorted(parsed):
            verdicts.append(simulator.simulate(staff_id, d, kind, already_selected=[v.leave_date for v in verdicts if v.allowed]))
    for verdict in verdicts:
        print(json.dumps(verdict.to_dict(), indent=2))
    _save(store, clinic, output)
    return 0 if all(v.allowed for v in verdicts) else 3


def review(data: str, start: str, end: str, on_hold: bool, output: Optional[str]) -> int:
    store, config, clinic = load_clinic(data)
    service = LeaveService(store, config)
    first, last = date.fromisoformat(start), date.fromisoformat(end)
    result = service.process_on_hold(clinic, first, last) if on_hold else service.review_pending(clinic, first, last)
    for leave_id, status in result.decisions.items():
        print(f"  {leave_id}: {status.value} ({result.verdicts[leave_id].reason})")
    _save(store, clinic, output)
    return 0


def slots(data: str, department: str, day: str) -> int:
    store, config, clinic = load_clinic(data)
    for availability in CategorySlotService(store, config).daily_overview(clinic, department, date.fromisoformat(day)):
        flag = "HOLD" if availability.should_hold else "open"
        print(f"  {availability.category:<12} {flag:<5} {availability.reason}")
    return 0


def deploy(data: str, batch_id: str, output: Optional[str]) -> int:
    store, config, clinic = load_clinic(data)
    result = ScheduleDeployer(store, config).deploy(batch_id)
    print(f"Deployed {batch_id} at {result.deployed_at:%Y-%m-%d %H:%M}")
    if result.archived_batches:
        print(f"  Archived: {', '.join(result.archived_batches)}")
    unbalanced = [
        (sid, dim, score)
        for sid, entry in sorted(result.report.staff.items())
        for dim, score in entry.dimensions.items()
        if score.status is not FairnessStatus.BALANCED
    ]
    print(f"  Profiles saved: {len(result.report.staff)}, unbalanced dimensions: {len(unbalanced)}")
    for sid, dim, score in unbalanced[:10]:
        print(f"    {sid} {dim.value}: {score.deviation:+.2f} ({score.status.value})")
    _save(store, clinic, output)
    return 0


def fairness(data: str, batch_id: str) -> int:
    store, config, _ = load_clinic(data)
    report = ScheduleDeployer(store, config).evaluate(batch_id)
    for sid, entry in sorted(report.staff.items()):
        dims = ", ".join(f"{dim.value}={score.deviation:+.2f}" for dim, score in entry.dimensions.items())
        print(f"  {sid} ({entry.department}/{entry.category}) score {entry.overall_score:.1f}: {dims}")
    return 0


def _save(store: InMemoryStore, clinic: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(json.dumps(dump_clinic(store, clinic), indent=2))
        print(f"State written to {output}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="clinicroster - Clinic staff scheduling and fairness engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo                                   Schedule a sample clinic month
  %(prog)s demo --solver cpsat                    Use the CP-SAT initial fill
  %(prog)s run-week -d clinic.json -b mar -w 2026-W10 -o out.json
  %(prog)s check-leave -d clinic.json -s S01 2026-03-12 --type off
  %(prog)s review -d clinic.json --start 2026-03-01 --end 2026-03-31
  %(prog)s deploy -d clinic.json -b mar
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    today = date.today()
    demo_parser = subparsers.add_parser("demo", help="Schedule and deploy a sample clinic month")
    demo_parser.add_argument("--year", type=int, default=today.year, help="Year (default: current)")
    demo_parser.add_argument("--month", type=int, default=today.month, help="Month (default: current)")
    demo_parser.add_argument(
        "--solver", "-s",
        default="heuristic",
        choices=[t.value for t in SolverType],
        help="Phase 1 fill (default: heuristic)",
    )

    week_parser = subparsers.add_parser("run-week", help="Run the scheduler for one week of a batch")
    week_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    week_parser.add_argument("--batch", "-b", required=True, help="Batch id")
    week_parser.add_argument("--week", "-w", required=True, help="Week key, e.g. 2026-W10")
    week_parser.add_argument("--solver", "-s", choices=[t.value for t in SolverType], help="Override the Phase 1 fill")
    week_parser.add_argument("--output", "-o", help="Write the updated clinic JSON here")
    week_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    leave_parser = subparsers.add_parser("check-leave", help="Simulate (or submit) leave requests")
    leave_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    leave_parser.add_argument("--staff", "-s", required=True, help="Staff id")
    leave_parser.add_argument("dates", nargs="+", help="Requested dates (YYYY-MM-DD)")
    leave_parser.add_argument("--type", "-t", default="off", choices=[t.value for t in LeaveType])
    leave_parser.add_argument("--submit", action="store_true", help="Create PENDING applications for allowed dates")
    leave_parser.add_argument("--output", "-o", help="Write the updated clinic JSON here")

    review_parser = subparsers.add_parser("review", help="Bulk-review pending leave")
    review_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    review_parser.add_argument("--start", required=True, help="First date (YYYY-MM-DD)")
    review_parser.add_argument("--end", required=True, help="Last date (YYYY-MM-DD)")
    review_parser.add_argument("--on-hold", action="store_true", help="Re-evaluate ON_HOLD leave instead")
    review_parser.add_argument("--output", "-o", help="Write the updated clinic JSON here")

    slots_parser = subparsers.add_parser("slots", help="Show category leave slots for a date")
    slots_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    slots_parser.add_argument("--department", default=DEPARTMENT, help=f"Department (default: {DEPARTMENT})")
    slots_parser.add_argument("date", help="Date (YYYY-MM-DD)")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy a batch and close its fairness period")
    deploy_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    deploy_parser.add_argument("--batch", "-b", required=True, help="Batch id")
    deploy_parser.add_argument("--output", "-o", help="Write the updated clinic JSON here")

    fairness_parser = subparsers.add_parser("fairness", help="Show fairness deviations for a batch")
    fairness_parser.add_argument("--data", "-d", required=True, help="Clinic JSON file")
    fairness_parser.add_argument("--batch", "-b", required=True, help="Batch id")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "demo":
            return run_demo(args.year, args.month, args.solver)
        elif args.command == "run-week":
            return run_week(args.data, args.batch, args.week, args.solver, args.output, args.json)
        elif args.command == "check-leave":
            return check_leave(args.data, args.staff, args.dates, args.type, args.submit, args.output)
        elif args.command == "review":
            return review(args.data, args.start, args.end, args.on_hold, args.output)
        elif args.command == "slots":
            return slots(args.data, args.department, args.date)
        elif args.command == "deploy":
            return deploy(args.data, args.batch, args.output)
        elif args.command == "fairness":
            return fairness(args.data, args.batch)
        else:
            parser.print_help()
            return 1
    except (SchedulingError, KeyError, ValueError) as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
