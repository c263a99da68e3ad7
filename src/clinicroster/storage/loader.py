"""JSON import and export of clinic data.

The document layout mirrors the domain models::

    {
      "clinic_id": "default",
      "holidays": ["2026-03-02"],
      "staff": [{"id": "n01", "name": "Kim", "department": "Nursing", "category": "Lead"}],
      "requirements": [{"doctor_codes": ["D1"], "has_night_shift": false,
                        "total_required": 4,
                        "departments": {"Nursing": {"Lead": {"count": 2, "minimum": 1}}}}],
      "rosters": [{"date": "2026-03-03", "doctor_codes": ["D1"], "has_night_shift": false}],
      "leaves": [{"id": "lv1", "staff_id": "n01", "date": "2026-03-05",
                  "type": "off", "status": "confirmed"}],
      "batches": [{"id": "mar", "department": "Nursing", "year": 2026, "month": 3}],
      "profiles": [{"staff_id": "n01", "deviations": {"total": 1.5}}],
      "openings": [{"department": "Nursing", "year": 2026, "month": 3,
                    "profiles": [{"staff_id": "n01", "deviations": {"total": 0.5}}]}],
      "assignments": {"mar": [{"staff_id": "n01", "date": "2026-03-03", "shift": "work_day"}]},
      "config": {"solver": {"solver_type": "heuristic"}}
    }
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Union

from clinicroster.domain.calendar import FairnessDimension
from clinicroster.domain.config import EngineConfig
from clinicroster.domain.models import (
    DEFAULT_CLINIC,
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
from clinicroster.errors import ConfigurationError
from clinicroster.storage.store import InMemoryStore

logger = logging.getLogger(__name__)

EPOCH = datetime(2000, 1, 1)


def load_clinic(source: Union[str, Path, dict]) -> tuple[InMemoryStore, EngineConfig, str]:
    """Load a clinic document into a fresh InMemoryStore.

    Args:
        source: Path to a JSON file, or an already parsed document.

    Returns:
        Tuple of (store, config, clinic_id).

    Raises:
        ConfigurationError: If the document is malformed.
    """
    if isinstance(source, dict):
        data = source
    else:
        path = Path(source)
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read clinic data from {path}: {e}") from e

    clinic = data.get("clinic_id", DEFAULT_CLINIC)
    store = InMemoryStore()
    try:
        store.add_holidays(_date(d) for d in data.get("holidays", []))
        store.add_staff(_staff(s, clinic) for s in data.get("staff", []))
        store.add_requirements(_requirement(r, clinic) for r in data.get("requirements", []))
        store.add_rosters(
            DoctorRoster(
                roster_date=_date(r["date"]),
                doctor_codes=tuple(r.get("doctor_codes", [])),
                has_night_shift=bool(r.get("has_night_shift", False)),
                clinic_id=clinic,
            )
            for r in data.get("rosters", [])
        )
        store.add_leaves(_leave(lv, clinic) for lv in data.get("leaves", []))
        for b in data.get("batches", []):
            batch = ScheduleBatch.for_month(b["id"], b["department"], int(b["year"]), int(b["month"]), clinic)
            batch.status = BatchStatus(b.get("status", BatchStatus.DRAFT.value))
            store.add_batch(batch)
        store.save_profiles(_profile(p) for p in data.get("profiles", []))
        for o in data.get("openings", []):
            store.save_opening_profiles(
                (clinic, o["department"], int(o["year"]), int(o["month"])),
                (_profile(p) for p in o.get("profiles", [])),
            )
        for batch_id, rows in data.get("assignments", {}).items():
            store.add_assignments(batch_id, (_assignment(r) for r in rows))
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Malformed clinic data: {e}") from e

    config = EngineConfig.from_dict(data.get("config"))
    logger.info(
        f"Loaded clinic {clinic}: {len(data.get('staff', []))} staff, "
        f"{len(data.get('rosters', []))} rosters, {len(data.get('leaves', []))} leaves"
    )
    return store, config, clinic


def dump_clinic(store: InMemoryStore, clinic_id: str = DEFAULT_CLINIC) -> dict[str, Any]:
    """Export the store's state for one clinic in the load_clinic layout."""
    batches = store.list_batches(clinic_id)
    return {
        "clinic_id": clinic_id,
        "holidays": sorted(d.isoformat() for d in store.get_holidays()),
        "staff": [
            {
                "id": s.id,
                "name": s.name,
                "department": s.department,
                "category": s.category,
                "weekly_target": s.weekly_target,
                "is_active": s.is_active,
                "flexible_categories": sorted(s.flexible_categories),
                "flexibility_priority": s.flexibility_priority,
                "hire_date": s.hire_date.isoformat() if s.hire_date else None,
                "annual_leave_used": s.annual_leave_used,
            }
            for s in store.get_staff(clinic_id)
        ],
        "requirements": [
            {
                "doctor_codes": list(r.doctor_codes),
                "has_night_shift": r.has_night_shift,
                "total_required": r.total_required,
                "departments": {
                    dept: {cat: {"count": req.count, "minimum": req.minimum} for cat, req in cats.items()}
                    for dept, cats in r.departments.items()
                },
            }
            for r in store.get_requirements(clinic_id)
        ],
        "rosters": [
            {
                "date": r.roster_date.isoformat(),
                "doctor_codes": list(r.doctor_codes),
                "has_night_shift": r.has_night_shift,
            }
            for r in store.get_rosters(clinic_id, date.min, date.max)
        ],
        "leaves": [
            {
                "id": lv.id,
                "staff_id": lv.staff_id,
                "date": lv.leave_date.isoformat(),
                "type": lv.leave_type.value,
                "status": lv.status.value,
                "created_at": lv.created_at.isoformat(),
            }
            for lv in store.get_leaves(clinic_id, date.min, date.max)
        ],
        "batches": [
            {"id": b.id, "department": b.department, "year": b.year, "month": b.month, "status": b.status.value}
            for b in batches
        ],
        "profiles": [
            _profile_document(p)
            for _, p in sorted(store.get_profiles(s.id for s in store.get_staff(clinic_id)).items())
        ],
        "openings": _opening_documents(store, batches),
        "assignments": {
            b.id: [
                {
                    "staff_id": r.staff_id,
                    "date": r.assignment_date.isoformat(),
                    "shift": r.shift.value,
                    "category": r.category,
                    "leave_id": r.leave_id,
                    "leave_type": r.leave_type.value if r.leave_type else None,
                }
                for r in store.get_assignments(b.id)
            ]
            for b in batches
        },
    }


def _date(value: str) -> date:
    return date.fromisoformat(value)


def _staff(s: dict, clinic: str) -> Staff:
    return Staff(
        id=s["id"],
        name=s.get("name", s["id"]),
        department=s["department"],
        category=s["category"],
        weekly_target=int(s.get("weekly_target", 4)),
        is_active=bool(s.get("is_active", True)),
        flexible_categories=set(s.get("flexible_categories", [])),
        flexibility_priority=int(s.get("flexibility_priority", 0)),
        hire_date=_date(s["hire_date"]) if s.get("hire_date") else None,
        annual_leave_used=int(s.get("annual_leave_used", 0)),
        clinic_id=clinic,
    )


def _requirement(r: dict, clinic: str) -> StaffingRequirement:
    return StaffingRequirement(
        doctor_codes=tuple(r["doctor_codes"]),
        has_night_shift=bool(r.get("has_night_shift", False)),
        total_required=int(r["total_required"]),
        departments={
            dept: {
                cat: CategoryRequirement(int(req["count"]), int(req.get("minimum", 0)))
                for cat, req in categories.items()
            }
            for dept, categories in r.get("departments", {}).items()
        },
        clinic_id=clinic,
    )


def _leave(lv: dict, clinic: str) -> LeaveApplication:
    return LeaveApplication(
        id=lv["id"],
        staff_id=lv["staff_id"],
        leave_date=_date(lv["date"]),
        leave_type=LeaveType(lv.get("type", LeaveType.OFF.value)),
        status=LeaveStatus(lv.get("status", LeaveStatus.PENDING.value)),
        created_at=datetime.fromisoformat(lv["created_at"]) if lv.get("created_at") else EPOCH,
        clinic_id=clinic,
    )


def _assignment(r: dict) -> ShiftAssignment:
    return ShiftAssignment(
        staff_id=r["staff_id"],
        assignment_date=_date(r["date"]),
        shift=ShiftKind(r["shift"]),
        category=r.get("category"),
        leave_id=r.get("leave_id"),
        leave_type=LeaveType(r["leave_type"]) if r.get("leave_type") else None,
    )


def _profile(p: dict) -> FairnessProfile:
    return FairnessProfile(
        staff_id=p["staff_id"],
        deviations={FairnessDimension(k): float(v) for k, v in p.get("deviations", {}).items()},
    )


def _profile_document(p: FairnessProfile) -> dict[str, Any]:
    return {"staff_id": p.staff_id, "deviations": {dim.value: v for dim, v in p.deviations.items()}}


def _opening_documents(store: InMemoryStore, batches: list[ScheduleBatch]) -> list[dict[str, Any]]:
    documents = []
    for period in sorted({b.period_key for b in batches}):
        opening = store.get_opening_profiles(period)
        if opening is None:
            continue
        _, department, year, month = period
        documents.append({
            "department": department,
            "year": year,
            "month": month,
            "profiles": [_profile_document(p) for _, p in sorted(opening.items())],
        })
    return documents
