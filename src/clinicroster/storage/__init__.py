"""Storage seam and the in-memory reference store."""

from clinicroster.storage.loader import dump_clinic, load_clinic
from clinicroster.storage.store import (
    AssignmentMutation,
    InMemoryStore,
    MutationKind,
    ScheduleStore,
)

__all__ = [
    "AssignmentMutation",
    "InMemoryStore",
    "MutationKind",
    "ScheduleStore",
    "dump_clinic",
    "load_clinic",
]
