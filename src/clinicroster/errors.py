"""Hard errors raised by the scheduling engine.

Business-rule outcomes (shortages, configuration gaps, denied leave) are
returned as structured results. Only the failures below are raised.
"""


class SchedulingError(Exception):
    """Base class for errors raised by the engine."""


class ConfigurationError(SchedulingError):
    """Invalid requirement table or engine configuration."""


class ConcurrencyConflict(SchedulingError):
    """A batch is already locked by another run.

    Attributes:
        batch_id: The contended batch.
        retry_later: Always True; callers should retry once the run finishes.
    """

    retry_later = True

    def __init__(self, batch_id: str, message: str = ""):
        self.batch_id = batch_id
        super().__init__(message or f"Batch {batch_id} is already being assigned; retry later")


class StorageError(SchedulingError):
    """The backing store failed to read or write."""


class DeployError(SchedulingError):
    """A batch cannot move to DEPLOYED from its current status."""
