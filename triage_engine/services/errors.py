"""
Engine error taxonomy.

ValidationError    - rejected before any mutation
PersistenceError   - storage failed after local state was applied
StaleSequenceError - response for a superseded reorder; never user-visible

Hitting the discount cap is not an error: accrual clamps silently.
"""

from typing import List, Optional

from ..models.ordering import WriteOutcome


class EngineError(Exception):
    """Base class for engine failures."""
    pass


class ValidationError(EngineError):
    """Raised when a command is malformed. No state has been touched."""
    pass


class PersistenceError(EngineError):
    """
    Raised when a write to storage fails.

    `outcomes` lists the per-id failures so the caller can retry
    or force a refetch.
    """

    def __init__(self, message: str, outcomes: Optional[List[WriteOutcome]] = None):
        super().__init__(message)
        self.outcomes = list(outcomes or [])

    @property
    def failed_ids(self) -> list:
        return [o.id for o in self.outcomes if not o.ok]


class StaleSequenceError(EngineError):
    """A persistence response arrived for a sequence that is no longer the latest."""

    def __init__(self, group_key: str, sequence: int, latest: int):
        super().__init__(
            f"Reorder #{sequence} for '{group_key}' superseded by #{latest}."
        )
        self.group_key = group_key
        self.sequence = sequence
        self.latest = latest
