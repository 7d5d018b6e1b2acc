"""
Triage Engine Ordering Model

User-ordered lists (portfolio items, sections, hero images).

A group is every OrderedItem sharing a group_key. Within a group the
order_index values are always exactly 0..N-1.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .ticket import EntityId


# =============================================================================
# ENUMS
# =============================================================================

class ReorderPhase(str, Enum):
    IDLE = "idle"
    REORDERING = "reordering"  # Optimistic state applied, nothing sent yet
    PERSISTING = "persisting"  # Batch in flight


class ReorderStatus(str, Enum):
    APPLIED = "applied"
    PARTIAL_FAILURE = "partial_failure"
    SUPERSEDED = "superseded"  # A newer reorder owns the group
    UNCHANGED = "unchanged"    # Drop on the same position


# =============================================================================
# MODELS
# =============================================================================

class OrderedItem(BaseModel):
    id: EntityId
    group_key: str
    order_index: int = Field(..., ge=0)


class OrderWrite(BaseModel):
    """One (id, index) assignment sent to storage."""
    id: EntityId
    index: int = Field(..., ge=0)


class WriteOutcome(BaseModel):
    """Per-id result of a batch write."""
    id: EntityId
    ok: bool = True
    error: Optional[str] = None


class ReorderResult(BaseModel):
    """
    What happened to one reorder call.

    `outcomes` is empty for superseded and unchanged results.
    """
    group_key: str
    sequence: int
    status: ReorderStatus
    ordered_ids: List[EntityId] = Field(default_factory=list)
    outcomes: List[WriteOutcome] = Field(default_factory=list)

    @property
    def failed(self) -> List[WriteOutcome]:
        return [o for o in self.outcomes if not o.ok]
