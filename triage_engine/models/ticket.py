"""
Triage Engine Ticket Model

Customer-service tickets ("atendimentos") and the derived counters
shown on the dashboard header.

Core principles:
1. Status is user-settable at any time (no transition graph)
2. Schedule is optional: a date, a time of day, or both
3. Display order is derived on read, never stored
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Optional, Union
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, Field


def canonical_id(value):
    """
    One form per id, whatever transport carried it.

    "12" becomes 12 and a canonical UUID string becomes a UUID, so an id
    read from a URL path matches the one stored from a JSON body.
    """
    if not isinstance(value, str):
        return value
    if value.isascii() and value.isdigit() and (value == "0" or not value.startswith("0")):
        return int(value)
    try:
        parsed = UUID(value)
    except ValueError:
        return value
    return parsed if str(parsed) == value.lower() else value


EntityId = Annotated[Union[int, UUID, str], BeforeValidator(canonical_id)]


# =============================================================================
# ENUMS
# =============================================================================

class TicketStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# =============================================================================
# CORE MODELS
# =============================================================================

class Ticket(BaseModel):
    """
    A customer-service record.

    Created by the intake form, mutated afterwards only through
    status changes.
    """
    id: EntityId
    status: TicketStatus = TicketStatus.PENDING

    created_at: datetime = Field(default_factory=datetime.now)

    # Schedule (both optional, independent)
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None

    @property
    def scheduled_at(self) -> Optional[datetime]:
        if self.scheduled_date is None or self.scheduled_time is None:
            return None
        return datetime.combine(self.scheduled_date, self.scheduled_time)


class TicketStats(BaseModel):
    """Dashboard counters."""
    total: int = 0
    pending: int = 0
    completed: int = 0
    today: int = 0  # Scheduled for the current day, any status
