"""
Triage Engine Services

Ticket triage, list reordering, checklists and incentive accrual.
"""

from .errors import EngineError, ValidationError, PersistenceError, StaleSequenceError
from .notifications import NotificationService, Notification, NotificationLevel
from .triage import TicketBoard, sort_tickets, is_urgent, ticket_stats
from .reorder import ReorderCoordinator, move_id, validate_permutation, raise_for_failures
from .checklist import (
    ChecklistService,
    CounterKeyGenerator,
    UuidKeyGenerator,
    percent_complete,
    normalize_checklist,
    serialize_checklist,
)
from .incentive import IncentiveService, CreditLedger, accrue_discount
from .engine import TriageEngine

__all__ = [
    # Errors
    "EngineError", "ValidationError", "PersistenceError", "StaleSequenceError",

    # Notification channel
    "NotificationService", "Notification", "NotificationLevel",

    # Ticket board ordering
    "TicketBoard", "sort_tickets", "is_urgent", "ticket_stats",

    # Drag-and-drop ordering
    "ReorderCoordinator", "move_id", "validate_permutation", "raise_for_failures",

    # Checklists
    "ChecklistService", "CounterKeyGenerator", "UuidKeyGenerator",
    "percent_complete", "normalize_checklist", "serialize_checklist",

    # Architect discount accrual
    "IncentiveService", "CreditLedger", "accrue_discount",

    # Event surface
    "TriageEngine",
]
