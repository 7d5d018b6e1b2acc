"""
Triage Engine Models

Tickets, ordered groups, work orders and their checklists.
"""

from .ticket import (
    EntityId,
    canonical_id,
    TicketStatus,
    Ticket,
    TicketStats,
)
from .ordering import (
    ReorderPhase,
    ReorderStatus,
    OrderedItem,
    OrderWrite,
    WriteOutcome,
    ReorderResult,
)
from .work_order import (
    WorkOrderStatus,
    ChecklistItem,
    Checklist,
    WorkOrder,
    Architect,

    # Checklist commands
    AddItem,
    EditText,
    DeleteItem,
    SetDone,
    ChecklistOp,
)

__all__ = [
    "EntityId", "canonical_id", "TicketStatus", "Ticket", "TicketStats",
    "ReorderPhase", "ReorderStatus", "OrderedItem", "OrderWrite", "WriteOutcome", "ReorderResult",
    "WorkOrderStatus", "ChecklistItem", "Checklist", "WorkOrder", "Architect",
    "AddItem", "EditText", "DeleteItem", "SetDone", "ChecklistOp",
]
