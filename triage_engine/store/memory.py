"""
In-memory storage implementing every collaborator the engine talks to.

Backs the HTTP app in development and the test suite.
"""

import copy
from typing import Dict, List, Optional, Tuple

from ..models.ordering import OrderedItem, OrderWrite, WriteOutcome
from ..models.ticket import EntityId, Ticket, TicketStatus
from ..models.work_order import Architect, Checklist, WorkOrder


class NotFoundError(KeyError):
    """Raised when a record does not exist."""
    pass


class MemoryStore:
    """In-memory tickets, ordered groups, work orders and architects."""

    def __init__(self):
        self._tickets: Dict[EntityId, Ticket] = {}
        self._items: Dict[EntityId, OrderedItem] = {}
        self._work_orders: Dict[EntityId, WorkOrder] = {}
        self._snapshots: Dict[EntityId, str] = {}
        self._architects: Dict[EntityId, Architect] = {}

    # =========================================================================
    # Tickets
    # =========================================================================

    def add_ticket(self, ticket: Ticket) -> None:
        self._tickets[ticket.id] = ticket

    async def list_tickets(self) -> List[Ticket]:
        return list(self._tickets.values())

    async def read_ticket(self, ticket_id: EntityId) -> Ticket:
        try:
            return self._tickets[ticket_id]
        except KeyError:
            raise NotFoundError(f"Ticket {ticket_id} not found")

    async def write_ticket_status(self, ticket_id: EntityId, status: TicketStatus) -> None:
        ticket = await self.read_ticket(ticket_id)
        self._tickets[ticket_id] = ticket.model_copy(update={"status": status})

    # =========================================================================
    # Ordered groups
    # =========================================================================

    def add_item(self, item: OrderedItem) -> None:
        self._items[item.id] = item

    async def read_group(self, group_key: str) -> List[OrderedItem]:
        members = [i for i in self._items.values() if i.group_key == group_key]
        return sorted(members, key=lambda i: i.order_index)

    async def write_order_batch(self, writes: List[OrderWrite]) -> List[WriteOutcome]:
        outcomes = []
        for write in writes:
            item = self._items.get(write.id)
            if item is None:
                outcomes.append(WriteOutcome(id=write.id, ok=False, error="not found"))
                continue
            self._items[write.id] = item.model_copy(update={"order_index": write.index})
            outcomes.append(WriteOutcome(id=write.id))
        return outcomes

    async def upsert_group_member(self, group_key: str, item_id: EntityId, index: int) -> None:
        """Insert a member row (the order write for it follows separately)."""
        self._items[item_id] = OrderedItem(id=item_id, group_key=group_key, order_index=index)

    async def delete_group_member(self, item_id: EntityId) -> None:
        self._items.pop(item_id, None)

    # =========================================================================
    # Work orders / checklists
    # =========================================================================

    def add_work_order(self, work_order: WorkOrder, snapshot: Optional[str] = None) -> None:
        self._work_orders[work_order.id] = work_order
        if snapshot is not None:
            self._snapshots[work_order.id] = snapshot

    async def read_work_order(self, work_order_id: EntityId) -> WorkOrder:
        try:
            return self._work_orders[work_order_id]
        except KeyError:
            raise NotFoundError(f"Work order {work_order_id} not found")

    async def read_checklist(self, work_order_id: EntityId) -> Checklist:
        work_order = await self.read_work_order(work_order_id)
        return copy.deepcopy(work_order.checklist)

    async def write_checklist(
        self,
        work_order_id: EntityId,
        checklist: Checklist,
        snapshot: str
    ) -> None:
        # Map and snapshot land together
        work_order = await self.read_work_order(work_order_id)
        self._work_orders[work_order_id] = work_order.model_copy(
            update={"checklist": copy.deepcopy(checklist)}
        )
        self._snapshots[work_order_id] = snapshot

    def stored_checklist(self, work_order_id: EntityId) -> Tuple[Checklist, Optional[str]]:
        return self._work_orders[work_order_id].checklist, self._snapshots.get(work_order_id)

    # =========================================================================
    # Architects
    # =========================================================================

    def add_architect(self, architect: Architect) -> None:
        self._architects[architect.id] = architect

    async def read_architect(self, architect_id: EntityId) -> Architect:
        try:
            return self._architects[architect_id]
        except KeyError:
            raise NotFoundError(f"Architect {architect_id} not found")

    async def write_architect_discount(self, architect_id: EntityId, new_value: float) -> None:
        architect = await self.read_architect(architect_id)
        self._architects[architect_id] = architect.model_copy(update={"discount": new_value})
