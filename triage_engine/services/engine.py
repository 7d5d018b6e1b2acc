"""
Triage Engine Event Surface

One object per session wiring the four components to their
collaborators. The UI layer calls the on_* handlers; reads go
through the board and the services directly.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from ..config import Settings, get_settings
from ..models.ordering import ReorderResult
from ..models.ticket import EntityId, Ticket
from ..models.work_order import Architect, Checklist
from .checklist import ChecklistService
from .incentive import IncentiveService
from .notifications import NotificationService
from .reorder import ReorderCoordinator
from .triage import TicketBoard


logger = logging.getLogger(__name__)


class TriageEngine:
    """
    Session-scoped entry point.

    `store` must provide every collaborator method used by the
    components (see MemoryStore for the full set); separate
    repositories can be passed per component instead.
    """

    def __init__(
        self,
        store=None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        notification_service: Optional[NotificationService] = None,
        ticket_repo=None,
        order_repo=None,
        checklist_repo=None,
        architect_repo=None,
        ledger=None
    ):
        self.settings = settings or get_settings()
        self.notifications = notification_service or NotificationService()

        self.board = TicketBoard(
            ticket_repo or store, self.notifications, self.settings, clock
        )
        self.reorder = ReorderCoordinator(order_repo or store, self.notifications)
        self.checklists = ChecklistService(
            checklist_repo or store, self.notifications, self.settings
        )
        self.incentives = IncentiveService(
            architect_repo or store, self.notifications, ledger, self.settings
        )

    # =========================================================================
    # Inbound events
    # =========================================================================

    async def on_drag_end(
        self,
        group_key: str,
        ordered_ids: Sequence[EntityId]
    ) -> ReorderResult:
        return await self.reorder.reorder(group_key, ordered_ids)

    async def on_status_change(self, ticket_id: EntityId, new_status) -> Ticket:
        return await self.board.on_status_change(ticket_id, new_status)

    async def on_checklist_edit(self, work_order_id: EntityId, op) -> Checklist:
        return await self.checklists.apply(work_order_id, op)

    async def on_work_order_created(
        self,
        work_order_id: EntityId,
        architect_id: Optional[EntityId]
    ) -> Optional[Architect]:
        """Creation path only. Work order edits must not reach this handler."""
        return await self.incentives.on_work_order_created(work_order_id, architect_id)
