"""
Triage Engine Incentive Service

Architect discount accrual.

Every new work order attributed to an architect raises the architect's
discount by a fixed step, clamped at a cap:

    new = min(current + step, cap)     (1.2 points, capped at 20.0)

Only the creation path may call this; edits never accrue. Each work
order is credited at most once, however often its creation event is
delivered.
"""

import asyncio
import logging
from typing import Dict, Optional, Set

from ..config import Settings, get_settings
from ..models.ticket import EntityId
from ..models.work_order import Architect
from .notifications import NotificationService


logger = logging.getLogger(__name__)


def accrue_discount(current: float, step: float = 1.2, cap: float = 20.0) -> float:
    """Bounded increment. Reaching the cap is not an error."""
    # Rounded to absorb float drift from repeated steps
    return round(min(max(current, 0.0) + step, cap), 6)


class CreditLedger:
    """Work order ids already credited. In-memory default."""

    def __init__(self):
        self._credited: Set[EntityId] = set()

    async def is_credited(self, work_order_id: EntityId) -> bool:
        return work_order_id in self._credited

    async def mark_credited(self, work_order_id: EntityId, architect_id: EntityId) -> None:
        self._credited.add(work_order_id)


class IncentiveService:
    """
    Applies the accrual once per work order.

    Concurrent events for the same architect are serialised on a
    per-architect lock so no increment is lost; other architects are
    unaffected.

    A failed architect read or discount write does not undo the work
    order. It is logged, left uncredited and queued in `pending` for
    `reconcile()`.

    Collaborators:
    - architect_repo.read_architect(id) -> Architect
    - architect_repo.write_architect_discount(id, new_value) -> None
    - ledger.is_credited(work_order_id) / ledger.mark_credited(work_order_id, architect_id)
    """

    def __init__(
        self,
        architect_repo,
        notification_service: NotificationService,
        ledger=None,
        settings: Optional[Settings] = None
    ):
        self.architect_repo = architect_repo
        self.notifications = notification_service
        self.ledger = ledger or CreditLedger()
        self.settings = settings or get_settings()

        self.pending: Dict[EntityId, EntityId] = {}  # work_order_id -> architect_id
        self._locks: Dict[EntityId, asyncio.Lock] = {}

    async def on_work_order_created(
        self,
        work_order_id: EntityId,
        architect_id: Optional[EntityId]
    ) -> Optional[Architect]:
        """
        Credit the architect of a newly created work order.

        Returns the updated architect, or None when nothing was applied
        (no architect, already credited, or the read or write failed).
        """
        if architect_id is None:
            return None

        async with self._lock(architect_id):
            if await self.ledger.is_credited(work_order_id):
                self.pending.pop(work_order_id, None)
                logger.info(
                    "Work order %s already credited; skipping", work_order_id,
                    extra={"work_order_id": work_order_id, "architect_id": architect_id,
                           "event_type": "accrual"},
                )
                return None

            try:
                architect = await self.architect_repo.read_architect(architect_id)
                new_value = accrue_discount(
                    architect.discount, self.settings.discount_step, self.settings.discount_cap
                )
                await self.architect_repo.write_architect_discount(architect_id, new_value)
            except Exception as exc:
                self.pending[work_order_id] = architect_id
                logger.error(
                    "Discount accrual failed for architect %s (work order %s): %s",
                    architect_id, work_order_id, exc,
                    extra={"work_order_id": work_order_id, "architect_id": architect_id,
                           "event_type": "accrual"},
                )
                self.notifications.warning(
                    "Work order saved, but the architect discount could not be updated.",
                    event_type="accrual",
                )
                return None

            await self.ledger.mark_credited(work_order_id, architect_id)
            self.pending.pop(work_order_id, None)

        logger.info(
            "Architect %s discount %.1f -> %.1f (work order %s)",
            architect_id, architect.discount, new_value, work_order_id,
            extra={"work_order_id": work_order_id, "architect_id": architect_id,
                   "event_type": "accrual"},
        )
        return architect.model_copy(update={"discount": new_value})

    async def reconcile(self) -> int:
        """Retry accruals that failed. Returns how many now succeeded."""
        applied = 0
        for work_order_id, architect_id in list(self.pending.items()):
            if await self.on_work_order_created(work_order_id, architect_id) is not None:
                applied += 1
        return applied

    def _lock(self, architect_id: EntityId) -> asyncio.Lock:
        if architect_id not in self._locks:
            self._locks[architect_id] = asyncio.Lock()
        return self._locks[architect_id]
