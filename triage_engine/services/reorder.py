"""
Triage Engine Reorder Coordinator

Turns a drag-end event into a validated, sequenced batch of order
writes.

Flow for one reorder on a group:

    validate -> apply locally -> stamp sequence -> write batch -> reconcile

The pure steps (validate_permutation, plan_writes, apply_writes,
move_id) never touch I/O. The coordinator owns the I/O and the
per-group sequence numbers.

Supersession: a new reorder on a group may start while an older batch
is still in flight. Only the response carrying the latest sequence is
reconciled; older responses are dropped. Every batch writes every
member, so the latest batch alone brings storage to the final order.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..models.ordering import (
    OrderedItem,
    OrderWrite,
    ReorderPhase,
    ReorderResult,
    ReorderStatus,
    WriteOutcome,
)
from ..models.ticket import EntityId
from .errors import PersistenceError, StaleSequenceError, ValidationError
from .notifications import NotificationService


logger = logging.getLogger(__name__)


# =============================================================================
# Pure helpers
# =============================================================================

def validate_permutation(
    current_ids: Sequence[EntityId],
    new_ids: Sequence[EntityId]
) -> None:
    """Raise ValidationError unless new_ids is a permutation of current_ids."""
    duplicates = [i for i, n in Counter(new_ids).items() if n > 1]
    if duplicates:
        raise ValidationError(f"Duplicate ids in new order: {duplicates}")

    current, proposed = set(current_ids), set(new_ids)
    missing = current - proposed
    unknown = proposed - current
    if missing or unknown:
        parts = []
        if missing:
            parts.append(f"missing {sorted(map(str, missing))}")
        if unknown:
            parts.append(f"unknown {sorted(map(str, unknown))}")
        raise ValidationError("New order is not a permutation of the group: " + ", ".join(parts))


def plan_writes(ordered_ids: Sequence[EntityId]) -> List[OrderWrite]:
    """Position in the list becomes the index."""
    return [OrderWrite(id=item_id, index=position) for position, item_id in enumerate(ordered_ids)]


def apply_writes(
    items: Dict[EntityId, OrderedItem],
    writes: Sequence[OrderWrite]
) -> Dict[EntityId, OrderedItem]:
    """
    Return a new item map with the writes applied.

    Idempotent: applying the same writes again yields an equal map.
    Writes for ids outside the map are ignored.
    """
    updated = dict(items)
    for write in writes:
        item = updated.get(write.id)
        if item is not None and item.order_index != write.index:
            updated[write.id] = item.model_copy(update={"order_index": write.index})
    return updated


def ordered_ids(items: Dict[EntityId, OrderedItem]) -> List[EntityId]:
    return [item.id for item in sorted(items.values(), key=lambda i: (i.order_index, str(i.id)))]


def move_id(
    ids: Sequence[EntityId],
    active_id: EntityId,
    over_id: EntityId
) -> List[EntityId]:
    """
    Drag `active_id` onto the slot held by `over_id`.

    Items between the two positions shift by one toward the vacated slot.
    """
    ids = list(ids)
    try:
        old_index = ids.index(active_id)
        new_index = ids.index(over_id)
    except ValueError:
        raise ValidationError(f"Cannot move {active_id!r} onto {over_id!r}: not in group")
    ids.insert(new_index, ids.pop(old_index))
    return ids


def is_dense(items: Dict[EntityId, OrderedItem]) -> bool:
    return sorted(i.order_index for i in items.values()) == list(range(len(items)))


# =============================================================================
# Coordinator
# =============================================================================

@dataclass
class GroupState:
    """Local view of one group."""
    items: Dict[EntityId, OrderedItem] = field(default_factory=dict)
    phase: ReorderPhase = ReorderPhase.IDLE
    latest_sequence: int = 0
    last_result: Optional[ReorderResult] = None


class ReorderCoordinator:
    """
    Owns local order state and persistence of user-ordered groups.

    Phases per group:
        IDLE -> REORDERING -> PERSISTING -> IDLE

    A reorder arriving while PERSISTING is accepted right away and
    raises the sequence; the older response is discarded when it lands.

    Collaborator (order_repo):
    - read_group(group_key) -> List[OrderedItem]
    - write_order_batch(writes: List[OrderWrite]) -> List[WriteOutcome]
    """

    def __init__(
        self,
        order_repo,
        notification_service: NotificationService
    ):
        self.order_repo = order_repo
        self.notifications = notification_service
        self._groups: Dict[str, GroupState] = {}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def load_group(self, group_key: str) -> List[OrderedItem]:
        """
        Fetch a group from storage and replace the local copy.

        Also the recovery path after a partial failure. The sequence
        counter survives, so in-flight responses stay stale.
        """
        fetched = await self.order_repo.read_group(group_key)
        state = self._groups.setdefault(group_key, GroupState())
        state.items = {item.id: item for item in fetched}
        return self.items(group_key)

    def items(self, group_key: str) -> List[OrderedItem]:
        state = self._groups.get(group_key)
        if state is None:
            return []
        return sorted(state.items.values(), key=lambda i: (i.order_index, str(i.id)))

    def phase(self, group_key: str) -> ReorderPhase:
        state = self._groups.get(group_key)
        return state.phase if state else ReorderPhase.IDLE

    def latest_sequence(self, group_key: str) -> int:
        state = self._groups.get(group_key)
        return state.latest_sequence if state else 0

    def last_result(self, group_key: str) -> Optional[ReorderResult]:
        state = self._groups.get(group_key)
        return state.last_result if state else None

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def reorder(
        self,
        group_key: str,
        new_ordered_ids: Sequence[EntityId]
    ) -> ReorderResult:
        """
        Persist a new order for a group.

        Raises ValidationError (before touching anything) unless
        new_ordered_ids is a permutation of the group's members.
        """
        state = await self._state(group_key)
        new_ordered_ids = list(new_ordered_ids)

        try:
            validate_permutation(list(state.items), new_ordered_ids)
        except ValidationError:
            self.notifications.error(
                "The new order does not match the items in this list. Reload and try again.",
                event_type="reorder",
            )
            raise

        writes = plan_writes(new_ordered_ids)
        return await self._submit(group_key, state, writes)

    async def move(
        self,
        group_key: str,
        active_id: EntityId,
        over_id: EntityId
    ) -> ReorderResult:
        """Drag-end as reported by the sortable list: `active` dropped on `over`."""
        state = await self._state(group_key)
        if active_id == over_id:
            return ReorderResult(
                group_key=group_key,
                sequence=state.latest_sequence,
                status=ReorderStatus.UNCHANGED,
                ordered_ids=ordered_ids(state.items),
            )
        return await self.reorder(group_key, move_id(ordered_ids(state.items), active_id, over_id))

    async def append_item(self, group_key: str, item_id: EntityId) -> ReorderResult:
        """New member goes to the end of the group (index N)."""
        state = await self._state(group_key)
        if item_id in state.items:
            raise ValidationError(f"{item_id!r} is already in '{group_key}'")

        state.items[item_id] = OrderedItem(
            id=item_id, group_key=group_key, order_index=len(state.items)
        )
        return await self._submit(group_key, state, plan_writes(ordered_ids(state.items)))

    async def remove_item(self, group_key: str, item_id: EntityId) -> ReorderResult:
        """Drop a member and close the gap it leaves."""
        state = await self._state(group_key)
        if item_id not in state.items:
            raise ValidationError(f"{item_id!r} is not in '{group_key}'")

        remaining = [i for i in ordered_ids(state.items) if i != item_id]
        del state.items[item_id]
        return await self._submit(group_key, state, plan_writes(remaining))

    # -------------------------------------------------------------------------
    # Private methods
    # -------------------------------------------------------------------------

    async def _state(self, group_key: str) -> GroupState:
        if group_key not in self._groups:
            await self.load_group(group_key)
        return self._groups[group_key]

    async def _submit(
        self,
        group_key: str,
        state: GroupState,
        writes: List[OrderWrite]
    ) -> ReorderResult:
        # Optimistic apply: the full target order is in place before any write
        state.phase = ReorderPhase.REORDERING
        state.items = apply_writes(state.items, writes)

        state.latest_sequence += 1
        sequence = state.latest_sequence

        state.phase = ReorderPhase.PERSISTING
        logger.info(
            "Reorder #%d issued for '%s' (%d items)", sequence, group_key, len(writes),
            extra={"group_key": group_key, "sequence": sequence, "event_type": "reorder"},
        )

        outcomes = await self._write(writes)

        try:
            return self._reconcile(group_key, state, sequence, writes, outcomes)
        except StaleSequenceError as exc:
            logger.debug(str(exc), extra={"group_key": group_key, "sequence": sequence})
            return ReorderResult(
                group_key=group_key,
                sequence=sequence,
                status=ReorderStatus.SUPERSEDED,
                ordered_ids=[w.id for w in writes],
            )

    async def _write(self, writes: List[OrderWrite]) -> List[WriteOutcome]:
        """Best-effort batch; every id gets an outcome."""
        try:
            outcomes = await self.order_repo.write_order_batch(writes)
        except Exception as exc:
            logger.error("Order batch write failed: %s", exc)
            return [WriteOutcome(id=w.id, ok=False, error=str(exc)) for w in writes]

        by_id = {o.id: o for o in outcomes}
        return [
            by_id.get(w.id) or WriteOutcome(id=w.id, ok=False, error="no response")
            for w in writes
        ]

    def _reconcile(
        self,
        group_key: str,
        state: GroupState,
        sequence: int,
        writes: List[OrderWrite],
        outcomes: List[WriteOutcome]
    ) -> ReorderResult:
        if sequence != state.latest_sequence:
            raise StaleSequenceError(group_key, sequence, state.latest_sequence)

        failed = [o for o in outcomes if not o.ok]
        result = ReorderResult(
            group_key=group_key,
            sequence=sequence,
            status=ReorderStatus.PARTIAL_FAILURE if failed else ReorderStatus.APPLIED,
            ordered_ids=[w.id for w in writes],
            outcomes=outcomes,
        )
        state.phase = ReorderPhase.IDLE
        state.last_result = result

        if failed:
            logger.warning(
                "Reorder #%d for '%s': %d of %d writes failed",
                sequence, group_key, len(failed), len(outcomes),
                extra={"group_key": group_key, "sequence": sequence, "event_type": "reorder"},
            )
            self.notifications.error(
                f"Could not save the new order for {len(failed)} item(s). Please try again.",
                event_type="reorder",
            )
        else:
            self.notifications.success("Order saved.", event_type="reorder")
        return result


def raise_for_failures(result: ReorderResult) -> ReorderResult:
    """Raise PersistenceError if any write of the batch failed."""
    if result.failed:
        raise PersistenceError(
            f"Failed to persist order for {len(result.failed)} item(s) in '{result.group_key}'.",
            outcomes=result.failed,
        )
    return result
