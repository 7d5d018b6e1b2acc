"""
Triage Engine Checklist Service

Dynamic per-work-order checklist of yes/no questions and its
completion percentage.

Storage keeps two copies of the checklist: the structured map and a
serialised snapshot of it. Both are always written in one call, so a
reader never sees them disagree.

Snapshot format (JSON, keys sorted):
    {"<key>": {"text": "...", "status": true|false}, ...}
"""

import asyncio
import json
import logging
import re
import uuid
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..config import Settings, get_settings
from ..models.ticket import EntityId
from ..models.work_order import (
    AddItem,
    Checklist,
    ChecklistItem,
    DeleteItem,
    EditText,
    SetDone,
)
from .errors import PersistenceError, ValidationError
from .notifications import NotificationService


logger = logging.getLogger(__name__)


# Default questions of a new work order. Each key carries its own label.
DEFAULT_QUESTIONS = {
    "material_entregue": "Material foi entregue no local?",
    "cliente_confirmou_medidas": "Cliente confirmou as medidas?",
    "local_preparado": "Local está preparado para instalação?",
    "ferramentas_disponiveis": "Ferramentas necessárias estão disponíveis?",
    "cliente_aprovou_projeto": "Cliente aprovou o projeto final?",
    "documentacao_completa": "Documentação está completa?",
    "prazo_confirmado": "Prazo de entrega foi confirmado?",
}

_TRUTHY = (True, 1, "true", "True", "1")


# =============================================================================
# Key generation
# =============================================================================

class CounterKeyGenerator:
    """
    Monotonic keys scoped to one work order: <prefix>_1, <prefix>_2, ...

    Seeded past any existing <prefix>_<n> key so a reloaded checklist
    never reuses one.
    """

    def __init__(self, prefix: str = "pergunta", existing: Iterable[str] = ()):
        self.prefix = prefix
        self._pattern = re.compile(rf"^{re.escape(prefix)}_(\d+)$")
        self._next = 1
        self.observe(existing)

    def observe(self, keys: Iterable[str]) -> None:
        for key in keys:
            match = self._pattern.match(key)
            if match:
                self._next = max(self._next, int(match.group(1)) + 1)

    def __call__(self, taken: Iterable[str] = ()) -> str:
        taken = set(taken)
        self.observe(taken)
        while True:
            key = f"{self.prefix}_{self._next}"
            self._next += 1
            if key not in taken:
                return key


class UuidKeyGenerator:
    """Collision-resistant random keys."""

    def __init__(self, prefix: str = "pergunta"):
        self.prefix = prefix

    def __call__(self, taken: Iterable[str] = ()) -> str:
        taken = set(taken)
        while True:
            key = f"{self.prefix}_{uuid.uuid4().hex[:12]}"
            if key not in taken:
                return key


KeyGenerator = Callable[[Iterable[str]], str]


# =============================================================================
# Pure operations
# =============================================================================

def add_item(
    checklist: Checklist,
    key_generator: KeyGenerator,
    placeholder: str = "Nova pergunta"
) -> Tuple[Checklist, str]:
    key = key_generator(checklist.keys())
    updated = dict(checklist)
    updated[key] = ChecklistItem(text=placeholder, done=False)
    return updated, key


def edit_text(checklist: Checklist, key: str, new_text: str) -> Checklist:
    """Replace the question text; `done` is kept. Blank text is rejected."""
    if not new_text or not new_text.strip():
        raise ValidationError("Checklist question text must not be empty.")
    if key not in checklist:
        return checklist
    updated = dict(checklist)
    updated[key] = checklist[key].model_copy(update={"text": new_text})
    return updated


def delete_item(checklist: Checklist, key: str) -> Checklist:
    if key not in checklist:
        return checklist
    updated = dict(checklist)
    del updated[key]
    return updated


def set_done(checklist: Checklist, key: str, done: bool) -> Checklist:
    if key not in checklist:
        return checklist
    updated = dict(checklist)
    updated[key] = checklist[key].model_copy(update={"done": bool(done)})
    return updated


def percent_complete(checklist: Checklist) -> float:
    """
    Share of answered questions, 0-100, unrounded.

    An empty checklist is 0.
    """
    total = len(checklist)
    if total == 0:
        return 0.0
    done = sum(1 for item in checklist.values() if item.done)
    return 100.0 * done / total


def format_percent(value: float, digits: int = 1) -> str:
    """Display form only; stored state keeps the raw float."""
    return f"{value:.{digits}f}%"


def serialize_checklist(checklist: Checklist) -> str:
    payload = {
        key: {"text": item.text, "status": item.done}
        for key, item in checklist.items()
    }
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def default_checklist() -> Checklist:
    return {key: ChecklistItem(text=text) for key, text in DEFAULT_QUESTIONS.items()}


def normalize_checklist(raw) -> Checklist:
    """
    Build a checklist from whatever storage holds.

    Accepts:
    - the current format {key: {"text": str, "status": bool}}
    - already-parsed {key: ChecklistItem}
    - the legacy format {key: bool | "true" | 1}
    - a JSON snapshot string of any of the above

    Nothing stored (None or blank text) yields the default questions.
    An empty map is a checklist whose items were all deleted and stays
    empty.
    """
    if isinstance(raw, str):
        if not raw.strip():
            return default_checklist()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Stored checklist is not valid JSON: {exc}") from exc
    if raw is None:
        return default_checklist()
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Stored checklist must be a mapping, got {type(raw).__name__}"
        )

    checklist: Checklist = {}
    for key, value in raw.items():
        if isinstance(value, ChecklistItem):
            checklist[key] = value
            continue
        if isinstance(value, dict) and "text" in value:
            text = str(value.get("text") or "").strip() or _label_for(key)
            done = value.get("status", value.get("done", False)) in _TRUTHY
        else:
            text = _label_for(key)
            done = value in _TRUTHY
        checklist[key] = ChecklistItem(text=text, done=done)
    return checklist


def _label_for(key: str) -> str:
    return DEFAULT_QUESTIONS.get(key, f"Pergunta {key}")


# =============================================================================
# Service
# =============================================================================

class ChecklistService:
    """
    Session-side owner of work order checklists.

    Edits are applied to the local map first, so edits to distinct keys
    compose even when they overlap. Writes for one work order go out one
    at a time, each carrying the whole current map plus its snapshot, so
    storage ends on the latest map. Same-key edits are last-write-wins.

    Collaborator (checklist_repo):
    - read_checklist(work_order_id) -> raw stored checklist (or None)
    - write_checklist(work_order_id, checklist, snapshot) -> None
    """

    def __init__(
        self,
        checklist_repo,
        notification_service: NotificationService,
        settings: Optional[Settings] = None,
        key_generator_factory: Optional[Callable[[Iterable[str]], KeyGenerator]] = None
    ):
        self.checklist_repo = checklist_repo
        self.notifications = notification_service
        self.settings = settings or get_settings()
        self.key_generator_factory = key_generator_factory or (
            lambda existing: CounterKeyGenerator(self.settings.checklist_key_prefix, existing)
        )

        self._checklists: Dict[EntityId, Checklist] = {}
        self._key_generators: Dict[EntityId, KeyGenerator] = {}
        self._revisions: Dict[EntityId, int] = {}
        self._write_locks: Dict[EntityId, asyncio.Lock] = {}

    async def load(self, work_order_id: EntityId) -> Checklist:
        raw = await self.checklist_repo.read_checklist(work_order_id)
        checklist = normalize_checklist(raw)
        self._checklists[work_order_id] = checklist
        self._key_generators[work_order_id] = self.key_generator_factory(checklist.keys())
        logger.debug(
            "Loaded %d checklist items for work order %s", len(checklist), work_order_id,
            extra={"work_order_id": work_order_id},
        )
        return dict(checklist)

    def checklist(self, work_order_id: EntityId) -> Checklist:
        return dict(self._checklists.get(work_order_id, {}))

    def percent_complete(self, work_order_id: EntityId) -> float:
        return percent_complete(self._checklists.get(work_order_id, {}))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def add_item(self, work_order_id: EntityId) -> str:
        current = await self._current(work_order_id)
        updated, key = add_item(
            current, self._key_generators[work_order_id], self.settings.checklist_placeholder
        )
        await self._commit(work_order_id, current, updated, "Question added to the checklist.")
        return key

    async def edit_text(self, work_order_id: EntityId, key: str, new_text: str) -> Checklist:
        current = await self._current(work_order_id)
        try:
            updated = edit_text(current, key, new_text)
        except ValidationError:
            self.notifications.error(
                "The question text cannot be empty.", event_type="checklist"
            )
            raise
        return await self._commit(work_order_id, current, updated, "Question updated.")

    async def delete_item(self, work_order_id: EntityId, key: str) -> Checklist:
        current = await self._current(work_order_id)
        return await self._commit(
            work_order_id, current, delete_item(current, key), "Question removed."
        )

    async def set_done(self, work_order_id: EntityId, key: str, done: bool) -> Checklist:
        current = await self._current(work_order_id)
        return await self._commit(work_order_id, current, set_done(current, key, done))

    async def apply(self, work_order_id: EntityId, op) -> Checklist:
        """Dispatch a checklist command coming from the UI."""
        if isinstance(op, AddItem):
            await self.add_item(work_order_id)
            return self.checklist(work_order_id)
        if isinstance(op, EditText):
            return await self.edit_text(work_order_id, op.key, op.text)
        if isinstance(op, DeleteItem):
            return await self.delete_item(work_order_id, op.key)
        if isinstance(op, SetDone):
            return await self.set_done(work_order_id, op.key, op.done)
        raise ValidationError(f"Unknown checklist operation: {op!r}")

    # -------------------------------------------------------------------------
    # Private methods
    # -------------------------------------------------------------------------

    async def _current(self, work_order_id: EntityId) -> Checklist:
        if work_order_id not in self._checklists:
            await self.load(work_order_id)
        return self._checklists[work_order_id]

    async def _commit(
        self,
        work_order_id: EntityId,
        previous: Checklist,
        updated: Checklist,
        success_message: Optional[str] = None
    ) -> Checklist:
        if updated is previous:
            # Absent key: nothing to write
            return dict(updated)

        self._checklists[work_order_id] = updated
        revision = self._revisions.get(work_order_id, 0) + 1
        self._revisions[work_order_id] = revision

        lock = self._write_locks.setdefault(work_order_id, asyncio.Lock())
        try:
            async with lock:
                current = self._checklists[work_order_id]
                await self.checklist_repo.write_checklist(
                    work_order_id, dict(current), serialize_checklist(current)
                )
        except Exception as exc:
            # Roll back only if nothing newer was layered on top
            if self._revisions.get(work_order_id) == revision:
                self._checklists[work_order_id] = previous
            logger.error(
                "Checklist write failed for work order %s: %s", work_order_id, exc,
                extra={"work_order_id": work_order_id, "event_type": "checklist"},
            )
            self.notifications.error(
                "Could not save the checklist. Please try again.", event_type="checklist"
            )
            raise PersistenceError(
                f"Failed to save checklist of work order {work_order_id}."
            ) from exc

        logger.info(
            "Checklist r%d saved for work order %s (%.1f%% done)",
            revision, work_order_id, percent_complete(updated),
            extra={"work_order_id": work_order_id, "event_type": "checklist"},
        )
        if success_message:
            self.notifications.success(success_message, event_type="checklist")
        return dict(updated)
