import asyncio
from datetime import datetime

import pytest

from triage_engine.config import Settings
from triage_engine.models import Architect, OrderedItem, WriteOutcome
from triage_engine.services import NotificationService
from triage_engine.store import MemoryStore


NOW = datetime(2024, 5, 10, 8, 45)


# Make anyio run on asyncio (so our async tests work everywhere)
@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def settings():
    return Settings(_env_file=None)


@pytest.fixture()
def notifications():
    return NotificationService()


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def clock():
    return lambda: NOW


def seed_group(store: MemoryStore, group_key: str, ids) -> None:
    for index, item_id in enumerate(ids):
        store.add_item(OrderedItem(id=item_id, group_key=group_key, order_index=index))


async def stored_order(store: MemoryStore, group_key: str) -> dict:
    return {item.id: item.order_index for item in await store.read_group(group_key)}


async def wait_for(predicate, attempts: int = 100) -> None:
    """Yield to the loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


# =============================================================================
# Fake collaborators
# =============================================================================

class GatedOrderRepo:
    """
    Writes land in storage in issue order; each response is held
    until its gate is opened by the test.
    """

    def __init__(self, store: MemoryStore):
        self.store = store
        self.gates = []
        self.calls = []

    async def read_group(self, group_key):
        return await self.store.read_group(group_key)

    async def write_order_batch(self, writes):
        self.calls.append(list(writes))
        outcomes = await self.store.write_order_batch(writes)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return outcomes


class FlakyOrderRepo:
    """Fails the writes for `failing_ids`; raises outright when `down`."""

    def __init__(self, store: MemoryStore, failing_ids=(), down: bool = False):
        self.store = store
        self.failing_ids = set(failing_ids)
        self.down = down
        self.calls = []

    async def read_group(self, group_key):
        return await self.store.read_group(group_key)

    async def write_order_batch(self, writes):
        self.calls.append(list(writes))
        if self.down:
            raise ConnectionError("storage unavailable")
        ok = [w for w in writes if w.id not in self.failing_ids]
        outcomes = {o.id: o for o in await self.store.write_order_batch(ok)}
        return [
            outcomes.get(w.id) or WriteOutcome(id=w.id, ok=False, error="rejected")
            for w in writes
        ]


class GatedChecklistRepo:
    """Checklist writes held until released; optionally failing."""

    def __init__(self, store: MemoryStore, fail: bool = False):
        self.store = store
        self.fail = fail
        self.gates = []
        self.writes = []

    async def read_checklist(self, work_order_id):
        return await self.store.read_checklist(work_order_id)

    async def write_checklist(self, work_order_id, checklist, snapshot):
        self.writes.append((dict(checklist), snapshot))
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        if self.fail:
            raise ConnectionError("storage unavailable")
        await self.store.write_checklist(work_order_id, checklist, snapshot)


class FailingArchitectRepo:
    """Discount writes fail while `down` is set; reads too with `reads_down`."""

    def __init__(self, store: MemoryStore, down: bool = True, reads_down: bool = False):
        self.store = store
        self.down = down
        self.reads_down = reads_down
        self.writes = 0

    async def read_architect(self, architect_id):
        if self.reads_down:
            raise ConnectionError("storage unavailable")
        return await self.store.read_architect(architect_id)

    async def write_architect_discount(self, architect_id, new_value):
        self.writes += 1
        if self.down:
            raise ConnectionError("storage unavailable")
        await self.store.write_architect_discount(architect_id, new_value)


@pytest.fixture()
def architect(store):
    arch = Architect(id="arch-1", discount=0.0)
    store.add_architect(arch)
    return arch
