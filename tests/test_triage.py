from datetime import date, datetime, time, timedelta

import pytest

from triage_engine.models import Ticket, TicketStatus
from triage_engine.services import (
    PersistenceError,
    TicketBoard,
    ValidationError,
    is_urgent,
    sort_tickets,
    ticket_stats,
)
from triage_engine.services.notifications import NotificationLevel

from .conftest import NOW


TODAY = NOW.date()
BASE = datetime(2024, 5, 1, 12, 0)


def make_ticket(id, status=TicketStatus.PENDING, created=0, day=None, at=None):
    return Ticket(
        id=id,
        status=status,
        created_at=BASE + timedelta(hours=created),
        scheduled_date=day,
        scheduled_time=at,
    )


def ids(tickets):
    return [t.id for t in tickets]


# =============================================================================
# sort_tickets
# =============================================================================

def test_scheduled_pending_then_unscheduled_then_completed():
    tickets = [
        make_ticket(3, TicketStatus.COMPLETED, created=5),
        make_ticket(2, created=1),
        make_ticket(1, day=TODAY, at=time(9, 0)),
    ]
    assert ids(sort_tickets(tickets, NOW)) == [1, 2, 3]


def test_every_pending_ticket_precedes_every_other_status():
    tickets = [
        make_ticket(1, TicketStatus.CANCELLED, created=50),
        make_ticket(2, TicketStatus.IN_PROGRESS, created=40),
        make_ticket(3, created=1),
        make_ticket(4, TicketStatus.COMPLETED, created=60),
        make_ticket(5, created=2, day=TODAY + timedelta(days=1), at=time(8, 0)),
        make_ticket(6, created=3, day=TODAY, at=time(23, 0)),
    ]
    ordered = sort_tickets(tickets, NOW)
    statuses = [t.status for t in ordered]
    last_pending = max(i for i, s in enumerate(statuses) if s == TicketStatus.PENDING)
    first_other = min(i for i, s in enumerate(statuses) if s != TicketStatus.PENDING)
    assert last_pending < first_other


def test_urgent_tickets_first_ascending_by_time():
    tickets = [
        make_ticket("late", created=10, day=TODAY, at=time(9, 10)),
        make_ticket("fresh", created=20),
        make_ticket("overdue", created=1, day=TODAY, at=time(7, 30)),
        make_ticket("soon", created=5, day=TODAY, at=time(8, 50)),
    ]
    assert ids(sort_tickets(tickets, NOW)) == ["overdue", "soon", "late", "fresh"]


def test_scheduled_later_today_is_not_urgent_and_sorts_by_creation():
    tickets = [
        make_ticket("afternoon", created=30, day=TODAY, at=time(15, 0)),
        make_ticket("urgent", created=1, day=TODAY, at=time(9, 0)),
        make_ticket("older", created=2),
    ]
    assert ids(sort_tickets(tickets, NOW)) == ["urgent", "afternoon", "older"]


def test_urgency_window_boundary():
    on_edge = make_ticket(1, day=TODAY, at=time(9, 15))
    past_edge = make_ticket(2, day=TODAY, at=time(9, 16))
    assert is_urgent(on_edge, NOW)
    assert not is_urgent(past_edge, NOW)


def test_date_without_time_or_other_day_is_never_urgent():
    no_time = make_ticket(1, day=TODAY)
    yesterday = make_ticket(2, day=TODAY - timedelta(days=1), at=time(8, 0))
    not_pending = make_ticket(3, TicketStatus.IN_PROGRESS, day=TODAY, at=time(8, 50))
    assert not is_urgent(no_time, NOW)
    assert not is_urgent(yesterday, NOW)
    assert not is_urgent(not_pending, NOW)


def test_urgency_window_crossing_midnight():
    now = datetime(2024, 5, 10, 23, 50)
    just_before_midnight = make_ticket(1, day=now.date(), at=time(23, 59))
    assert is_urgent(just_before_midnight, now)


def test_timezone_aware_now_is_read_as_local_wall_clock():
    aware_now = NOW.astimezone()
    tickets = [
        make_ticket(3, TicketStatus.COMPLETED, created=5),
        make_ticket(2, created=1),
        make_ticket(1, day=TODAY, at=time(9, 0)),
    ]
    assert is_urgent(tickets[2], aware_now)
    assert not is_urgent(make_ticket(4, day=TODAY, at=time(9, 16)), aware_now)
    assert ids(sort_tickets(tickets, aware_now)) == [1, 2, 3]
    assert ticket_stats(tickets, aware_now).today == 1


def test_ties_break_by_creation_then_id():
    tickets = [
        make_ticket("b", created=1, day=TODAY, at=time(9, 0)),
        make_ticket("a", created=1, day=TODAY, at=time(9, 0)),
        make_ticket("c", created=2, day=TODAY, at=time(9, 0)),
        make_ticket("y", TicketStatus.COMPLETED, created=3),
        make_ticket("x", TicketStatus.CANCELLED, created=3),
    ]
    assert ids(sort_tickets(tickets, NOW)) == ["c", "a", "b", "x", "y"]


def test_sort_is_deterministic_and_leaves_input_alone():
    tickets = [make_ticket(i, created=i % 3) for i in range(10)]
    original = list(tickets)
    first = ids(sort_tickets(tickets, NOW))
    assert first == ids(sort_tickets(reversed(tickets), NOW))
    assert tickets == original


def test_ticket_stats():
    tickets = [
        make_ticket(1, day=TODAY, at=time(9, 0)),
        make_ticket(2),
        make_ticket(3, TicketStatus.COMPLETED, day=TODAY),
        make_ticket(4, TicketStatus.CANCELLED),
    ]
    stats = ticket_stats(tickets, NOW)
    assert (stats.total, stats.pending, stats.completed, stats.today) == (4, 2, 1, 2)


# =============================================================================
# TicketBoard
# =============================================================================

class CountingTicketRepo:
    def __init__(self, store, fail_writes=False):
        self.store = store
        self.fail_writes = fail_writes
        self.list_calls = 0
        self.status_writes = []

    async def list_tickets(self):
        self.list_calls += 1
        return await self.store.list_tickets()

    async def read_ticket(self, ticket_id):
        return await self.store.read_ticket(ticket_id)

    async def write_ticket_status(self, ticket_id, status):
        self.status_writes.append((ticket_id, status))
        if self.fail_writes:
            raise ConnectionError("storage unavailable")
        await self.store.write_ticket_status(ticket_id, status)


@pytest.fixture()
def seeded(store):
    store.add_ticket(make_ticket(1, day=TODAY, at=time(9, 0)))
    store.add_ticket(make_ticket(2, created=1))
    store.add_ticket(make_ticket(3, TicketStatus.COMPLETED, created=2))
    return store


@pytest.mark.anyio
async def test_status_change_resorts_without_refetch(seeded, notifications, settings, clock):
    repo = CountingTicketRepo(seeded)
    board = TicketBoard(repo, notifications, settings, clock)
    assert ids(await board.load()) == [1, 2, 3]

    await board.on_status_change(1, "completed")

    assert ids(board.sorted_view()) == [2, 3, 1]
    assert repo.list_calls == 1
    assert repo.status_writes == [(1, TicketStatus.COMPLETED)]
    assert notifications.drain()[-1].level == NotificationLevel.SUCCESS


@pytest.mark.anyio
async def test_sorted_view_is_cached_per_version(seeded, notifications, settings, clock):
    board = TicketBoard(CountingTicketRepo(seeded), notifications, settings, clock)
    await board.load()
    version = board.version

    board.sorted_view()
    cached = board._cache
    board.sorted_view()
    assert board._cache is cached

    board.upsert(make_ticket(4, created=9))
    assert board.version == version + 1
    assert ids(board.sorted_view())[:2] == [1, 4]


@pytest.mark.anyio
async def test_unknown_status_rejected_before_write(seeded, notifications, settings, clock):
    repo = CountingTicketRepo(seeded)
    board = TicketBoard(repo, notifications, settings, clock)
    await board.load()

    with pytest.raises(ValidationError):
        await board.on_status_change(1, "archived")
    assert repo.status_writes == []


@pytest.mark.anyio
async def test_failed_status_write_keeps_local_state(seeded, notifications, settings, clock):
    repo = CountingTicketRepo(seeded, fail_writes=True)
    board = TicketBoard(repo, notifications, settings, clock)
    await board.load()

    with pytest.raises(PersistenceError):
        await board.on_status_change(1, TicketStatus.CANCELLED)

    assert ids(board.sorted_view()) == [1, 2, 3]
    assert notifications.drain()[-1].level == NotificationLevel.ERROR
