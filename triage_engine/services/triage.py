"""
Triage Engine Triage Service

Display order of the ticket board.

Buckets, in order:
1. Pending + urgent (scheduled today, within the urgency window)
   -> ascending by scheduled time
2. Remaining pending (not urgent, or unscheduled)
   -> newest first
3. Everything else (in progress, completed, cancelled)
   -> newest first

Ties always fall back to created_at descending, then id, so the order
is total and repeated calls agree.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..config import Settings, get_settings
from ..models.ticket import EntityId, Ticket, TicketStats, TicketStatus
from .errors import PersistenceError, ValidationError
from .notifications import NotificationService


logger = logging.getLogger(__name__)

DEFAULT_URGENCY_WINDOW = timedelta(minutes=30)

URGENT = 0
PENDING = 1
REST = 2


def local_wall_clock(now: datetime) -> datetime:
    """
    Schedules are naive local wall-clock values; an aware `now` is
    converted to the same frame before any comparison.
    """
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def _minute(now: datetime) -> datetime:
    """Urgency is judged at minute precision, like the clock on the board."""
    return local_wall_clock(now).replace(second=0, microsecond=0)


def is_urgent(
    ticket: Ticket,
    now: datetime,
    window: timedelta = DEFAULT_URGENCY_WINDOW
) -> bool:
    """
    Pending, scheduled for today, and due no later than now + window.

    A ticket with a date but no time is never urgent.
    """
    if ticket.status != TicketStatus.PENDING:
        return False
    now = local_wall_clock(now)
    scheduled_at = ticket.scheduled_at
    if scheduled_at is None or ticket.scheduled_date != now.date():
        return False
    return scheduled_at <= _minute(now) + window


def _sort_key(ticket: Ticket, now: datetime, window: timedelta) -> Tuple:
    newest_first = -ticket.created_at.timestamp()
    tiebreak = str(ticket.id)

    if is_urgent(ticket, now, window):
        return (URGENT, ticket.scheduled_time, newest_first, tiebreak)
    if ticket.status == TicketStatus.PENDING:
        return (PENDING, newest_first, tiebreak)
    return (REST, newest_first, tiebreak)


def sort_tickets(
    tickets: Iterable[Ticket],
    now: datetime,
    window: timedelta = DEFAULT_URGENCY_WINDOW
) -> List[Ticket]:
    """Return tickets in board order. Input is not modified."""
    return sorted(tickets, key=lambda t: _sort_key(t, now, window))


def ticket_stats(tickets: Iterable[Ticket], now: datetime) -> TicketStats:
    """Header counters: total, pending, completed, scheduled today."""
    stats = TicketStats()
    today = local_wall_clock(now).date()
    for ticket in tickets:
        stats.total += 1
        if ticket.status == TicketStatus.PENDING:
            stats.pending += 1
        elif ticket.status == TicketStatus.COMPLETED:
            stats.completed += 1
        if ticket.scheduled_date == today:
            stats.today += 1
    return stats


class TicketBoard:
    """
    Canonical ticket store for one session plus its sorted view.

    Every mutation bumps `version`. The sorted view is cached on
    (version, minute of now), so a status change costs one re-sort and
    no re-fetch.

    Collaborator (ticket_repo):
    - list_tickets() -> List[Ticket]
    - read_ticket(id) -> Ticket
    - write_ticket_status(id, status) -> None
    """

    def __init__(
        self,
        ticket_repo,
        notification_service: NotificationService,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.ticket_repo = ticket_repo
        self.notifications = notification_service
        self.settings = settings or get_settings()
        self.clock = clock

        self.window = timedelta(minutes=self.settings.urgency_window_minutes)
        self.version = 0
        self._tickets: Dict[EntityId, Ticket] = {}
        self._cache: Optional[Tuple[int, datetime, List[Ticket]]] = None

    async def load(self) -> List[Ticket]:
        """Replace local state with a fresh fetch."""
        tickets = await self.ticket_repo.list_tickets()
        self._tickets = {t.id: t for t in tickets}
        self._bump()
        return self.sorted_view()

    def upsert(self, ticket: Ticket) -> None:
        """Track a ticket created elsewhere (intake form)."""
        self._tickets[ticket.id] = ticket
        self._bump()

    def sorted_view(self, now: Optional[datetime] = None) -> List[Ticket]:
        now = now or self.clock()
        minute = _minute(now)
        if self._cache and self._cache[0] == self.version and self._cache[1] == minute:
            return list(self._cache[2])

        view = sort_tickets(self._tickets.values(), now, self.window)
        self._cache = (self.version, minute, view)
        return list(view)

    def stats(self, now: Optional[datetime] = None) -> TicketStats:
        return ticket_stats(self._tickets.values(), now or self.clock())

    async def on_status_change(
        self,
        ticket_id: EntityId,
        new_status
    ) -> Ticket:
        """
        Persist a new status, then update the local ticket.

        Any status may follow any other. Local state changes only after
        storage accepted the write.
        """
        try:
            status = TicketStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown ticket status: {new_status!r}")

        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            ticket = await self.ticket_repo.read_ticket(ticket_id)

        try:
            await self.ticket_repo.write_ticket_status(ticket_id, status)
        except Exception as exc:
            logger.error(
                "Status write failed for ticket %s: %s", ticket_id, exc,
                extra={"ticket_id": ticket_id},
            )
            self.notifications.error(
                "Could not update the ticket status. Please try again.",
                event_type="status_change",
            )
            raise PersistenceError(f"Failed to update status of ticket {ticket_id}.") from exc

        updated = ticket.model_copy(update={"status": status})
        self._tickets[ticket_id] = updated
        self._bump()

        logger.info(
            "Ticket %s status -> %s", ticket_id, status.value,
            extra={"ticket_id": ticket_id, "event_type": "status_change"},
        )
        self.notifications.success(
            "Ticket status updated.",
            event_type="status_change",
        )
        return updated

    def _bump(self) -> None:
        self.version += 1
