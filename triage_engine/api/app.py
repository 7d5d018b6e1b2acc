"""
Triage Engine API

FastAPI adapter over the engine's inbound event surface:
- Ticket board (sorted view, stats, status changes)
- Drag-and-drop ordering of groups
- Work order checklists
- Work order creation with architect discount accrual
- Notification feed for the UI
"""

from datetime import date, datetime, time
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config import Settings, get_settings
from ..logging_config import configure_logging
from ..models import (
    ChecklistOp,
    EntityId,
    canonical_id,
    Ticket,
    TicketStatus,
    WorkOrder,
)
from ..services import PersistenceError, TriageEngine, ValidationError, raise_for_failures
from ..services.checklist import default_checklist, format_percent, percent_complete
from ..store import MemoryStore, NotFoundError


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateTicketRequest(BaseModel):
    id: EntityId
    status: TicketStatus = TicketStatus.PENDING
    created_at: Optional[datetime] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None


class StatusChangeRequest(BaseModel):
    status: str


class ReorderRequest(BaseModel):
    ordered_ids: List[EntityId]


class MoveRequest(BaseModel):
    active_id: EntityId
    over_id: EntityId


class AppendItemRequest(BaseModel):
    id: EntityId


class CreateWorkOrderRequest(BaseModel):
    id: EntityId
    architect_id: Optional[EntityId] = None


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(
    engine: Optional[TriageEngine] = None,
    store: Optional[MemoryStore] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    store = store or MemoryStore()
    engine = engine or TriageEngine(store, settings=settings)

    app = FastAPI(
        title="Triage Engine",
        description="Ticket triage, list reordering, checklists and incentive accrual",
        version=__version__
    )
    app.state.engine = engine
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc)},
        )

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError):
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc), "failed_ids": [str(i) for i in exc.failed_ids]},
        )

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": exc.args[0] if exc.args else "not found"},
        )

    _register_routes(app)
    return app


def get_engine(request: Request) -> TriageEngine:
    return request.app.state.engine


def get_store(request: Request) -> MemoryStore:
    return request.app.state.store


# =============================================================================
# ROUTES
# =============================================================================

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "triage-engine",
            "version": __version__
        }

    # -------------------------------------------------------------------------
    # Tickets
    # -------------------------------------------------------------------------

    @app.post("/tickets", status_code=status.HTTP_201_CREATED)
    async def create_ticket(
        request: CreateTicketRequest,
        engine: TriageEngine = Depends(get_engine),
        store: MemoryStore = Depends(get_store)
    ):
        """Intake form: store the ticket and put it on the board."""
        fields = request.model_dump(exclude_none=True)
        ticket = Ticket(**fields)
        store.add_ticket(ticket)
        engine.board.upsert(ticket)
        return ticket

    @app.get("/tickets")
    async def list_tickets(
        now: Optional[datetime] = None,
        engine: TriageEngine = Depends(get_engine)
    ):
        """Board in display order."""
        return engine.board.sorted_view(now)

    @app.get("/tickets/stats")
    async def ticket_stats(
        now: Optional[datetime] = None,
        engine: TriageEngine = Depends(get_engine)
    ):
        return engine.board.stats(now)

    @app.post("/tickets/{ticket_id}/status")
    async def change_status(
        ticket_id: str,
        request: StatusChangeRequest,
        engine: TriageEngine = Depends(get_engine)
    ):
        return await engine.on_status_change(canonical_id(ticket_id), request.status)

    # -------------------------------------------------------------------------
    # Ordered groups
    # -------------------------------------------------------------------------

    @app.get("/groups/{group_key}")
    async def get_group(group_key: str, engine: TriageEngine = Depends(get_engine)):
        return await engine.reorder.load_group(group_key)

    @app.post("/groups/{group_key}/reorder")
    async def reorder_group(
        group_key: str,
        request: ReorderRequest,
        engine: TriageEngine = Depends(get_engine)
    ):
        """Drag end: the full new order of the group. Failed writes answer 502."""
        return raise_for_failures(await engine.on_drag_end(group_key, request.ordered_ids))

    @app.post("/groups/{group_key}/move")
    async def move_in_group(
        group_key: str,
        request: MoveRequest,
        engine: TriageEngine = Depends(get_engine)
    ):
        """Drag end as (active, over). Failed writes answer 502."""
        return raise_for_failures(
            await engine.reorder.move(group_key, request.active_id, request.over_id)
        )

    @app.post("/groups/{group_key}/items", status_code=status.HTTP_201_CREATED)
    async def append_group_item(
        group_key: str,
        request: AppendItemRequest,
        engine: TriageEngine = Depends(get_engine),
        store: MemoryStore = Depends(get_store)
    ):
        """New member goes to the end of the list."""
        members = await engine.reorder.load_group(group_key)
        await store.upsert_group_member(group_key, request.id, len(members))
        return await engine.reorder.append_item(group_key, request.id)

    @app.delete("/groups/{group_key}/items/{item_id}")
    async def remove_group_item(
        group_key: str,
        item_id: str,
        engine: TriageEngine = Depends(get_engine),
        store: MemoryStore = Depends(get_store)
    ):
        item_id = canonical_id(item_id)
        await engine.reorder.load_group(group_key)
        await store.delete_group_member(item_id)
        return await engine.reorder.remove_item(group_key, item_id)

    # -------------------------------------------------------------------------
    # Work orders
    # -------------------------------------------------------------------------

    @app.post("/work-orders", status_code=status.HTTP_201_CREATED)
    async def create_work_order(
        request: CreateWorkOrderRequest,
        engine: TriageEngine = Depends(get_engine),
        store: MemoryStore = Depends(get_store)
    ):
        """
        Register a new work order with the default checklist.

        The only path that accrues the architect discount.
        """
        work_order = WorkOrder(
            id=request.id,
            architect_id=request.architect_id,
            checklist=default_checklist(),
        )
        store.add_work_order(work_order)
        architect = await engine.on_work_order_created(work_order.id, work_order.architect_id)
        return {"work_order": work_order, "architect": architect}

    @app.get("/work-orders/{work_order_id}/checklist")
    async def get_checklist(work_order_id: str, engine: TriageEngine = Depends(get_engine)):
        checklist = await engine.checklists.load(canonical_id(work_order_id))
        percent = percent_complete(checklist)
        return {
            "checklist": checklist,
            "percent_complete": percent,
            "display": format_percent(percent),
        }

    @app.post("/work-orders/{work_order_id}/checklist")
    async def edit_checklist(
        work_order_id: str,
        op: ChecklistOp = Body(...),
        engine: TriageEngine = Depends(get_engine)
    ):
        checklist = await engine.on_checklist_edit(canonical_id(work_order_id), op)
        percent = percent_complete(checklist)
        return {
            "checklist": checklist,
            "percent_complete": percent,
            "display": format_percent(percent),
        }

    @app.get("/architects/{architect_id}")
    async def get_architect(architect_id: str, store: MemoryStore = Depends(get_store)):
        return await store.read_architect(canonical_id(architect_id))

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    @app.get("/notifications")
    async def drain_notifications(engine: TriageEngine = Depends(get_engine)):
        """Toasts not yet shown to the user."""
        return engine.notifications.drain()


app = create_app()


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
