"""
Timer Tracker host service

Reference host process for the timer core: supplies a file-backed
persistence gateway and a WebSocket notification sink, runs the tick
scheduler, and forwards user actions over HTTP.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .categories import CategoryAggregator
from .errors import ValidationError
from .models import (
    MAX_CATEGORY_LENGTH,
    MAX_NAME_LENGTH,
    TICK_INTERVAL_SECONDS,
    VALID_ACTIONS,
    Timer,
    TimerAction,
    TimerStatus,
)
from .notifications import BroadcastNotifier, NotificationSink, timer_payload
from .persistence import FileKeyValueStore, KeyValueStore
from .scheduler import TickScheduler
from .store import TimerStore

logger = logging.getLogger(__name__)

# ============================================================
# CONSTANTS
# ============================================================

DEFAULT_DATA_DIR = "data"
MAX_DURATION_SECONDS = 86400
KEEPALIVE_SECONDS = 30
HOST = "127.0.0.1"
PORT = 8003


# ============================================================
# MODELS
# ============================================================


class TimerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH, description="Timer name")
    duration: int = Field(
        ..., ge=1, le=MAX_DURATION_SECONDS, description="Timer duration (1 sec to 24 hours)"
    )
    category: str = Field(..., min_length=1, max_length=MAX_CATEGORY_LENGTH)
    halfway_alert: bool = Field(False, description="Notify once at the halfway point")


class TimerControl(BaseModel):
    action: TimerAction = Field(..., description="Timer control action")


class HalfwayAlertUpdate(BaseModel):
    enabled: bool


class TimerResponse(BaseModel):
    id: str
    name: str
    category: str
    status: TimerStatus
    duration: int
    remaining: int
    elapsed: int
    progress: float
    halfway_alert: bool
    halfway_threshold: int

    @classmethod
    def from_timer(cls, timer: Timer) -> "TimerResponse":
        return cls(
            id=timer.id,
            name=timer.name,
            category=timer.category,
            status=timer.status,
            duration=timer.duration,
            remaining=timer.remaining,
            elapsed=timer.elapsed,
            progress=timer.progress,
            halfway_alert=timer.halfway_alert,
            halfway_threshold=timer.halfway_threshold,
        )


class CategoryResponse(BaseModel):
    category: str
    total: int
    running: int
    paused: int
    completed: int
    timers: list[TimerResponse]


class BulkResultItem(BaseModel):
    timer_id: str
    success: bool
    status: str


# ============================================================
# DEPENDENCIES
# ============================================================


def get_store(request: Request) -> TimerStore:
    return request.app.state.store


def get_categories(request: Request) -> CategoryAggregator:
    return request.app.state.categories


StoreDep = Annotated[TimerStore, Depends(get_store)]
CategoriesDep = Annotated[CategoryAggregator, Depends(get_categories)]


def _get_or_404(store: TimerStore, timer_id: str) -> Timer:
    timer = store.get(timer_id)
    if timer is None:
        raise HTTPException(status_code=404, detail="Timer not found")
    return timer


# ============================================================
# ROUTES
# ============================================================

router = APIRouter()


@router.get("/health")
async def health(request: Request, store: StoreDep):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timers": len(store),
        "running": len(store.list_timers(status=TimerStatus.RUNNING)),
        "scheduler_running": request.app.state.scheduler.running,
    }


@router.post("/timers", response_model=TimerResponse, status_code=201)
async def create_timer(request: TimerCreate, store: StoreDep):
    """Create a new paused timer."""
    try:
        timer = await store.create(request.name, request.duration, request.category)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from None

    if request.halfway_alert:
        await store.set_halfway_alert(timer.id, True)
        timer = store.get(timer.id)

    return TimerResponse.from_timer(timer)


@router.get("/timers", response_model=list[TimerResponse])
async def list_timers(
    store: StoreDep,
    status: TimerStatus | None = Query(None, description="Filter by timer status"),
    category: str | None = Query(None, description="Filter by category"),
):
    """List all timers, optionally filtered by status and category."""
    timers = store.list_timers(status=status, category=category)
    return [TimerResponse.from_timer(t) for t in timers]


@router.get("/timers/history", response_model=list[TimerResponse])
async def timer_history(store: StoreDep):
    """Completed timers."""
    return [TimerResponse.from_timer(t) for t in store.history()]


@router.get("/timers/{timer_id}", response_model=TimerResponse)
async def get_timer(timer_id: str, store: StoreDep):
    return TimerResponse.from_timer(_get_or_404(store, timer_id))


@router.post("/timers/{timer_id}/control", response_model=TimerResponse)
async def control_timer(timer_id: str, request: TimerControl, store: StoreDep):
    """Control a timer (start, pause, reset)."""
    timer = _get_or_404(store, timer_id)

    if request.action == TimerAction.START:
        success = await store.start(timer_id)
    elif request.action == TimerAction.PAUSE:
        success = await store.pause(timer_id)
    else:
        success = await store.reset(timer_id)

    if not success:
        valid = ", ".join(VALID_ACTIONS.get(timer.status, []))
        detail = (
            f"Cannot {request.action} timer in status '{timer.status}'. Valid actions: [{valid}]"
        )
        raise HTTPException(status_code=400, detail=detail)

    return TimerResponse.from_timer(store.get(timer_id))


@router.put("/timers/{timer_id}/halfway-alert", response_model=TimerResponse)
async def set_halfway_alert(timer_id: str, request: HalfwayAlertUpdate, store: StoreDep):
    """Enable or disable the one-shot halfway notification."""
    _get_or_404(store, timer_id)
    await store.set_halfway_alert(timer_id, request.enabled)
    return TimerResponse.from_timer(store.get(timer_id))


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(categories: CategoriesDep):
    """Timers grouped by category, in first-seen order."""
    groups = categories.groups()
    return [
        CategoryResponse(
            **summary,
            timers=[TimerResponse.from_timer(t) for t in groups[summary["category"]]],
        )
        for summary in categories.summary()
    ]


async def _bulk(
    store: TimerStore, categories: CategoryAggregator, category: str, action: TimerAction
) -> list[BulkResultItem]:
    members = store.list_timers(category=category)
    if not members:
        raise HTTPException(status_code=404, detail="Category not found")

    if action == TimerAction.START:
        changed = set(await categories.start_all(category))
        verb = "started"
    else:
        changed = set(await categories.pause_all(category))
        verb = "paused"

    results = []
    for timer in members:
        if timer.id in changed:
            results.append(BulkResultItem(timer_id=timer.id, success=True, status=verb))
        else:
            current = store.get(timer.id)
            results.append(
                BulkResultItem(
                    timer_id=timer.id, success=False, status=f"skipped (status: {current.status})"
                )
            )
    return results


@router.post("/categories/{category}/start", response_model=list[BulkResultItem])
async def start_category(category: str, store: StoreDep, categories: CategoriesDep):
    """Start every non-completed timer in a category."""
    return await _bulk(store, categories, category, TimerAction.START)


@router.post("/categories/{category}/pause", response_model=list[BulkResultItem])
async def pause_category(category: str, store: StoreDep, categories: CategoriesDep):
    """Pause every running timer in a category."""
    return await _bulk(store, categories, category, TimerAction.PAUSE)


# ============================================================
# WEBSOCKET ENDPOINT
# ============================================================


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket connection to receive timer notifications.

    Messages sent:
    - connected: Current timers when connected
    - timer_halfway: A timer crossed its halfway threshold with the alert on
    - timer_completed: A timer finished
    - sync_response: Current timers, on request
    - keepalive: After 30 seconds without client messages
    """
    store: TimerStore = websocket.app.state.store
    broadcaster: BroadcastNotifier = websocket.app.state.broadcaster
    client_id = f"client_{uuid.uuid4().hex[:8]}"

    try:
        accepted = await broadcaster.add_client(client_id, websocket, store.list_timers())
        if not accepted:
            return

        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_json(), timeout=KEEPALIVE_SECONDS)

                if data.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

                elif data.get("type") == "sync":
                    await websocket.send_json(
                        {
                            "type": "sync_response",
                            "timers": [timer_payload(t) for t in store.list_timers()],
                        }
                    )

                else:
                    await websocket.send_json(
                        {
                            "type": "error",
                            "message": f"Unknown message type: {data.get('type')}",
                        }
                    )

            except TimeoutError:
                await websocket.send_json({"type": "keepalive", "timers": len(store)})

    except WebSocketDisconnect:
        broadcaster.remove_client(client_id)
    except Exception:
        logger.warning("WebSocket error for client %s", client_id)
        broadcaster.remove_client(client_id)


# ============================================================
# APP FACTORY
# ============================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.store.open()
    app.state.scheduler.start()
    logger.info("Timer Tracker started")
    yield
    await app.state.scheduler.stop()
    await app.state.store.close()
    logger.info("Timer Tracker stopped")


def create_app(
    gateway: KeyValueStore | None = None,
    sink: NotificationSink | None = None,
    interval: float = TICK_INTERVAL_SECONDS,
) -> FastAPI:
    """Build the host app around one store, one scheduler and one broadcaster."""
    app = FastAPI(
        title="Timer Tracker",
        description="Categorized countdown timers with halfway and completion alerts",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = TimerStore(gateway if gateway is not None else FileKeyValueStore(DEFAULT_DATA_DIR))
    broadcaster = BroadcastNotifier()
    app.state.store = store
    app.state.broadcaster = broadcaster
    app.state.categories = CategoryAggregator(store)
    app.state.scheduler = TickScheduler(
        store, sink if sink is not None else broadcaster, interval=interval
    )
    app.include_router(router)
    return app


app = create_app()


# ============================================================
# MAIN
# ============================================================

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=HOST, port=PORT)
