"""Live job and work log feeds over WebSocket.

Each frame is either a full snapshot (``{"type": "snapshot", "items": [...],
"changes": [...]}``) or an error (``{"type": "error", "detail": ...}``). An
error frame ends the feed but leaves the socket open; the client decides
whether to reconnect. Closing the socket releases the subscription.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Callable, Literal, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, WebSocketException, status
from fastapi.encoders import jsonable_encoder

from crewdesk.api.deps import get_clock, get_job_repository, get_reconciler
from crewdesk.api.v1.jobs import build_job_filter
from crewdesk.api.v1.worklogs import build_worklog_filter
from crewdesk.core.dates import Clock
from crewdesk.core.errors import CrewDeskError
from crewdesk.core.security import get_ws_user
from crewdesk.db.store import Snapshot, Subscription
from crewdesk.services.jobs import JobRepository
from crewdesk.services.worklogs import WorkLogReconciler


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["streams"])

RangePreset = Literal["today", "week", "month", "custom"]


def snapshot_frame(snapshot: Snapshot) -> dict:
    return {
        "type": "snapshot",
        "items": jsonable_encoder(snapshot.items),
        "changes": [{"type": c.type, "id": c.id} for c in snapshot.changes],
    }


async def relay(websocket: WebSocket, subscribe: Callable[..., Subscription]) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Store callbacks may fire from another thread's loop
    def on_snapshot(snapshot: Snapshot) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, snapshot_frame(snapshot))

    def on_error(exc: Exception) -> None:
        detail = exc.detail if isinstance(exc, CrewDeskError) else str(exc)
        loop.call_soon_threadsafe(queue.put_nowait, {"type": "error", "detail": detail})

    subscription = subscribe(on_snapshot, on_error)

    async def _send() -> None:
        while True:
            await websocket.send_json(await queue.get())

    sender = asyncio.create_task(_send())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        subscription.cancel()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender


@router.websocket("/jobs")
async def stream_jobs(
    websocket: WebSocket,
    range_: Optional[RangePreset] = Query(None, alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    status_: Optional[str] = Query(None, alias="status"),
    client_id: Optional[str] = Query(None),
    worker_id: Optional[list[str]] = Query(None),
    repo: JobRepository = Depends(get_job_repository),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_ws_user),
):
    try:
        flt = build_job_filter(current_user, clock, range_, start, end, status_, client_id, worker_id)
    except CrewDeskError as exc:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=exc.detail) from exc
    await websocket.accept()
    logger.info("Job feed opened for user %s", current_user["id"])
    await relay(websocket, lambda on_snapshot, on_error: repo.subscribe_jobs(flt, on_snapshot, on_error))


@router.websocket("/worklogs")
async def stream_work_logs(
    websocket: WebSocket,
    range_: RangePreset = Query("month", alias="range"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    user_id: Optional[str] = Query(None),
    job_id: Optional[str] = Query(None),
    reconciler: WorkLogReconciler = Depends(get_reconciler),
    clock: Clock = Depends(get_clock),
    current_user=Depends(get_ws_user),
):
    try:
        flt = build_worklog_filter(current_user, clock, range_, start, end, user_id, job_id)
    except CrewDeskError as exc:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=exc.detail) from exc
    await websocket.accept()
    await relay(websocket, lambda on_snapshot, on_error: reconciler.subscribe_work_logs(flt, on_snapshot, on_error))
