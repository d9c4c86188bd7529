"""Content sync API endpoints.

Hey future me - thin HTTP surface over SyncScheduler for host collaborators.
Nothing here holds state; everything comes from the scheduler on app.state.

Endpoints:
- POST   /sync/schedule       -> schedule_sync() (replaces existing registration)
- DELETE /sync/schedule       -> cancel_sync()
- POST   /sync/now            -> sync_now() (keeps an already pending manual run)
- GET    /sync/status         -> is_sync_scheduled() + state + stats
- GET    /sync/status/stream  -> get_sync_status() as Server-Sent Events
- GET    /sync/notification   -> current SyncNotifier snapshot
- GET    /sync/cache/stats    -> StreamCacheStore.stats()
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from sse_starlette.sse import EventSourceResponse

from streamsync.api.dependencies import get_stream_cache, get_sync_scheduler
from streamsync.api.schemas.sync import (
    CacheStatsResponse,
    JobRegistrationResponse,
    NotificationSnapshotResponse,
    ScheduleSyncRequest,
    SyncNowRequest,
    SyncNowResponse,
    SyncStatusResponse,
)
from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.application.workers.job_status import StatusSubscription
from streamsync.application.workers.sync_scheduler import SyncScheduler
from streamsync.domain.entities import JobIdentity
from streamsync.domain.exceptions import InvalidStateException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Sync"])

# How often the SSE generator wakes up to check for a disconnected client
DISCONNECT_POLL_SECONDS = 5.0


def _registration_response(
    scheduler: SyncScheduler, identity: JobIdentity
) -> JobRegistrationResponse | None:
    reg = scheduler.get_registration(identity)
    if reg is None:
        return None
    return JobRegistrationResponse(identity=identity.value, **reg.to_dict())


@router.post("/schedule", response_model=JobRegistrationResponse)
async def schedule_sync(
    body: ScheduleSyncRequest | None = None,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> JobRegistrationResponse:
    """(Re)schedule the periodic content sync.

    Replaces any existing periodic registration. Retry history is reset.
    """
    body = body or ScheduleSyncRequest()
    await scheduler.schedule_sync(body.to_spec(scheduler.default_spec))
    response = _registration_response(scheduler, JobIdentity.PERIODIC)
    if response is None:
        raise InvalidStateException("Periodic sync was cancelled while it was being scheduled")
    return response


@router.delete("/schedule", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_sync(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> None:
    """Cancel the periodic content sync. Idempotent."""
    await scheduler.cancel_sync()


@router.post("/now", response_model=SyncNowResponse, status_code=status.HTTP_202_ACCEPTED)
async def sync_now(
    body: SyncNowRequest | None = None,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> SyncNowResponse:
    """Request a one-shot manual sync.

    If a manual sync is already pending, its registration is returned instead
    of starting a second one.
    """
    body = body or SyncNowRequest()
    handle = await scheduler.sync_now(wifi_only=body.wifi_only)
    return SyncNowResponse(
        registration_id=handle.registration_id,
        state=handle.state.value,
        run_ids=list(handle.run_ids),
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> SyncStatusResponse:
    """Whether a periodic sync is scheduled, its current state and scheduler stats."""
    stats: dict[str, Any] = scheduler.get_stats()
    return SyncStatusResponse(
        scheduled=scheduler.is_sync_scheduled(),
        state=scheduler.get_state(JobIdentity.PERIODIC).value,
        periodic=_registration_response(scheduler, JobIdentity.PERIODIC),
        adhoc=_registration_response(scheduler, JobIdentity.ADHOC),
        stats=json.loads(json.dumps(stats, default=str)),
    )


async def status_events(
    subscription: StatusSubscription,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval: float = DISCONNECT_POLL_SECONDS,
) -> AsyncGenerator[dict[str, str], None]:
    """Turn a status subscription into SSE events until the client goes away.

    The subscription is always closed on exit so the channel doesn't keep
    pushing into a dead queue.
    """
    try:
        while True:
            if await is_disconnected():
                break
            try:
                state = await subscription.next(timeout=poll_interval)
            except TimeoutError:
                continue
            except StopAsyncIteration:
                break
            yield {"event": "state", "data": json.dumps({"state": state.value})}
    except asyncio.CancelledError:
        logger.debug("Sync status SSE connection cancelled")
        raise
    finally:
        subscription.close()


@router.get("/status/stream")
async def stream_sync_status(
    request: Request,
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> EventSourceResponse:
    """Server-Sent Events stream of periodic job states.

    The first event is the current state, then one event per transition.

    Example JS client:
    ```javascript
    const evtSource = new EventSource('/api/sync/status/stream');
    evtSource.addEventListener('state', (event) => {
        const data = JSON.parse(event.data);
        updateSyncIndicator(data.state);
    });
    ```
    """
    subscription = scheduler.get_sync_status()
    return EventSourceResponse(status_events(subscription, request.is_disconnected))


@router.get("/notification", response_model=NotificationSnapshotResponse)
async def get_notification(
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> NotificationSnapshotResponse:
    """What the sync notification currently shows."""
    return NotificationSnapshotResponse(**scheduler.notifier.snapshot.to_dict())


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(
    cache: StreamCacheStore = Depends(get_stream_cache),
) -> CacheStatsResponse:
    """Stream URL cache statistics."""
    return CacheStatsResponse(**cache.stats().to_dict())
