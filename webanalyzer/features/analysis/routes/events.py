"""
SSE stream of the completion/failure notification for one analysis.

Clients that cannot hold a pub/sub connection of their own subscribe here
instead. If the analysis is already terminal the stream sends one event and
closes; otherwise it relays the matching message from the notification
channel. Missing an event is harmless: the status endpoint is authoritative.
"""
import asyncio
import json
from typing import AsyncGenerator, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sse_starlette.sse import EventSourceResponse

from webanalyzer.features.analysis.dependencies import get_analysis_service
from webanalyzer.features.analysis.schemas.analysis import AnalysisRecord
from webanalyzer.features.analysis.services.analysis_service import AnalysisService
from webanalyzer.features.analysis.services.notifications import EVENT_NAMES, room_key
from webanalyzer.platform.config import settings
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["analysis"])

STREAM_TIMEOUT = 300
HEARTBEAT_INTERVAL = 30.0


def _terminal_event(record: AnalysisRecord) -> dict:
    return {
        "event": EVENT_NAMES[record.status.value],
        "data": json.dumps({
            "_id": record.id,
            "status": record.status.value,
            "url": record.url,
            "error": record.error_message,
        }),
    }


async def analysis_event_stream(
    record: AnalysisRecord,
    reload: Optional[Callable[[], Awaitable[AnalysisRecord]]] = None,
    redis_client: Optional[Redis] = None,
) -> AsyncGenerator[dict, None]:
    if record.status.is_terminal:
        yield _terminal_event(record)
        return

    owns_client = redis_client is None
    if owns_client:
        redis_client = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    pubsub = redis_client.pubsub()
    room = room_key(record.id)

    try:
        await pubsub.subscribe(settings.NOTIFICATION_CHANNEL)

        # The job may have finished between the first read and the subscribe
        if reload is not None:
            record = await reload()
            if record.status.is_terminal:
                yield _terminal_event(record)
                return

        logger.info(f"SSE: Waiting for {room} on {settings.NOTIFICATION_CHANNEL}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STREAM_TIMEOUT
        while loop.time() < deadline:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=HEARTBEAT_INTERVAL)
            if not message or message["type"] != "message":
                yield {"event": "heartbeat", "data": json.dumps({"timestamp": loop.time()})}
                continue

            event = json.loads(message["data"])
            if event.get("roomId") != room:
                continue

            yield {"event": event["event"], "data": json.dumps(event["payload"])}
            break
        else:
            yield {"event": "timeout", "data": json.dumps({"message": "Connection timeout"})}
    finally:
        await pubsub.unsubscribe(settings.NOTIFICATION_CHANNEL)
        await pubsub.aclose()
        if owns_client:
            await redis_client.aclose()
        logger.info(f"SSE: Closed stream for {room}")


@router.get(
    "/analysis/{analysis_id}/events",
    summary="Stream analysis completion (SSE)",
    description="""
    Server-Sent Events stream that emits `analysisCompleted` or
    `analysisFailed` once for this analysis, then closes.
    `heartbeat` events keep the connection alive while waiting.
    """,
)
async def stream_analysis_events(
    analysis_id: str,
    service: AnalysisService = Depends(get_analysis_service),
):
    record = await service.get_status(analysis_id)
    return EventSourceResponse(
        analysis_event_stream(record, reload=lambda: service.get_status(analysis_id))
    )
