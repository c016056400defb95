"""
Completion/failure notifications for real-time subscribers.

Publishing is fire-and-forget: nothing is persisted, nobody is waited on,
and errors are logged and dropped. Clients that miss an event fall back to
polling the analysis status, which is always authoritative.
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from redis.asyncio import Redis

from webanalyzer.features.analysis.schemas.analysis import NotificationEvent
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)

EVENT_NAMES = {
    "completed": "analysisCompleted",
    "failed": "analysisFailed",
}


def room_key(analysis_id: str) -> str:
    return f"analysis:{analysis_id}"


def build_message(event: NotificationEvent) -> Dict[str, Any]:
    """Wire format on the notification channel."""
    return {
        "roomId": room_key(event.analysis_id),
        "event": EVENT_NAMES[event.event_kind],
        "timestamp": datetime.utcnow().isoformat(),
        "payload": {
            "_id": event.analysis_id,
            "status": event.event_kind,
            **event.payload,
        },
    }


class NotificationPublisher(ABC):

    async def publish(self, analysis_id: str, event_kind: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Never raises."""
        try:
            event = NotificationEvent(analysis_id=analysis_id, event_kind=event_kind, payload=payload or {})
            await self._send(event)
        except Exception as e:
            logger.error(f"[{analysis_id}] Failed to publish '{event_kind}' event: {e}")

    @abstractmethod
    async def _send(self, event: NotificationEvent) -> None: ...

    async def close(self) -> None:
        return None


class NullNotificationPublisher(NotificationPublisher):
    """Used when notifications are disabled; events are dropped."""

    async def _send(self, event: NotificationEvent) -> None:
        logger.debug(f"[{event.analysis_id}] Notifications disabled, dropping '{event.event_kind}' event")


class RecordingNotificationPublisher(NotificationPublisher):
    """Keeps events in memory (single-process development and tests)."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    async def _send(self, event: NotificationEvent) -> None:
        self.events.append(event)


class RedisNotificationPublisher(NotificationPublisher):
    def __init__(self, redis: Redis, channel: str = "analysis-events"):
        self.redis = redis
        self.channel = channel

    @classmethod
    def from_url(cls, url: str, channel: str = "analysis-events") -> "RedisNotificationPublisher":
        return cls(Redis.from_url(url, encoding="utf-8", decode_responses=True), channel=channel)

    async def _send(self, event: NotificationEvent) -> None:
        message = jsonable_encoder(build_message(event))
        receivers = await self.redis.publish(self.channel, json.dumps(message))
        logger.info(
            f"[{event.analysis_id}] Published {message['event']} on {self.channel} ({receivers} receiver(s))"
        )

    async def close(self) -> None:
        await self.redis.aclose()
