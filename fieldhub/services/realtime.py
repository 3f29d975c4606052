import asyncio
from datetime import date
from typing import Any, Dict, Set

import structlog
from fastapi import WebSocket


log = structlog.get_logger(__name__)


def feed_channel(company_id: str, day: date) -> str:
    return f"daily:{company_id}:{day.isoformat()}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class RealtimeHub:
    """Fan-out of change events to websocket subscribers, keyed by channel."""

    def __init__(self) -> None:
        # channel -> set of WebSocket connections
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, channel: str, ws: WebSocket) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(ws)

    async def unsubscribe(self, channel: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._channels.get(channel)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._channels.pop(channel, None)

    async def publish(self, channel: str, event: str, payload: Any) -> int:
        data = {"event": event, "channel": channel, "data": payload}
        async with self._lock:
            targets = list(self._channels.get(channel, set()))
        delivered = 0
        for ws in targets:
            try:
                await ws.send_json(data)
                delivered += 1
            except Exception as e:
                # Subscriber went away; drop it so later publishes skip it
                log.info("realtime_send_failed", channel=channel, error=str(e))
                await self.unsubscribe(channel, ws)
        return delivered

    async def send_to_user(self, user_id: str, event: str, payload: Any) -> int:
        return await self.publish(user_channel(user_id), event, payload)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))


# Global singleton hub
hub = RealtimeHub()
