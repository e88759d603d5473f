"""Notification sinks for halfway and completion events."""

import logging
from typing import Any, Protocol

from .models import EventKind, Timer, TimerEvent

logger = logging.getLogger(__name__)

MAX_CLIENTS = 100


class NotificationSink(Protocol):
    async def notify_halfway(self, timer: Timer) -> None: ...

    async def notify_completion(self, timer: Timer) -> None: ...


class ClientSocket(Protocol):
    """The slice of a WebSocket connection the broadcaster talks to."""

    async def accept(self) -> None: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class LoggingNotifier:
    """Writes every notification to the log."""

    async def notify_halfway(self, timer: Timer) -> None:
        logger.info(TimerEvent(kind=EventKind.HALFWAY, timer=timer).message)

    async def notify_completion(self, timer: Timer) -> None:
        logger.info(TimerEvent(kind=EventKind.COMPLETED, timer=timer).message)


def timer_payload(timer: Timer) -> dict:
    data = timer.model_dump(mode="json")
    data["progress"] = timer.progress
    return data


class BroadcastNotifier:
    """Pushes notifications to every connected WebSocket client."""

    def __init__(self, max_clients: int = MAX_CLIENTS):
        self.max_clients = max_clients
        self.clients: dict[str, ClientSocket] = {}

    async def add_client(self, client_id: str, websocket: ClientSocket, snapshot: list[Timer]):
        """Accept a client connection and send it the current timers."""
        if len(self.clients) >= self.max_clients:
            await websocket.close(code=4029, reason="Too many connections")
            return False

        await websocket.accept()
        self.clients[client_id] = websocket

        await self._send_to_client(
            client_id, {"type": "connected", "timers": [timer_payload(t) for t in snapshot]}
        )
        return True

    def remove_client(self, client_id: str):
        if client_id in self.clients:
            del self.clients[client_id]

    async def broadcast(self, message: dict):
        """Send message to all connected clients."""
        disconnected = []

        # Clients may come and go while a send is suspended
        for client_id, ws in list(self.clients.items()):
            try:
                await ws.send_json(message)
            except Exception:
                disconnected.append(client_id)

        for client_id in disconnected:
            logger.debug("Dropping unreachable client %s", client_id)
            self.remove_client(client_id)

    async def _send_to_client(self, client_id: str, message: dict):
        if client_id in self.clients:
            try:
                await self.clients[client_id].send_json(message)
            except Exception:
                self.remove_client(client_id)

    async def notify_halfway(self, timer: Timer) -> None:
        await self._publish(TimerEvent(kind=EventKind.HALFWAY, timer=timer))

    async def notify_completion(self, timer: Timer) -> None:
        await self._publish(TimerEvent(kind=EventKind.COMPLETED, timer=timer))

    async def _publish(self, event: TimerEvent):
        logger.info(event.message)
        await self.broadcast(
            {
                "type": f"timer_{event.kind}",
                "message": event.message,
                "timer": timer_payload(event.timer),
            }
        )
