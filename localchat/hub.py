"""Live connections, room groups and event fan-out."""
from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Union

from fastapi import WebSocket

from .constants import OUTBOUND_QUEUE_SIZE
from .logging_config import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Addressing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Unicast:
    connection_id: str


@dataclass(frozen=True)
class ToRoom:
    room_id: int
    exclude: Optional[str] = None


@dataclass(frozen=True)
class Everyone:
    pass


Target = Union[Unicast, ToRoom, Everyone]


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

class Connection(ABC):
    """One client transport. Subclasses decide how frames reach the wire."""

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or uuid.uuid4().hex
        self.closed = False

    @abstractmethod
    def send(self, event: str, data: Any = None) -> None:
        """Queue one frame. Must not block or raise once the peer is gone."""

    async def close(self, code: int = 1000) -> None:
        self.closed = True


class WebSocketConnection(Connection):
    """Queues outgoing frames and writes them from a dedicated task.

    ``send`` never awaits, so a slow client cannot stall the handler that
    emitted the event, and frames reach each client in emit order.
    """

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: Optional[str] = None,
        queue_size: int = OUTBOUND_QUEUE_SIZE,
    ):
        super().__init__(connection_id)
        self.websocket = websocket
        self._queue: "asyncio.Queue[Optional[dict]]" = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"ws-writer-{self.id}")

    def send(self, event: str, data: Any = None) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait({"type": event, "data": data})
        except asyncio.QueueFull:
            # The peer stopped reading. Stop writing to it; the receive loop
            # still runs the disconnect when the socket goes away.
            logger.warning("Outgoing queue full for %s; dropping connection", self.id)
            self.closed = True
            if self._writer is not None:
                self._writer.cancel()

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            try:
                await self.websocket.send_json(frame)
            except Exception as exc:
                # Peer went away; the receive loop will run the disconnect.
                logger.debug("Dropping frames for %s: %s", self.id, exc)
                self.closed = True
                return

    async def close(self, code: int = 1000) -> None:
        if self._writer is not None:
            try:
                self._queue.put_nowait(None)
            except asyncio.QueueFull:
                self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        await super().close(code)


# ---------------------------------------------------------------------------
# Hub
# ---------------------------------------------------------------------------

class Hub:
    """Registry of open connections and the room groups they subscribe to."""

    def __init__(self) -> None:
        self.connections: Dict[str, Connection] = {}
        self.groups: Dict[int, Set[str]] = {}

    def register(self, connection: Connection) -> None:
        self.connections[connection.id] = connection

    def unregister(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)
        for room_id in list(self.groups):
            self.unsubscribe(connection_id, room_id)

    def is_open(self, connection_id: str) -> bool:
        conn = self.connections.get(connection_id)
        return conn is not None and not conn.closed

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def subscribe(self, connection_id: str, room_id: int) -> None:
        self.groups.setdefault(room_id, set()).add(connection_id)

    def unsubscribe(self, connection_id: str, room_id: int) -> None:
        members = self.groups.get(room_id)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            self.groups.pop(room_id, None)

    def members(self, room_id: int) -> Set[str]:
        return set(self.groups.get(room_id, ()))

    def resolve(self, target: Target) -> List[Connection]:
        if isinstance(target, Unicast):
            ids: List[str] = [target.connection_id]
        elif isinstance(target, ToRoom):
            ids = [cid for cid in self.groups.get(target.room_id, ()) if cid != target.exclude]
        elif isinstance(target, Everyone):
            ids = list(self.connections)
        else:
            raise TypeError(f"Unknown fan-out target {target!r}")
        return [self.connections[cid] for cid in ids if cid in self.connections]

    def emit(self, target: Target, event: str, data: Any = None) -> int:
        """Fire-and-forget *event* to every connection addressed by *target*."""
        recipients = self.resolve(target)
        for conn in recipients:
            conn.send(event, data)
        logger.debug("Emitted %s to %d connection(s) via %s", event, len(recipients), target)
        return len(recipients)


__all__ = [
    "Unicast",
    "ToRoom",
    "Everyone",
    "Target",
    "Connection",
    "WebSocketConnection",
    "Hub",
]
