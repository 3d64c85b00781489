"""
Transport adapter between game handlers and live connections.

Handlers only know connection ids. The transport maps ids to sockets and
delivers JSON messages; a failed send is logged and skipped so that one
dead socket never aborts a broadcast.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Delivers server messages to connections by id."""

    @abstractmethod
    def register(self, connection_id: str, websocket: WebSocket) -> None:
        ...

    @abstractmethod
    async def send(self, connection_id: str, message: dict) -> bool:
        """Send to one connection. Returns False if it could not be delivered."""

    async def broadcast(self, connection_ids: Iterable[str], message: dict) -> None:
        for connection_id in connection_ids:
            await self.send(connection_id, message)

    @abstractmethod
    def disconnect(self, connection_id: str) -> None:
        ...

    @abstractmethod
    def connection_count(self) -> int:
        ...


class WebSocketTransport(Transport):
    """Transport over FastAPI/Starlette WebSockets."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket

    async def send(self, connection_id: str, message: dict) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning("Send to %s failed: %s", connection_id[:8], e)
            return False

    def disconnect(self, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)

    def connection_count(self) -> int:
        return len(self._sockets)

    async def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> None:
        """Close every registered socket (used at shutdown)."""
        for connection_id, websocket in list(self._sockets.items()):
            try:
                await websocket.close(code=code, reason=reason)
            except Exception as e:
                logger.debug("Close of %s failed: %s", connection_id[:8], e)
        self._sockets.clear()
        logger.info("All WebSocket connections closed")
