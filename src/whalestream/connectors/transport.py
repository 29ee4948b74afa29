"""
WebSocket transport seam.

The supervisor owns the reconnect state machine; a Transport only opens one
socket, moves frames and closes it. Tests substitute a scripted transport.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp
import orjson

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Transport failure (refused, handshake error, send on a closed socket)."""


class MessageKind(str, Enum):
    """Kinds of inbound messages a transport surfaces."""

    TEXT = "TEXT"
    PING = "PING"
    PONG = "PONG"
    CLOSED = "CLOSED"
    ERROR = "ERROR"


@dataclass
class TransportMessage:
    """One inbound message."""

    kind: MessageKind
    data: str | bytes | None = None
    close_code: int | None = None
    error: str | None = None


class Transport(ABC):
    """One WebSocket connection. Not reusable after close()."""

    @abstractmethod
    async def connect(self, address: str) -> None:
        """Open the socket. Raises on refusal or handshake failure."""
        ...

    @abstractmethod
    async def send_json(self, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...

    @abstractmethod
    async def receive(self) -> TransportMessage:
        """Wait for the next inbound message."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000) -> None:
        """Close the socket (idempotent)."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...


TransportFactory = Callable[[], Transport]


class AiohttpTransport(Transport):
    """
    aiohttp WebSocket client transport.

    Auto-ping is disabled so that pongs and server pings reach the supervisor as
    liveness signals; server pings are answered here.
    """

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    async def connect(self, address: str) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        try:
            self._ws = await self._session.ws_connect(address, autoping=False)
        except aiohttp.ClientError as e:
            await self._close_session()
            raise TransportError(f"connect failed: {e}") from e

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError("send on closed socket")
        await self._ws.send_str(orjson.dumps(payload).decode())

    async def ping(self) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError("ping on closed socket")
        await self._ws.ping()

    async def receive(self) -> TransportMessage:
        if self._ws is None:
            return TransportMessage(kind=MessageKind.CLOSED)

        msg = await self._ws.receive()

        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            return TransportMessage(kind=MessageKind.TEXT, data=msg.data)

        if msg.type == aiohttp.WSMsgType.PING:
            await self._ws.pong(msg.data)
            return TransportMessage(kind=MessageKind.PING)

        if msg.type == aiohttp.WSMsgType.PONG:
            return TransportMessage(kind=MessageKind.PONG)

        if msg.type == aiohttp.WSMsgType.ERROR:
            return TransportMessage(kind=MessageKind.ERROR, error=str(self._ws.exception()))

        # CLOSE, CLOSING, CLOSED
        return TransportMessage(kind=MessageKind.CLOSED, close_code=self._ws.close_code)

    async def close(self, code: int = 1000) -> None:
        if self._ws is not None and not self._ws.closed:
            try:
                await self._ws.close(code=code)
            except (aiohttp.ClientError, OSError) as e:
                logger.debug("Error closing WebSocket", extra={"error": str(e)})
        await self._close_session()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed
