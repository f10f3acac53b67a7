"""
Per-connection named-event channel on top of FastAPI WebSockets.

Each Connection owns an outbound queue drained by a single writer task, so
frames reach the client in the order they were emitted and a slow client
never blocks the handler that emitted to it.
"""
import asyncio
import logging
import uuid
from typing import Dict, Optional

from fastapi import WebSocket

from common.framing import encode_event

logger = logging.getLogger(__name__)


def client_address(websocket: WebSocket) -> str:
    xff = websocket.headers.get('x-forwarded-for')
    if xff:
        first = xff.split(',')[0].strip()
        if first:
            return first
    return websocket.client.host if websocket.client else ''


class _Close:
    def __init__(self, code):
        self.code = code


class Connection:
    def __init__(self, websocket: WebSocket, client_address: str, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.client_address = client_address
        self.id = connection_id or uuid.uuid4().hex
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    def start(self):
        if self._writer is None:
            self._writer = asyncio.create_task(self._pump())

    def emit(self, event, data=None):
        if self.closed:
            return
        self._outbox.put_nowait(encode_event(event, data))

    def close(self, code=1000):
        """Close after every frame already emitted has been sent."""
        if self.closed:
            return
        self.closed = True
        self._outbox.put_nowait(_Close(code))

    async def _pump(self):
        while True:
            item = await self._outbox.get()
            try:
                if isinstance(item, _Close):
                    await self.websocket.close(code=item.code)
                    return
                await self.websocket.send_text(item)
            except Exception as e:
                # peer went away mid-send; the receive loop will notice and detach
                logger.debug('send to %s failed: %s', self.id, e)
                self.closed = True
                return

    async def shutdown(self):
        """Stop the writer; used once the peer has disconnected."""
        self.closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass


class ConnectionManager:
    """Live connections by id. Methods never await, so they are atomic on the loop."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def add(self, conn):
        self._connections[conn.id] = conn

    def remove(self, connection_id):
        return self._connections.pop(connection_id, None)

    def get(self, connection_id):
        return self._connections.get(connection_id)

    def __contains__(self, connection_id):
        return connection_id in self._connections

    def __len__(self):
        return len(self._connections)

    def send_to(self, connection_id, event, data=None) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        conn.emit(event, data)
        return True

    def broadcast(self, event, data=None):
        for conn in list(self._connections.values()):
            conn.emit(event, data)

    def broadcast_except(self, connection_id, event, data=None):
        for cid, conn in list(self._connections.items()):
            if cid != connection_id:
                conn.emit(event, data)

    def close(self, connection_id, code=1000) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        conn.close(code)
        return True
