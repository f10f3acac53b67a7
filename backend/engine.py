"""
ChatServer wires the registry, transport and the event handlers together.

The WebSocket endpoint calls `accepts` before accepting a socket, `connect`
once it is open, `dispatch` for every inbound frame (one at a time per
connection) and `disconnect` exactly once when the socket goes away.
"""
import logging

from pymongo.errors import PyMongoError

from .chat import ChatPipeline
from .moderation import Moderation
from .presence import PresenceSync
from .registry import SessionRegistry
from .transport import ConnectionManager
from .voice import VoiceRelay

logger = logging.getLogger(__name__)


class ChatServer:
    def __init__(self, store, settings):
        self.store = store
        self.settings = settings
        self.registry = SessionRegistry()
        self.connections = ConnectionManager()
        self.moderation = Moderation(store, self.registry, self.connections, settings)
        self.chat = ChatPipeline(store, self.registry, self.connections, self.moderation)
        self.voice = VoiceRelay(self.registry, self.connections, self.chat)
        self.presence = PresenceSync(
            store, self.registry, self.connections, settings, self.chat.publish_lock,
        )
        self.handlers = {
            'set-username': self.presence.claim,
            'chat-message': self.chat.handle_message,
            'vc-join': self.voice.join,
            'vc-leave': self.voice.leave,
            'signal': self.voice.signal,
        }

    async def accepts(self, client_address) -> bool:
        """False when the address belongs to a banned user."""
        if await self.moderation.is_banned_address(client_address):
            logger.info('refused connection from banned address %s', client_address)
            return False
        return True

    async def connect(self, conn):
        self.connections.add(conn)
        await self.registry.attach(conn.id, conn.client_address)
        logger.info('connection %s from %s', conn.id, conn.client_address)

    async def dispatch(self, conn, event, data=None):
        handler = self.handlers.get(event)
        if handler is None:
            logger.debug('unknown event %r from %s dropped', event, conn.id)
            return
        try:
            await handler(conn, data)
        except PyMongoError:
            logger.exception('database error handling %s from %s; event dropped', event, conn.id)

    async def disconnect(self, conn):
        self.connections.remove(conn.id)
        session = await self.registry.detach(conn.id)
        logger.info('connection %s closed', conn.id)
        if session is None or not session.named:
            return
        if session.in_voice:
            try:
                await self.voice.dropped(conn.id, session)
            except PyMongoError:
                logger.exception('database error announcing %s leaving voice', session.username)
        try:
            await self.presence.went_offline(session)
        except PyMongoError:
            logger.exception('database error updating lastSeen for %s', session.username)
        # other tabs of the same user keep them online
        if not await self.registry.lookup_by_username(session.username):
            self.connections.broadcast('status-update', {'username': session.username, 'status': 'offline'})

    async def online_usernames(self):
        return await self.registry.online_usernames()
