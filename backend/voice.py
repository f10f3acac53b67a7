"""
Voice-chat signaling relay.

The server never touches audio. It keeps the roster of connections in the
voice channel, announces joins and leaves, and forwards WebRTC offer/answer/ICE
blobs between connection ids without looking inside them.
"""
import logging

logger = logging.getLogger(__name__)


class VoiceRelay:
    def __init__(self, registry, connections, chat):
        self.registry = registry
        self.connections = connections
        self.chat = chat

    async def join(self, conn, data=None):
        session = await self.registry.get(conn.id)
        if session is None or not session.named:
            return
        if not await self.registry.mark_voice(conn.id):
            return
        logger.info('%s joined voice (%s)', session.username, conn.id)
        await self.chat.publish_system(f'**{session.username}** joined Voice Chat.')
        self.connections.broadcast_except(conn.id, 'vc-user-joined', conn.id)

    async def leave(self, conn, data=None):
        session = await self.registry.get(conn.id)
        if session is None or not await self.registry.unmark_voice(conn.id):
            return
        logger.info('%s left voice (%s)', session.username, conn.id)
        await self.chat.publish_system(f'**{session.username}** left Voice Chat.')
        self.connections.broadcast_except(conn.id, 'vc-user-left', conn.id)

    async def dropped(self, connection_id, session):
        """Announce a roster member whose connection went away."""
        logger.info('%s dropped from voice (%s)', session.username, connection_id)
        try:
            await self.chat.publish_system(f'**{session.username}** left Voice Chat (Disconnect).')
        finally:
            # peers must tear down the WebRTC link even if the notice was not stored
            self.connections.broadcast_except(connection_id, 'vc-user-left', connection_id)

    async def signal(self, conn, data):
        if not isinstance(data, dict) or conn.id not in self.connections:
            return
        target = data.get('target')
        if not isinstance(target, str) or not target:
            return
        if not self.connections.send_to(target, 'signal', {'sender': conn.id, 'signal': data.get('signal')}):
            logger.debug('signal from %s to vanished peer %s dropped', conn.id, target)
