"""Username claim, history replay and online/offline presence."""
import logging

from pymongo.errors import DuplicateKeyError

from .chat import send_system
from .models import User, conversation_key, utcnow

logger = logging.getLogger(__name__)


def group_conversations(username, messages):
    """Group private messages by conversation key, keeping each group's order."""
    groups = {}
    for m in messages:
        other = m.target if m.sender == username else m.sender
        groups.setdefault(conversation_key(username, other), []).append(m.formatted())
    return groups


class PresenceSync:
    def __init__(self, store, registry, connections, settings, publish_lock):
        self.store = store
        self.registry = registry
        self.connections = connections
        self.settings = settings
        self.publish_lock = publish_lock

    async def claim(self, conn, data):
        if isinstance(data, dict):
            username, avatar = data.get('username'), data.get('avatar')
        else:
            username, avatar = data, ''
        if not isinstance(username, str) or not username.strip():
            logger.debug('empty username from %s, closing', conn.id)
            self.connections.close(conn.id)
            return
        username = username.strip()
        avatar = avatar if isinstance(avatar, str) else ''

        session = await self.registry.get(conn.id)
        if session is None:
            return

        user = await self.store.find_user(username)
        if user is not None and user.is_banned:
            logger.info('banned user %s refused (%s)', username, session.client_address)
            send_system(self.connections, conn.id, 'You are banned.')
            self.connections.close(conn.id)
            return
        if user is not None:
            await self.store.update_user(username, {
                'avatar': avatar, 'lastSeen': utcnow(), 'ip': session.client_address,
            })
        else:
            user = User(username=username, avatar=avatar, ip=session.client_address)
            try:
                await self.store.insert_user(user)
            except DuplicateKeyError:
                await self.store.update_user(username, {
                    'avatar': avatar, 'lastSeen': utcnow(), 'ip': session.client_address,
                })

        # no message can be published between the history read and live delivery
        async with self.publish_lock:
            if await self.registry.claim(conn.id, username, avatar, is_muted=user.is_muted) is None:
                # disconnected while we were talking to the database
                return
            logger.info('%s claimed by %s (%s)', username, conn.id, session.client_address)

            history = await self.store.recent_public(self.settings.history_limit)
            self.connections.send_to(conn.id, 'history', [m.formatted() for m in history])
            private = await self.store.private_history(username)
            self.connections.send_to(conn.id, 'dm-history-sync', group_conversations(username, private))

        await self.broadcast_user_list()
        self.connections.broadcast('status-update', {'username': username, 'status': 'online'})

    async def broadcast_user_list(self):
        users = await self.store.list_users()
        self.connections.broadcast('user-list-update', [u.public_view() for u in users])

    async def went_offline(self, session):
        await self.store.update_user(session.username, {'lastSeen': utcnow()})
