"""Chat message validation, persistence and fan-out."""
import asyncio
import logging

from pydantic import ValidationError

from .models import Message, MessageType

logger = logging.getLogger(__name__)

BROADCAST = 'broadcast'
DIRECT = 'direct'


def resolve_route(message_type, target):
    """Pick the delivery route from the message tag and target alone."""
    if MessageType(message_type) is MessageType.PRIVATE and target:
        return DIRECT, target
    return BROADCAST, None


def send_system(connections, connection_id, text):
    """Unpersisted system message to a single connection."""
    return connections.send_to(connection_id, 'chat-message', Message.system(text).formatted())


def _message_type(raw, target):
    if raw == MessageType.PRIVATE.value and target:
        return MessageType.PRIVATE
    # clients may not forge system messages; untargeted private falls back too
    return MessageType.GENERAL


class ChatPipeline:
    def __init__(self, store, registry, connections, moderation):
        self.store = store
        self.registry = registry
        self.connections = connections
        self.moderation = moderation
        # insert + fan-out are serialized so receivers see insertion order
        self.publish_lock = asyncio.Lock()

    def reply(self, connection_id, text):
        send_system(self.connections, connection_id, text)

    async def publish(self, message: Message, sender_id=None) -> Message:
        async with self.publish_lock:
            saved = await self.store.insert_message(message)
            payload = saved.formatted()
            route, target = resolve_route(saved.type, saved.target)
            if route == DIRECT:
                recipients = [sender_id] if sender_id else []
                for cid in await self.registry.lookup_by_username(target):
                    if cid not in recipients:
                        recipients.append(cid)
                for cid in recipients:
                    self.connections.send_to(cid, 'chat-message', payload)
            else:
                self.connections.broadcast('chat-message', payload)
            return saved

    async def publish_system(self, text):
        return await self.publish(Message.system(text))

    async def handle_message(self, conn, data):
        session = await self.registry.get(conn.id)
        if session is None or not session.named:
            logger.debug('chat-message from unnamed connection %s dropped', conn.id)
            return
        if not isinstance(data, dict):
            return

        text = data.get('text')
        image = data.get('image')
        if text is not None and not isinstance(text, str):
            return
        if image is not None and not isinstance(image, str):
            return

        if text and text.startswith('/'):
            if await self.moderation.handle_command(conn, session, text):
                return

        if not text and not image:
            return
        if session.is_muted:
            self.reply(conn.id, 'You are muted.')
            return

        target = data.get('target') if isinstance(data.get('target'), str) else None
        target = target.strip() if target else None
        mtype = _message_type(data.get('type'), target)
        avatar = data.get('avatar')
        try:
            message = Message(
                text=text,
                image=image,
                sender=session.username,
                avatar=avatar if isinstance(avatar, str) else session.avatar,
                type=mtype,
                target=target if mtype is MessageType.PRIVATE else None,
            )
        except ValidationError as e:
            logger.debug('invalid chat-message from %s: %s', session.username, e)
            return
        await self.publish(message, sender_id=conn.id)
