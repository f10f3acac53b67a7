"""MongoDB persistence for the `users` and `messages` collections (Motor, async)."""
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from .models import Message, MessageType, User, utcnow


class Store:
    def __init__(self, db):
        self.db = db
        self.users = db['users']
        self.messages = db['messages']

    async def ensure_indexes(self):
        await self.users.create_index('username', unique=True)
        await self.users.create_index([('isBanned', ASCENDING), ('ip', ASCENDING)])
        await self.messages.create_index([('type', ASCENDING), ('timestamp', DESCENDING)])

    async def ping(self):
        await self.db.command('ping')

    # -- users --

    async def find_user(self, username: str) -> Optional[User]:
        doc = await self.users.find_one({'username': username})
        return User.model_validate(doc) if doc else None

    async def find_banned_by_ip(self, ip: str) -> Optional[User]:
        if not ip:
            return None
        doc = await self.users.find_one({'isBanned': True, 'ip': ip})
        return User.model_validate(doc) if doc else None

    async def insert_user(self, user: User) -> User:
        # DuplicateKeyError propagates when a concurrent claim won the race
        await self.users.insert_one(user.to_document())
        return user

    async def update_user(self, username: str, changes: dict):
        await self.users.update_one({'username': username}, {'$set': changes})

    async def list_users(self) -> List[User]:
        cursor = self.users.find({}, {'_id': 0}).sort('lastSeen', DESCENDING)
        return [User.model_validate(doc) for doc in await cursor.to_list(length=None)]

    # -- messages --

    async def insert_message(self, message: Message) -> Message:
        message = message.model_copy(update={'timestamp': utcnow()})
        await self.messages.insert_one(message.to_document())
        return message

    async def recent_public(self, limit: int) -> List[Message]:
        """Last `limit` general/system messages, oldest first."""
        cursor = self.messages.find(
            {'type': {'$in': [MessageType.GENERAL.value, MessageType.SYSTEM.value]}}
        ).sort([('timestamp', DESCENDING), ('_id', DESCENDING)]).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [Message.model_validate(doc) for doc in reversed(docs)]

    async def private_history(self, username: str) -> List[Message]:
        cursor = self.messages.find({
            'type': MessageType.PRIVATE.value,
            '$or': [{'sender': username}, {'target': username}],
        }).sort([('timestamp', ASCENDING), ('_id', ASCENDING)])
        return [Message.model_validate(doc) for doc in await cursor.to_list(length=None)]
