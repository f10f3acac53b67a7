# MongoDB record models. Documents are stored with the camelCase field names
# the browser client already uses (lastSeen, isBanned, ...).
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

SYSTEM_SENDER = 'System'


def utcnow():
    return datetime.now(timezone.utc)


def format_time(ts: datetime) -> str:
    """Render as en-US 12-hour clock in server-local time, e.g. '02:05 PM'."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone().strftime('%I:%M %p')


def conversation_key(a: str, b: str) -> str:
    return ':'.join(sorted([a, b]))


class MessageType(str, Enum):
    GENERAL = 'general'
    PRIVATE = 'private'
    SYSTEM = 'system'


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1)
    avatar: str = ''
    last_seen: datetime = Field(default_factory=utcnow, alias='lastSeen')
    is_muted: bool = Field(False, alias='isMuted')
    is_banned: bool = Field(False, alias='isBanned')
    ip: str = ''

    def to_document(self):
        return self.model_dump(by_alias=True)

    def public_view(self):
        # never hand client addresses to other clients
        return self.model_dump(mode='json', by_alias=True, exclude={'ip'})


class Message(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    text: Optional[str] = None
    image: Optional[str] = None
    sender: str
    avatar: str = ''
    type: MessageType = MessageType.GENERAL
    target: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def _private_has_target(self):
        if MessageType(self.type) is MessageType.PRIVATE and not self.target:
            raise ValueError('private message requires a target')
        return self

    @classmethod
    def system(cls, text):
        return cls(text=text, sender=SYSTEM_SENDER, type=MessageType.SYSTEM)

    @property
    def kind(self) -> MessageType:
        return MessageType(self.type)

    def to_document(self):
        doc = self.model_dump()
        doc['type'] = self.kind.value
        return doc

    def formatted(self):
        return {
            'text': self.text,
            'image': self.image,
            'sender': self.sender,
            'avatar': self.avatar,
            'time': format_time(self.timestamp),
            'type': self.kind.value,
            'target': self.target,
        }
