"""
In-memory session registry.

One SessionRegistry per process owns every session entry, the voice roster and
the admin set. All mutations go through its lock, and nothing awaits while the
lock is held, so lookups from other handlers never see a half-applied change.
Operations on a connection id that has no session are no-ops.
"""
import asyncio
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Set


@dataclass
class Session:
    connection_id: str
    client_address: str
    username: str = ''
    avatar: str = ''
    is_admin: bool = False
    in_voice: bool = False
    is_muted: bool = False

    @property
    def named(self):
        return bool(self.username)


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._voice: Set[str] = set()
        self._admins: Set[str] = set()
        self.lock = asyncio.Lock()

    async def attach(self, connection_id: str, client_address: str) -> Session:
        async with self.lock:
            session = Session(connection_id, client_address)
            self._sessions[connection_id] = session
            return replace(session)

    async def claim(self, connection_id, username, avatar='', is_muted=False) -> Optional[Session]:
        async with self.lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return None
            session.username = username
            session.avatar = avatar
            session.is_muted = is_muted
            return replace(session)

    async def get(self, connection_id) -> Optional[Session]:
        async with self.lock:
            session = self._sessions.get(connection_id)
            return replace(session) if session else None

    async def lookup_by_username(self, username) -> List[str]:
        async with self.lock:
            return [cid for cid, s in self._sessions.items() if s.username == username]

    async def online_usernames(self) -> List[str]:
        async with self.lock:
            return sorted({s.username for s in self._sessions.values() if s.username})

    async def mark_voice(self, connection_id) -> bool:
        """Add a named session to the voice roster. False if absent, unnamed or already in."""
        async with self.lock:
            session = self._sessions.get(connection_id)
            if session is None or not session.named or connection_id in self._voice:
                return False
            self._voice.add(connection_id)
            session.in_voice = True
            return True

    async def unmark_voice(self, connection_id) -> bool:
        async with self.lock:
            if connection_id not in self._voice:
                return False
            self._voice.discard(connection_id)
            session = self._sessions.get(connection_id)
            if session is not None:
                session.in_voice = False
            return True

    async def voice_members(self) -> List[str]:
        async with self.lock:
            return sorted(self._voice)

    async def elevate(self, connection_id) -> bool:
        async with self.lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return False
            session.is_admin = True
            self._admins.add(connection_id)
            return True

    async def is_admin(self, connection_id) -> bool:
        async with self.lock:
            return connection_id in self._admins

    async def set_muted(self, username, muted) -> List[str]:
        async with self.lock:
            ids = []
            for cid, session in self._sessions.items():
                if session.username == username:
                    session.is_muted = muted
                    ids.append(cid)
            return ids

    async def detach(self, connection_id) -> Optional[Session]:
        """Remove the session with its roster and admin membership; return its last state."""
        async with self.lock:
            session = self._sessions.pop(connection_id, None)
            self._voice.discard(connection_id)
            self._admins.discard(connection_id)
            return session

    def __len__(self):
        return len(self._sessions)
