"""
Shared fixtures: an in-memory stand-in for the Motor collections the store
uses, and a connection double that records every event emitted to it.
"""
import copy
import itertools

import pytest
from pymongo.errors import DuplicateKeyError

from backend.config import Settings
from backend.engine import ChatServer
from backend.store import Store


def _matches(doc, query):
    for key, expected in query.items():
        if key == '$or':
            if not any(_matches(doc, sub) for sub in expected):
                return False
        elif isinstance(expected, dict) and '$in' in expected:
            if doc.get(key) not in expected['$in']:
                return False
        elif doc.get(key) != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._limit = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction)]
        for key, d in reversed(keys):
            self._docs.sort(key=lambda doc: doc.get(key), reverse=d < 0)
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[:self._limit] if self._limit else self._docs
        return docs[:length] if length else docs


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.unique = set()
        self._ids = itertools.count(1)

    async def create_index(self, keys, unique=False):
        if unique and isinstance(keys, str):
            self.unique.add(keys)
        return keys

    async def insert_one(self, doc):
        for field in self.unique:
            if any(d.get(field) == doc.get(field) for d in self.docs):
                raise DuplicateKeyError(f'duplicate {field}')
        stored = copy.deepcopy(doc)
        stored['_id'] = next(self._ids)
        self.docs.append(stored)

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update['$set']))
                return

    def find(self, query=None, projection=None):
        docs = [copy.deepcopy(d) for d in self.docs if _matches(d, query or {})]
        if projection and projection.get('_id') == 0:
            for d in docs:
                d.pop('_id', None)
        return FakeCursor(docs)


class FakeDatabase:
    name = 'chatchat-test'

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    async def command(self, name):
        return {'ok': 1}


class FakeConnection:
    def __init__(self, connection_id, client_address='127.0.0.1'):
        self.id = connection_id
        self.client_address = client_address
        self.events = []
        self.closed = False
        self.close_code = None

    def emit(self, event, data=None):
        if not self.closed:
            self.events.append((event, data))

    def close(self, code=1000):
        if not self.closed:
            self.closed = True
            self.close_code = code

    def of(self, event):
        return [data for name, data in self.events if name == event]

    def texts(self):
        return [m['text'] for m in self.of('chat-message')]

    def clear(self):
        self.events.clear()


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def store(db):
    return Store(db)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def server(store, settings):
    return ChatServer(store, settings)


@pytest.fixture
def connect(server):
    """Open a fake connection, optionally claiming a username."""
    async def _connect(connection_id, username=None, address='127.0.0.1', avatar=''):
        conn = FakeConnection(connection_id, address)
        await server.connect(conn)
        if username is not None:
            await server.dispatch(conn, 'set-username', {'username': username, 'avatar': avatar})
        return conn
    return _connect
