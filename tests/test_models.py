import re
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backend.config import Settings
from backend.models import Message, MessageType, User, conversation_key, format_time
from common.framing import decode_event, encode_event


def test_conversation_key_is_order_independent():
    assert conversation_key('bob', 'alice') == 'alice:bob'
    assert conversation_key('alice', 'bob') == 'alice:bob'
    assert conversation_key('zed', 'Zed') == 'Zed:zed'


def test_format_time_is_twelve_hour_clock():
    rendered = format_time(datetime(2024, 5, 1, 15, 4, tzinfo=timezone.utc))
    assert re.fullmatch(r'(0[1-9]|1[0-2]):[0-5]\d (AM|PM)', rendered)


def test_format_time_accepts_naive_utc():
    naive = datetime(2024, 5, 1, 15, 4)
    assert format_time(naive) == format_time(naive.replace(tzinfo=timezone.utc))


def test_private_message_requires_target():
    with pytest.raises(ValidationError):
        Message(text='psst', sender='alice', type=MessageType.PRIVATE)
    with pytest.raises(ValidationError):
        Message(text='psst', sender='alice', type='private', target='')
    m = Message(text='psst', sender='alice', type='private', target='bob')
    assert m.kind is MessageType.PRIVATE


def test_formatted_shape():
    m = Message(text='hi', sender='bob', avatar='b.png')
    out = m.formatted()
    assert set(out) == {'text', 'image', 'sender', 'avatar', 'time', 'type', 'target'}
    assert out['type'] == 'general'
    assert out['sender'] == 'bob'
    assert out['image'] is None


def test_system_message():
    m = Message.system('hello')
    assert m.sender == 'System'
    assert m.to_document()['type'] == 'system'
    assert m.avatar == ''


def test_user_document_uses_client_field_names():
    u = User(username='alice', avatar='a.png', ip='10.0.0.1')
    doc = u.to_document()
    assert doc['isBanned'] is False
    assert doc['isMuted'] is False
    assert 'lastSeen' in doc
    view = u.public_view()
    assert 'ip' not in view
    assert isinstance(view['lastSeen'], str)
    assert User.model_validate(doc).ip == '10.0.0.1'


def test_user_requires_name():
    with pytest.raises(ValidationError):
        User(username='')


def test_event_frames():
    raw = encode_event('chat-message', {'text': 'hi'})
    assert decode_event(raw) == ('chat-message', {'text': 'hi'})
    assert decode_event(encode_event('vc-join')) == ('vc-join', None)


@pytest.mark.parametrize('raw', ['not json', '[1, 2]', '{"data": 1}', '{"event": ""}', None])
def test_malformed_frames(raw):
    assert decode_event(raw) is None


def test_settings_from_env():
    s = Settings.from_env({'PORT': '8080', 'ADMIN_PASSWORD': 'hunter2', 'log_level': 'x'})
    assert s.port == 8080
    assert s.admin_password == 'hunter2'
    assert s.history_limit == 50
    assert s.mongo_url == 'mongodb://localhost:27017'


def test_settings_defaults():
    s = Settings.from_env({})
    assert s.port == 3000
    assert s.admin_password == 'admin123'
    assert s.public_dir == 'public'
