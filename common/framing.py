"""
Shared framing helpers for named-event JSON frames.
Format: one WebSocket text frame per event, a UTF-8 JSON object
{"event": <name>, "data": <payload>}.
"""
import json


def encode_event(event, data=None):
    return json.dumps({'event': event, 'data': data}, separators=(',', ':'))


def decode_event(raw):
    """Return (event, data) or None when the frame is malformed."""
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(obj, dict):
        return None
    event = obj.get('event')
    if not isinstance(event, str) or not event:
        return None
    return event, obj.get('data')
