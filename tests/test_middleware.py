import asyncio
import json

from relaychat.middleware import BodyLimitMiddleware


def _run(chunks, limit=10, headers=()):
    pending = [
        {"type": "http.request", "body": chunk, "more_body": i < len(chunks) - 1}
        for i, chunk in enumerate(chunks)
    ]
    sent = []
    seen_by_app = []

    async def receive():
        return pending.pop(0)

    async def send(message):
        sent.append(message)

    async def app(scope, receive, send):
        message = await receive()
        seen_by_app.append(message["body"])

    scope = {"type": "http", "method": "POST", "path": "/chat", "headers": list(headers)}
    asyncio.run(BodyLimitMiddleware(app, max_body_bytes=limit)(scope, receive, send))
    return sent, seen_by_app, pending


def test_small_body_is_buffered_into_one_message():
    sent, seen, pending = _run([b"abc", b"def"])
    assert seen == [b"abcdef"]
    assert sent == []
    assert pending == []


def test_oversized_body_is_rejected_midstream():
    sent, seen, pending = _run([b"12345", b"678901", b"later"])
    assert seen == []
    start, body = sent[0], sent[1]
    assert start["status"] == 413
    assert (b"connection", b"close") in start["headers"]
    assert json.loads(body["body"]) == {"success": False, "msg": "Request Entity Too Large"}
    # the chunk after the ceiling is never read
    assert [m["body"] for m in pending] == [b"later"]


def test_declared_length_over_ceiling_is_rejected_before_reading():
    sent, seen, pending = _run([b"tiny"], headers=[(b"content-length", b"999")])
    assert sent[0]["status"] == 413
    assert seen == []
    assert len(pending) == 1


def test_body_exactly_at_ceiling_passes():
    sent, seen, _ = _run([b"0123456789"])
    assert seen == [b"0123456789"]
