from __future__ import annotations

import unittest
from typing import Any

import requests

from skypost.errors import PublishError, ResolutionError, UploadError
from skypost.record import assemble
from skypost.retry import RetryConfig
from skypost.xrpc import XrpcClient


class _FakeResponse:
    def __init__(self, status_code: int, body: Any = None, *, text: str | None = None) -> None:
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ""
        self.headers: dict[str, str] = {}

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}", response=self)  # type: ignore[arg-type]


class _FakeSession:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _client(session: _FakeSession, **kwargs: Any) -> XrpcClient:
    return XrpcClient(
        "https://pds.example.com/",
        session=session,  # type: ignore[arg-type]
        timeout_seconds=7,
        retry=RetryConfig(max_attempts=2, base_delay_seconds=0.0, max_delay_seconds=0.0),
        sleep_fn=lambda _: None,
        **kwargs,
    )


class TestLookup(unittest.TestCase):
    def test_returns_did_and_sends_handle(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"did": "did:plc:abc"})])
        did = _client(session).lookup("alice.example")

        self.assertEqual(did, "did:plc:abc")
        call = session.calls[0]
        self.assertEqual(call["method"], "GET")
        self.assertEqual(
            call["url"], "https://pds.example.com/xrpc/com.atproto.identity.resolveHandle"
        )
        self.assertEqual(call["params"], {"handle": "alice.example"})
        self.assertEqual(call["timeout"], 7.0)

    def test_unknown_handle_is_none(self) -> None:
        session = _FakeSession([_FakeResponse(400, {"error": "InvalidRequest"})])
        self.assertIsNone(_client(session).lookup("nobody.example"))

    def test_malformed_payload_raises(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"handle": "x"})])
        with self.assertRaises(ResolutionError):
            _client(session).lookup("alice.example")

    def test_transport_error_is_retried_then_raised(self) -> None:
        session = _FakeSession(
            [requests.ConnectionError("down"), requests.ConnectionError("still down")]
        )
        with self.assertRaises(ResolutionError):
            _client(session).lookup("alice.example")
        self.assertEqual(len(session.calls), 2)

    def test_server_error_then_success(self) -> None:
        session = _FakeSession([_FakeResponse(502), _FakeResponse(200, {"did": "did:plc:x"})])
        self.assertEqual(_client(session).lookup("alice.example"), "did:plc:x")


class TestUpload(unittest.TestCase):
    def test_upload_returns_blob_ref(self) -> None:
        body = {
            "blob": {
                "$type": "blob",
                "ref": {"$link": "bafkreiabc"},
                "mimeType": "image/png",
                "size": 1234,
            }
        }
        session = _FakeSession([_FakeResponse(200, body)])
        ref = _client(session, access_token="tok").upload(b"\x89PNG", "image/png")

        self.assertEqual(ref.content_ref, "bafkreiabc")
        self.assertEqual(ref.declared_size, 1234)
        self.assertEqual(ref.mime_type, "image/png")
        call = session.calls[0]
        self.assertEqual(call["headers"]["Authorization"], "Bearer tok")
        self.assertEqual(call["headers"]["Content-Type"], "image/png")
        self.assertEqual(call["data"], b"\x89PNG")

    def test_upload_http_error(self) -> None:
        session = _FakeSession([_FakeResponse(401, {"error": "AuthRequired"})])
        with self.assertRaises(UploadError):
            _client(session).upload(b"x", "image/png")

    def test_upload_missing_ref(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"blob": {"size": 1}})])
        with self.assertRaises(UploadError):
            _client(session).upload(b"x", "image/png")


class TestCreateRecord(unittest.TestCase):
    def test_posts_record_with_type(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"uri": "at://did:x/app.bsky.feed.post/1", "cid": "c1"})])
        record = assemble("Hello", ["en"])

        created = _client(session, access_token="tok").create_record("did:x", record)

        self.assertEqual(created.uri, "at://did:x/app.bsky.feed.post/1")
        self.assertEqual(created.cid, "c1")
        payload = session.calls[0]["json"]
        self.assertEqual(payload["repo"], "did:x")
        self.assertEqual(payload["collection"], "app.bsky.feed.post")
        self.assertEqual(payload["record"]["$type"], "app.bsky.feed.post")
        self.assertEqual(payload["record"]["text"], "Hello")
        self.assertEqual(payload["record"]["langs"], ["en"])

    def test_create_record_failure(self) -> None:
        session = _FakeSession([_FakeResponse(400, {"error": "InvalidRecord", "message": "bad"})])
        with self.assertRaises(PublishError) as ctx:
            _client(session).create_record("did:x", {"text": "x", "createdAt": "now"})
        self.assertIn("InvalidRecord", str(ctx.exception))

    def test_server_error_is_not_retried(self) -> None:
        session = _FakeSession(
            [
                _FakeResponse(503, {"error": "Unavailable"}),
                _FakeResponse(200, {"uri": "at://did:x/app.bsky.feed.post/1", "cid": "c1"}),
            ]
        )
        with self.assertRaises(PublishError):
            _client(session).create_record("did:x", assemble("once"))
        self.assertEqual(len(session.calls), 1)

    def test_timeout_is_not_retried(self) -> None:
        session = _FakeSession(
            [
                requests.Timeout("read timed out"),
                _FakeResponse(200, {"uri": "at://did:x/app.bsky.feed.post/1", "cid": "c1"}),
            ]
        )
        client = _client(session)
        with self.assertRaises(PublishError):
            client.create_record("did:x", assemble("once"))
        self.assertEqual(len(session.calls), 1)

        # The client's own retry policy still applies to idempotent calls.
        session._responses = [requests.Timeout("again"), _FakeResponse(200, {"did": "did:plc:abc"})]
        self.assertEqual(client.lookup("alice.example"), "did:plc:abc")
        self.assertEqual(len(session.calls), 3)


if __name__ == "__main__":
    unittest.main()
