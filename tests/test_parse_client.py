from __future__ import annotations

import unittest
from typing import Any

import requests

from photo_feed.config import RuntimeSecrets
from photo_feed.config_schema import BackendConfig
from photo_feed.errors import RemoteError, RemoteTimeout
from photo_feed.parse_client import ParseRemoteStore
from photo_feed.post import AssetRef, AssetUpload


class _FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, content: bytes = b"") -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.text = "" if payload is None else str(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


def _store(responses: list[Any], *, token: str | None = "r:tok") -> tuple[ParseRemoteStore, _FakeSession]:
    session = _FakeSession(responses)
    store = ParseRemoteStore(
        RuntimeSecrets(application_id="app", rest_api_key="rest", session_token=token),
        backend=BackendConfig(server_url="https://parse.example/parse/", timeout_seconds=7),
        session=session,  # type: ignore[arg-type]
    )
    return store, session


class TestParseRemoteStore(unittest.TestCase):
    def test_query_orders_descending_and_sends_headers(self) -> None:
        store, session = _store([_FakeResponse(200, {"results": [{"objectId": "a"}, "junk"]})])

        rows = store.query_collection("PhotoPost", "createdAt", True)

        self.assertEqual(rows, [{"objectId": "a"}])
        call = session.calls[0]
        self.assertEqual(call["method"], "GET")
        self.assertEqual(call["url"], "https://parse.example/parse/classes/PhotoPost")
        self.assertEqual(call["params"], {"order": "-createdAt"})
        self.assertEqual(call["timeout"], 7.0)
        self.assertEqual(call["headers"]["X-Parse-Application-Id"], "app")
        self.assertEqual(call["headers"]["X-Parse-REST-API-Key"], "rest")
        self.assertEqual(call["headers"]["X-Parse-Session-Token"], "r:tok")

    def test_http_error_becomes_remote_error(self) -> None:
        store, _ = _store([_FakeResponse(403, {"code": 119, "error": "Permission denied"})])

        with self.assertRaises(RemoteError) as ctx:
            store.query_collection("PhotoPost", "createdAt", True)

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.code, 119)
        self.assertIn("Permission denied", str(ctx.exception))

    def test_transport_timeout_becomes_remote_timeout(self) -> None:
        store, _ = _store([requests.Timeout("read timed out")])

        with self.assertRaises(RemoteTimeout):
            store.query_collection("PhotoPost", "createdAt", True)

    def test_connection_error_becomes_remote_error(self) -> None:
        store, _ = _store([requests.ConnectionError("refused")])

        with self.assertRaises(RemoteError) as ctx:
            store.query_collection("PhotoPost", "createdAt", True)
        self.assertNotIsInstance(ctx.exception, RemoteTimeout)

    def test_fetch_asset_downloads_file_url(self) -> None:
        store, session = _store([_FakeResponse(200, content=b"\xff\xd8data")])

        data = store.fetch_asset(AssetRef(name="a.jpg", url="https://files.example/a.jpg"))

        self.assertEqual(data, b"\xff\xd8data")
        self.assertEqual(session.calls[0]["url"], "https://files.example/a.jpg")
        self.assertNotIn("X-Parse-REST-API-Key", session.calls[0]["headers"])

    def test_fetch_asset_failure(self) -> None:
        store, _ = _store([_FakeResponse(404)])

        with self.assertRaises(RemoteError) as ctx:
            store.fetch_asset(AssetRef(name="a.jpg", url="https://files.example/a.jpg"))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_insert_uploads_file_then_creates_object(self) -> None:
        store, session = _store(
            [
                _FakeResponse(201, {"name": "tfss-photo.jpg", "url": "https://files.example/tfss-photo.jpg"}),
                _FakeResponse(201, {"objectId": "new1", "createdAt": "2024-09-22T10:00:00.000Z"}),
            ]
        )

        object_id = store.insert_record(
            "PhotoPost",
            {
                "caption": "hi",
                "username": "ana",
                "photo": AssetUpload(name="photo.jpg", data=b"jpeg"),
                "clientKey": "key-1",
            },
        )

        self.assertEqual(object_id, "new1")
        upload, create = session.calls
        self.assertEqual(upload["method"], "POST")
        self.assertEqual(upload["url"], "https://parse.example/parse/files/photo.jpg")
        self.assertEqual(upload["data"], b"jpeg")
        self.assertEqual(upload["headers"]["Content-Type"], "image/jpeg")

        self.assertEqual(create["url"], "https://parse.example/parse/classes/PhotoPost")
        self.assertEqual(create["headers"]["X-Parse-Request-Id"], "key-1")
        self.assertEqual(
            create["json"],
            {
                "caption": "hi",
                "username": "ana",
                "photo": {
                    "__type": "File",
                    "name": "tfss-photo.jpg",
                    "url": "https://files.example/tfss-photo.jpg",
                },
                "clientKey": "key-1",
            },
        )

    def test_current_identity(self) -> None:
        store, session = _store([_FakeResponse(200, {"objectId": "u1", "username": "ana"})])

        identity = store.current_identity()

        assert identity is not None
        self.assertEqual(identity.user_id, "u1")
        self.assertEqual(identity.username, "ana")
        self.assertEqual(session.calls[0]["url"], "https://parse.example/parse/users/me")

    def test_invalid_session_means_no_identity(self) -> None:
        store, _ = _store([_FakeResponse(400, {"code": 209, "error": "Invalid session token"})])
        self.assertIsNone(store.current_identity())

    def test_no_token_means_no_identity_without_request(self) -> None:
        store, session = _store([], token=None)
        self.assertIsNone(store.current_identity())
        self.assertEqual(session.calls, [])

    def test_log_out_clears_session_token(self) -> None:
        store, session = _store([_FakeResponse(200, {})])

        store.log_out()
        store.log_out()

        self.assertEqual(len(session.calls), 1)
        self.assertEqual(session.calls[0]["url"], "https://parse.example/parse/logout")
        self.assertIsNone(store.current_identity())

    def test_close_closes_session(self) -> None:
        store, session = _store([])
        store.close()
        self.assertTrue(session.closed)


if __name__ == "__main__":
    unittest.main()
