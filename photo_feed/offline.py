from __future__ import annotations

import io
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from PIL import Image

from .errors import RemoteError
from .normalize import asset_ref_from_value, parse_timestamp
from .post import AssetRef, AssetUpload, Identity, RawRecord
from .remote import CLIENT_KEY_FIELD

_OFFLINE_USER = Identity(user_id="offline_user", username="offline", session_token="offline")

_OFFLINE_POSTS: list[tuple[str, str, str, str, tuple[int, int, int]]] = [
    ("p1", "morning run", "ana", "2024-09-20T07:15:00.000Z", (230, 120, 40)),
    ("p2", "", "ben", "2024-09-21T12:30:00.000Z", (40, 160, 90)),
    ("p3", "lunch with the team", "cai", "2024-09-22T13:05:00.000Z", (60, 90, 200)),
]


def _solid_jpeg(rgb: tuple[int, int, int], *, size: tuple[int, int] = (8, 8)) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, rgb).save(out, format="JPEG")
    return out.getvalue()


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InMemoryRemoteStore:
    """
    Network-free RemoteStore for offline CLI runs.

    Starts with a small deterministic feed. New posts are kept in memory and
    a repeated client key returns the original object id instead of a copy.
    """

    def __init__(
        self,
        *,
        identity: Identity | None = _OFFLINE_USER,
        seed: bool = True,
    ) -> None:
        self._identity = identity
        self._lock = threading.Lock()
        self._rows: dict[str, list[dict[str, Any]]] = {}
        self._files: dict[str, bytes] = {}
        self._client_keys: dict[str, str] = {}

        if seed:
            for post_id, caption, username, created, rgb in _OFFLINE_POSTS:
                name = f"{post_id}.jpg"
                self._files[name] = _solid_jpeg(rgb)
                self._rows.setdefault("PhotoPost", []).append(
                    {
                        "objectId": post_id,
                        "caption": caption,
                        "username": username,
                        "createdAt": created,
                        "photo": {"__type": "File", "name": name, "url": f"memory://{name}"},
                    }
                )

    def query_collection(
        self, name: str, sort_field: str, descending: bool = True
    ) -> list[RawRecord]:
        with self._lock:
            rows = [dict(r) for r in self._rows.get(name, [])]

        def _key(row: Mapping[str, Any]) -> Any:
            value = row.get(sort_field)
            ts = parse_timestamp(value)
            return ts if ts is not None else datetime.min.replace(tzinfo=timezone.utc)

        rows.sort(key=_key, reverse=descending)
        return rows

    def fetch_asset(self, ref: AssetRef) -> bytes:
        with self._lock:
            data = self._files.get(ref.name)
        if data is None:
            raise RemoteError(f"fetch asset {ref.name} failed (HTTP 404)", status_code=404)
        return data

    def current_identity(self) -> Identity | None:
        return self._identity

    def insert_record(self, collection: str, fields: Mapping[str, Any]) -> str:
        client_key = fields.get(CLIENT_KEY_FIELD)

        with self._lock:
            if isinstance(client_key, str) and client_key in self._client_keys:
                return self._client_keys[client_key]

            object_id = uuid.uuid4().hex[:10]
            row: dict[str, Any] = {"objectId": object_id, "createdAt": _iso(datetime.now(timezone.utc))}
            for key, value in fields.items():
                if isinstance(value, AssetUpload):
                    name = f"{uuid.uuid4().hex}_{value.name}"
                    self._files[name] = bytes(value.data)
                    value = {"__type": "File", "name": name, "url": f"memory://{name}"}
                row[key] = value

            self._rows.setdefault(collection, []).append(row)
            if isinstance(client_key, str) and client_key:
                self._client_keys[client_key] = object_id
            return object_id

    def log_out(self) -> None:
        self._identity = None

    def records(self, collection: str) -> Sequence[RawRecord]:
        with self._lock:
            return [dict(r) for r in self._rows.get(collection, [])]

    def stored_asset(self, value: Any) -> bytes | None:
        ref = asset_ref_from_value(value)
        if ref is None:
            return None
        with self._lock:
            return self._files.get(ref.name)
