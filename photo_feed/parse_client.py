from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote

import requests

from .config import RuntimeSecrets
from .config_schema import BackendConfig
from .errors import RemoteError
from .normalize import asset_ref_from_value
from .post import AssetRef, AssetUpload, Identity, RawRecord
from .remote import CLIENT_KEY_FIELD
from .remote_errors import wrap_remote_exception

# Parse error code for an expired or unknown session token.
_INVALID_SESSION_TOKEN = 209


def _error_detail(response: requests.Response) -> tuple[int | None, str]:
    try:
        payload = response.json()
    except ValueError:
        return None, (response.text or "").strip()[:500]

    if isinstance(payload, Mapping):
        code = payload.get("code")
        message = payload.get("error")
        return (
            code if isinstance(code, int) else None,
            str(message).strip() if message is not None else "",
        )
    return None, ""


class ParseRemoteStore:
    """
    RemoteStore backed by the Parse Server REST API.

    Only the handful of endpoints the feed needs are wrapped: class queries,
    file download and upload, object creation, /users/me and /logout.
    """

    def __init__(
        self,
        secrets: RuntimeSecrets,
        *,
        backend: BackendConfig,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = backend.server_url.rstrip("/")
        self._timeout = float(backend.timeout_seconds)
        self._session = session or requests.Session()
        self._session_token = secrets.session_token
        self._headers = {
            "X-Parse-Application-Id": secrets.application_id,
            "X-Parse-REST-API-Key": secrets.rest_api_key,
        }

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _auth_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if self._session_token:
            headers["X-Parse-Session-Token"] = self._session_token
        return headers

    def _send(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        try:
            return self._session.request(
                method,
                url,
                headers=dict(headers or {}),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise wrap_remote_exception(e, operation=operation) from e

    def _request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        extra_headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        headers = self._auth_headers()
        if extra_headers:
            headers.update(extra_headers)

        response = self._send(method, self._url(path), operation=operation, headers=headers, **kwargs)
        if response.status_code >= 400:
            code, detail = _error_detail(response)
            suffix = f": {detail}" if detail else ""
            raise RemoteError(
                f"{operation} failed (HTTP {response.status_code}){suffix}",
                status_code=response.status_code,
                code=code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(f"{operation} returned a non-JSON response") from e

    def query_collection(
        self, name: str, sort_field: str, descending: bool = True
    ) -> list[RawRecord]:
        field = (sort_field or "").strip()
        order = f"-{field}" if descending else field
        payload = self._request_json(
            "GET",
            f"classes/{quote(name)}",
            operation=f"query {name}",
            params={"order": order},
        )

        results = payload.get("results") if isinstance(payload, Mapping) else None
        if not isinstance(results, list):
            raise RemoteError(f"query {name} returned no results list")
        return [row for row in results if isinstance(row, Mapping)]

    def fetch_asset(self, ref: AssetRef) -> bytes:
        url = (ref.url or "").strip()
        if not url:
            url = self._url(f"files/{self._headers['X-Parse-Application-Id']}/{quote(ref.name)}")

        response = self._send("GET", url, operation=f"fetch asset {ref.name}")
        if response.status_code >= 400:
            raise RemoteError(
                f"fetch asset {ref.name} failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        return bytes(response.content or b"")

    def current_identity(self) -> Identity | None:
        if not self._session_token:
            return None

        try:
            payload = self._request_json("GET", "users/me", operation="read current user")
        except RemoteError as e:
            if e.code == _INVALID_SESSION_TOKEN or e.status_code in (401, 403):
                return None
            raise

        if not isinstance(payload, Mapping):
            return None
        user_id = str(payload.get("objectId") or "").strip()
        username = str(payload.get("username") or "").strip()
        if not user_id or not username:
            return None
        return Identity(user_id=user_id, username=username, session_token=self._session_token)

    def upload_file(self, upload: AssetUpload) -> AssetRef:
        payload = self._request_json(
            "POST",
            f"files/{quote(upload.name)}",
            operation=f"upload {upload.name}",
            extra_headers={"Content-Type": upload.content_type},
            data=upload.data,
        )
        ref = asset_ref_from_value(payload) if isinstance(payload, Mapping) else None
        if ref is None:
            raise RemoteError(f"upload {upload.name} returned no file reference")
        return ref

    def insert_record(self, collection: str, fields: Mapping[str, Any]) -> str:
        body: dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, AssetUpload):
                ref = self.upload_file(value)
                body[key] = {"__type": "File", "name": ref.name, "url": ref.url}
            else:
                body[key] = value

        extra: dict[str, str] = {}
        client_key = body.get(CLIENT_KEY_FIELD)
        if isinstance(client_key, str) and client_key:
            extra["X-Parse-Request-Id"] = client_key

        payload = self._request_json(
            "POST",
            f"classes/{quote(collection)}",
            operation=f"insert {collection}",
            extra_headers=extra,
            json=body,
        )
        object_id = str(payload.get("objectId") or "").strip() if isinstance(payload, Mapping) else ""
        if not object_id:
            raise RemoteError(f"insert {collection} returned no objectId")
        return object_id

    def log_out(self) -> None:
        if not self._session_token:
            return
        self._request_json("POST", "logout", operation="log out", json={})
        self._session_token = None

    def close(self) -> None:
        self._session.close()

