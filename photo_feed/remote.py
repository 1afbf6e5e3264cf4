from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from .post import AssetRef, Identity, RawRecord

# Field carrying the client-generated idempotency key of a new post.
CLIENT_KEY_FIELD = "clientKey"


class RemoteStore(Protocol):
    """
    The hosted backend as seen by the feed and submission operations.

    Every method raises RemoteError (RemoteTimeout for timeouts) on failure.
    """

    def query_collection(
        self, name: str, sort_field: str, descending: bool = True
    ) -> Sequence[RawRecord]: ...

    def fetch_asset(self, ref: AssetRef) -> bytes: ...

    def current_identity(self) -> Identity | None: ...

    def insert_record(self, collection: str, fields: Mapping[str, Any]) -> str: ...

    def log_out(self) -> None: ...
