from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

RawRecord = Mapping[str, Any]


@dataclass(frozen=True)
class Identity:
    """The signed-in backend user, read once at the call boundary."""

    user_id: str
    username: str
    session_token: str | None = None


@dataclass(frozen=True)
class AssetRef:
    """Reference to a stored file held by a row (Parse file pointer)."""

    name: str
    url: str | None = None


@dataclass(frozen=True)
class AssetUpload:
    """A file value to be stored alongside a new row."""

    name: str
    data: bytes
    content_type: str = "image/jpeg"


@dataclass(frozen=True)
class PostRecord:
    """A feed entry whose image payload has been resolved."""

    id: str
    caption: str
    author: str
    created_at: datetime
    asset: bytes
