from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from .post import AssetRef, RawRecord


@dataclass(frozen=True)
class FeedRow:
    """A query row reduced to the fields the feed needs, asset still unresolved."""

    id: str
    caption: str
    author: str
    created_at: datetime
    photo: AssetRef | None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _text(value: Any) -> str:
    # Free-form text is kept exactly as stored.
    return value if isinstance(value, str) else ""


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a backend timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (with a trailing "Z"), Parse Date objects
    ({"__type": "Date", "iso": ...}) and datetime instances.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, Mapping):
        if value.get("__type") != "Date":
            return None
        return parse_timestamp(value.get("iso"))
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def asset_ref_from_value(value: Any) -> AssetRef | None:
    if isinstance(value, AssetRef):
        return value
    if not isinstance(value, Mapping):
        return None

    kind = value.get("__type")
    if kind is not None and kind != "File":
        return None

    name = _coerce_str(value.get("name"))
    url = _coerce_str(value.get("url"))
    if name is None and url is None:
        return None
    return AssetRef(name=name or url or "", url=url)


def feed_row_from_record(
    raw: RawRecord,
    *,
    now: Callable[[], datetime] | None = None,
) -> FeedRow | None:
    """
    Best-effort extraction of a feed row from a raw backend record.

    Rows without an object id cannot be shown and yield None. Missing caption
    or username become empty strings; a missing creation time falls back to now.
    """
    object_id = _coerce_id(raw.get("objectId")) or _coerce_id(raw.get("id"))
    if not object_id:
        return None

    created_at = parse_timestamp(raw.get("createdAt"))
    if created_at is None:
        created_at = (now or _utc_now)()

    return FeedRow(
        id=object_id,
        caption=_text(raw.get("caption")),
        author=_text(raw.get("username")),
        created_at=created_at,
        photo=asset_ref_from_value(raw.get("photo")),
    )
