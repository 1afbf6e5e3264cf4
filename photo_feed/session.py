from __future__ import annotations

from .errors import SessionError
from .post import Identity
from .remote import RemoteStore
from .run_log import EventLogger


def current_identity(store: RemoteStore, *, logger: EventLogger | None = None) -> Identity | None:
    """
    Read the signed-in user once, at the call boundary.

    Operations that need an author take the returned Identity explicitly.
    """
    try:
        identity = store.current_identity()
    except Exception as e:
        if logger is not None:
            logger.exception("identity_lookup_failed", exc=e)
        raise SessionError(f"Error reading current user: {e}") from e

    if logger is not None:
        logger.info(
            "identity_resolved",
            authenticated=identity is not None,
            username=identity.username if identity else None,
        )
    return identity


def log_out(store: RemoteStore, *, logger: EventLogger | None = None) -> None:
    if logger is not None:
        logger.info("logout_started")
    try:
        store.log_out()
    except Exception as e:
        if logger is not None:
            logger.error("logout_failed", error_type=type(e).__name__, message=str(e))
        raise SessionError(f"Error logging out: {e}") from e
    if logger is not None:
        logger.info("logout_completed")
