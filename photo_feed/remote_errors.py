from __future__ import annotations

import requests

from .errors import ErrorKind, RemoteError, RemoteTimeout


def _extract_status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status", "http_status"):
        val = getattr(exc, attr, None)
        if val is None:
            continue
        try:
            return int(val)
        except (TypeError, ValueError):
            continue

    response = getattr(exc, "response", None)
    code = getattr(response, "status_code", None)
    if isinstance(code, int):
        return code
    return None


def _looks_like_timeout(exc: BaseException) -> bool:
    # Transport stacks name their timeouts differently; match on the type name.
    name = type(exc).__name__.casefold()
    mod = type(exc).__module__.casefold()
    return "timeout" in name or "timeout" in mod


def is_timeout_exception(exc: BaseException) -> bool:
    if isinstance(exc, RemoteTimeout):
        return True
    if isinstance(exc, (TimeoutError, requests.Timeout)):
        return True
    return _looks_like_timeout(exc)


def classify_remote_exception(exc: BaseException) -> tuple[ErrorKind | None, str]:
    """
    Map a transport exception to a timeout kind and a short reason string.

    Returns (ErrorKind.REMOTE_TIMEOUT, "timeout") for timeouts and
    (None, reason) for everything else so callers pick their own failure kind.
    """
    if is_timeout_exception(exc):
        return ErrorKind.REMOTE_TIMEOUT, "timeout"

    code = _extract_status_code(exc)
    if code is not None:
        return None, f"http_{code}"

    if isinstance(exc, (ConnectionError, requests.ConnectionError)):
        return None, "network_error"

    return None, "remote_error"


def wrap_remote_exception(exc: BaseException, *, operation: str) -> RemoteError:
    """Turn a transport exception into RemoteError (or RemoteTimeout)."""
    if isinstance(exc, RemoteError):
        return exc

    op = (operation or "").strip() or "remote call"
    detail = (str(exc) or "").strip() or type(exc).__name__
    if is_timeout_exception(exc):
        return RemoteTimeout(f"{op} timed out: {detail}")
    return RemoteError(f"{op} failed: {detail}", status_code=_extract_status_code(exc))
