from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Callable, NoReturn

from .config_schema import SubmitConfig
from .errors import ErrorKind, RemoteTimeout, SubmitError
from .imaging import encode_jpeg
from .post import AssetUpload, Identity
from .remote import CLIENT_KEY_FIELD, RemoteStore
from .remote_errors import classify_remote_exception
from .run_log import EventLogger

MSG_MISSING_IMAGE = "Please select a photo."
MSG_NOT_AUTHENTICATED = "Error: No user is logged in."
MSG_ENCODING_FAILURE = "Error converting image."
MSG_TIMEOUT = "Request timed out. Please try again."
MSG_SUCCESS = "Photo posted successfully!"

@dataclass(frozen=True)
class SubmitReceipt:
    object_id: str
    client_key: str | None
    message: str = MSG_SUCCESS

class PostSubmissionOperation:
    """
    Validates and uploads one new photo post.

    All client-side checks run before the store is touched. The write itself
    is a single insert with no retry; resubmitting is up to the user, and the
    optional client key lets the backend recognise a repeated request.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        submit: SubmitConfig | None = None,
        logger: EventLogger | None = None,
        key_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._cfg = submit or SubmitConfig()
        self._log = logger
        self._key_factory = key_factory or (lambda: uuid.uuid4().hex)

    def submit(
        self,
        image: bytes | None,
        caption: str,
        author: Identity | None,
    ) -> SubmitReceipt:
        if not image:
            self._reject(ErrorKind.MISSING_IMAGE, MSG_MISSING_IMAGE)
        if author is None:
            self._reject(ErrorKind.NOT_AUTHENTICATED, MSG_NOT_AUTHENTICATED)

        try:
            jpeg = encode_jpeg(image, quality=self._cfg.jpeg_quality)
        except ValueError as e:
            self._reject(ErrorKind.ENCODING_FAILURE, MSG_ENCODING_FAILURE, detail=str(e))

        client_key = self._key_factory() if self._cfg.idempotency_keys else None
        fields: dict[str, Any] = {
            "caption": caption or "",
            "username": author.username,
            "photo": AssetUpload(name=self._cfg.file_name, data=jpeg),
        }
        if client_key:
            fields[CLIENT_KEY_FIELD] = client_key

        if self._log is not None:
            self._log.info(
                "submit_started",
                collection=self._cfg.collection,
                username=author.username,
                image_bytes=len(jpeg),
                client_key=client_key,
            )

        try:
            object_id = self._store.insert_record(self._cfg.collection, fields)
        except Exception as e:
            kind, reason = classify_remote_exception(e)
            if kind is ErrorKind.REMOTE_TIMEOUT or isinstance(e, RemoteTimeout):
                err = SubmitError(ErrorKind.REMOTE_TIMEOUT, MSG_TIMEOUT)
            else:
                detail = (str(e) or "").strip() or type(e).__name__
                err = SubmitError(ErrorKind.REMOTE_WRITE_FAILURE, f"Error posting photo: {detail}")
            if self._log is not None:
                self._log.error(
                    "submit_failed",
                    kind=err.kind.value,
                    reason=reason,
                    error_type=type(e).__name__,
                    message=str(e),
                    client_key=client_key,
                )
            raise err from e

        if self._log is not None:
            self._log.info("submit_completed", object_id=object_id, client_key=client_key)
        return SubmitReceipt(object_id=object_id, client_key=client_key)

    def _reject(self, kind: ErrorKind, message: str, *, detail: str | None = None) -> NoReturn:
        if self._log is not None:
            self._log.warning("submit_rejected", kind=kind.value, detail=detail)
        raise SubmitError(kind, message)
