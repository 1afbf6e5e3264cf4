from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence

from .config_schema import FeedConfig
from .errors import ErrorKind, SyncError
from .imaging import is_decodable_image
from .normalize import FeedRow, feed_row_from_record
from .post import AssetRef, PostRecord, RawRecord
from .remote import RemoteStore
from .remote_errors import classify_remote_exception
from .run_log import EventLogger

_BARRIER_POLL_SECONDS = 0.05


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CancellationToken:
    """Set once by the owner of a sync (e.g. a torn-down view) to abandon it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class AssetFetchFailure:
    post_id: str | None
    reason: str
    kind: ErrorKind = ErrorKind.ASSET_FETCH_FAILURE
    error_type: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class SyncOutcome:
    status: SyncState
    posts: tuple[PostRecord, ...] = ()
    failures: tuple[AssetFetchFailure, ...] = ()
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncState.DELIVERED, SyncState.PARTIAL)


DeliverFn = Callable[[Callable[[], None]], None]
OnCompleteFn = Callable[[SyncOutcome], None]


class DeliveryContext:
    """
    Single-threaded delivery queue.

    Completion callbacks run one at a time on the same thread, in submission
    order, so the consumer never sees two deliveries racing.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="feed-delivery")

    def __call__(self, fn: Callable[[], None]) -> None:
        self._executor.submit(fn)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def deliver_inline(fn: Callable[[], None]) -> None:
    fn()


class SyncHandle:
    def __init__(self, token: CancellationToken) -> None:
        self._token = token
        self._delivered = threading.Event()
        self._outcome: SyncOutcome | None = None

    @property
    def done(self) -> bool:
        return self._delivered.is_set()

    @property
    def outcome(self) -> SyncOutcome | None:
        return self._outcome

    def cancel(self) -> None:
        self._token.cancel()

    def wait(self, timeout: float | None = None) -> SyncOutcome | None:
        """Block until the outcome has been handed to the continuation."""
        if not self._delivered.wait(timeout):
            return None
        return self._outcome

    def _mark_delivered(self, outcome: SyncOutcome) -> None:
        self._outcome = outcome
        self._delivered.set()


class FeedSyncCoordinator:
    """
    Refreshes the photo feed from the remote store.

    One query lists the rows newest first; each row's image is then fetched
    concurrently and the surviving rows are delivered in query order.
    Rows whose image cannot be fetched are dropped and reported in
    SyncOutcome.failures; only a failed query fails the whole sync.
    """

    def __init__(
        self,
        store: RemoteStore,
        *,
        feed: FeedConfig | None = None,
        logger: EventLogger | None = None,
        deliver: DeliverFn | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._feed = feed or FeedConfig()
        self._log = logger
        self._owned_delivery = DeliveryContext() if deliver is None else None
        self._deliver: DeliverFn = deliver or self._owned_delivery  # type: ignore[assignment]
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._busy = False
        self._closed = False
        self._state = SyncState.IDLE

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    def close(self) -> None:
        with self._lock:
            self._closed = True
        if self._owned_delivery is not None:
            self._owned_delivery.shutdown(wait=True)

    def __enter__(self) -> "FeedSyncCoordinator":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def sync(
        self,
        on_complete: OnCompleteFn,
        *,
        cancel: CancellationToken | None = None,
    ) -> SyncHandle:
        """
        Start a sync in the background and return immediately.

        on_complete receives the SyncOutcome exactly once, on the delivery
        context. Raises SyncError(SYNC_IN_PROGRESS) if a sync is outstanding
        and SyncError(COORDINATOR_CLOSED) after close().
        """
        token = cancel or CancellationToken()
        handle = SyncHandle(token)
        self._begin(needs_delivery=True)

        def _finish(outcome: SyncOutcome) -> None:
            self._end(outcome.status)
            try:
                on_complete(outcome)
            except Exception as e:
                self._log_exception("sync_delivery_failed", e)
                raise
            finally:
                handle._mark_delivered(outcome)

        def _worker() -> None:
            try:
                outcome = self._run(token)
            except Exception as e:
                self._log_exception("sync_crashed", e)
                outcome = SyncOutcome(
                    status=SyncState.FAILED,
                    error=SyncError(ErrorKind.QUERY_FAILURE, f"Error fetching photos: {e}"),
                )
            try:
                self._deliver(lambda: _finish(outcome))
            except Exception as e:
                if handle.done:
                    # Raised by on_complete; _finish already logged it.
                    return
                # The delivery context is gone; release the coordinator anyway.
                self._log_exception("sync_delivery_failed", e)
                self._end(outcome.status)
                handle._mark_delivered(outcome)

        threading.Thread(target=_worker, name="feed-sync", daemon=True).start()
        return handle

    def sync_now(self, *, cancel: CancellationToken | None = None) -> SyncOutcome:
        """Run one sync in the calling thread and return its outcome."""
        self._begin()
        status = SyncState.FAILED
        try:
            outcome = self._run(cancel or CancellationToken())
            status = outcome.status
            return outcome
        finally:
            self._end(status)

    def _begin(self, *, needs_delivery: bool = False) -> None:
        with self._lock:
            if needs_delivery and self._closed:
                raise SyncError(ErrorKind.COORDINATOR_CLOSED, "The feed coordinator is closed")
            if self._busy:
                raise SyncError(ErrorKind.SYNC_IN_PROGRESS, "A feed sync is already running")
            self._busy = True
            self._state = SyncState.SYNCING

    def _end(self, status: SyncState) -> None:
        with self._lock:
            self._busy = False
            self._state = status

    def _run(self, token: CancellationToken) -> SyncOutcome:
        feed = self._feed
        self._info("sync_started", collection=feed.collection, sort_field=feed.sort_field)

        if token.cancelled:
            return self._cancelled(stage="before_query")

        try:
            raw_rows = self._store.query_collection(feed.collection, feed.sort_field, True)
        except Exception as e:
            kind, reason = classify_remote_exception(e)
            err = SyncError(
                kind or ErrorKind.QUERY_FAILURE,
                f"Error fetching photos: {(str(e) or '').strip() or type(e).__name__}",
            )
            if self._log is not None:
                self._log.error(
                    "sync_query_failed",
                    collection=feed.collection,
                    reason=reason,
                    error_type=type(e).__name__,
                    message=str(e),
                )
            return SyncOutcome(status=SyncState.FAILED, error=err)

        if token.cancelled:
            return self._cancelled(stage="after_query")

        rows, slots = self._prepare_rows(raw_rows)
        if rows:
            resolved = self._fan_out(rows, token)
            if resolved is None:
                return self._cancelled(stage="fan_in", pending_rows=len(rows))
            for index, result in resolved:
                slots[index] = result

        posts: list[PostRecord] = []
        failures: list[AssetFetchFailure] = []
        for item in slots:
            if isinstance(item, PostRecord):
                posts.append(item)
            elif isinstance(item, AssetFetchFailure):
                failures.append(item)

        for failure in failures:
            if self._log is not None:
                self._log.warning(
                    "sync_asset_failed",
                    object_id=failure.post_id,
                    reason=failure.reason,
                    kind=failure.kind.value,
                    error_type=failure.error_type,
                    message=failure.message,
                )

        if token.cancelled:
            return self._cancelled(stage="before_delivery")

        status = SyncState.PARTIAL if failures else SyncState.DELIVERED
        self._info(
            "sync_completed",
            status=status.value,
            rows=len(raw_rows),
            posts=len(posts),
            failures=len(failures),
        )
        return SyncOutcome(status=status, posts=tuple(posts), failures=tuple(failures))

    def _prepare_rows(
        self, raw_rows: Sequence[RawRecord]
    ) -> tuple[list[tuple[int, FeedRow, AssetRef]], list[PostRecord | AssetFetchFailure | None]]:
        now = self._clock()
        slots: list[PostRecord | AssetFetchFailure | None] = [None] * len(raw_rows)
        rows: list[tuple[int, FeedRow, AssetRef]] = []
        seen: set[str] = set()

        for index, raw in enumerate(raw_rows):
            row = feed_row_from_record(raw, now=lambda: now)
            if row is None:
                slots[index] = AssetFetchFailure(post_id=None, reason="invalid_row")
                continue
            if row.id in seen:
                slots[index] = AssetFetchFailure(post_id=row.id, reason="duplicate_id")
                continue
            seen.add(row.id)
            if row.photo is None:
                slots[index] = AssetFetchFailure(post_id=row.id, reason="missing_reference")
                continue
            rows.append((index, row, row.photo))

        return rows, slots

    def _fan_out(
        self, rows: list[tuple[int, FeedRow, AssetRef]], token: CancellationToken
    ) -> list[tuple[int, PostRecord | AssetFetchFailure]] | None:
        cap = self._feed.max_concurrent_fetches
        workers = len(rows) if cap <= 0 else min(cap, len(rows))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="asset-fetch")
        cancelled = False

        try:
            futures: dict[Future[PostRecord | AssetFetchFailure], int] = {
                executor.submit(self._resolve, row, ref): index for index, row, ref in rows
            }
            pending = set(futures)
            while pending:
                if token.cancelled:
                    cancelled = True
                    for f in pending:
                        f.cancel()
                    return None
                _, pending = wait(pending, timeout=_BARRIER_POLL_SECONDS, return_when=FIRST_COMPLETED)

            return [(futures[f], f.result()) for f in futures]
        finally:
            executor.shutdown(wait=not cancelled, cancel_futures=True)

    def _resolve(self, row: FeedRow, ref: AssetRef) -> PostRecord | AssetFetchFailure:
        try:
            data = self._store.fetch_asset(ref)
        except Exception as e:
            kind, _ = classify_remote_exception(e)
            timed_out = kind is ErrorKind.REMOTE_TIMEOUT
            return AssetFetchFailure(
                post_id=row.id,
                reason="timeout" if timed_out else "fetch_failed",
                kind=ErrorKind.REMOTE_TIMEOUT if timed_out else ErrorKind.ASSET_FETCH_FAILURE,
                error_type=type(e).__name__,
                message=(str(e) or "").strip() or None,
            )

        try:
            decodable = is_decodable_image(data)
        except Exception as e:
            return AssetFetchFailure(
                post_id=row.id,
                reason="undecodable_image",
                error_type=type(e).__name__,
                message=(str(e) or "").strip() or None,
            )
        if not decodable:
            return AssetFetchFailure(post_id=row.id, reason="undecodable_image")

        return PostRecord(
            id=row.id,
            caption=row.caption,
            author=row.author,
            created_at=row.created_at,
            asset=bytes(data),
        )

    def _cancelled(self, *, stage: str, **data: object) -> SyncOutcome:
        self._info("sync_cancelled", stage=stage, **data)
        return SyncOutcome(status=SyncState.CANCELLED)

    def _info(self, event: str, **data: object) -> None:
        if self._log is not None:
            self._log.info(event, **data)

    def _log_exception(self, event: str, exc: BaseException) -> None:
        if self._log is not None:
            self._log.exception(event, exc=exc)
