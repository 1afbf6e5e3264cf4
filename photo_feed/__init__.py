from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, ErrorKind, RemoteError, SubmitError, SyncError
from .feed_sync import CancellationToken, FeedSyncCoordinator, SyncOutcome, SyncState
from .post import Identity, PostRecord
from .submission import PostSubmissionOperation, SubmitReceipt

__all__ = [
    "AppConfig",
    "CancellationToken",
    "ConfigError",
    "ErrorKind",
    "FeedSyncCoordinator",
    "Identity",
    "PostRecord",
    "PostSubmissionOperation",
    "RemoteError",
    "SubmitError",
    "SubmitReceipt",
    "SyncError",
    "SyncOutcome",
    "SyncState",
    "config_sha256",
    "load_config",
    "resolve_runtime_secrets",
]
