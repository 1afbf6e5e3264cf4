from __future__ import annotations

import argparse
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Sequence

from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, RemoteError, SessionError, SubmitError, SyncError
from .feed_sync import FeedSyncCoordinator, deliver_inline
from .remote import RemoteStore
from .run_log import EventLogger
from .session import current_identity, log_out
from .submission import PostSubmissionOperation


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use an in-memory backend with a small sample feed.",
    )
    parser.add_argument(
        "--log",
        default=None,
        help="Append JSONL events to this file (default: stderr).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="photo_feed")

    subparsers = parser.add_subparsers(dest="command", required=True)

    feed = subparsers.add_parser("feed", help="Refresh the photo feed once and list it.")
    _add_common(feed)
    feed.set_defaults(_handler=_cmd_feed)

    post = subparsers.add_parser("post", help="Post a photo with a caption.")
    _add_common(post)
    post.add_argument("--image", default=None, help="Path to the photo to upload.")
    post.add_argument("--caption", default="", help="Caption text (may be empty).")
    post.set_defaults(_handler=_cmd_post)

    logout = subparsers.add_parser("logout", help="End the current backend session.")
    _add_common(logout)
    logout.set_defaults(_handler=_cmd_logout)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _open_logger(args: argparse.Namespace) -> EventLogger:
    if args.log:
        return EventLogger.open(args.log)
    return EventLogger(stream=sys.stderr)


def _build_store(cfg: AppConfig, args: argparse.Namespace, stack: ExitStack) -> RemoteStore:
    if bool(getattr(args, "offline", False)):
        from .offline import InMemoryRemoteStore

        return InMemoryRemoteStore()

    from .parse_client import ParseRemoteStore

    secrets = resolve_runtime_secrets(cfg)
    store = ParseRemoteStore(secrets, backend=cfg.backend)
    stack.callback(store.close)
    return store


def _cmd_feed(args: argparse.Namespace, cfg: AppConfig, store: RemoteStore, log: EventLogger) -> int:
    with FeedSyncCoordinator(store, feed=cfg.feed, logger=log, deliver=deliver_inline) as coordinator:
        outcome = coordinator.sync_now()

    if outcome.error is not None:
        raise outcome.error

    print(f"status={outcome.status.value}")
    print(f"posts={len(outcome.posts)}")
    print(f"failures={len(outcome.failures)}")
    for post in outcome.posts:
        caption = post.caption.replace("\n", " ")
        print(f"{post.created_at.isoformat()}\t{post.author}\t{post.id}\t{len(post.asset)}\t{caption}")
    return 0


def _cmd_post(args: argparse.Namespace, cfg: AppConfig, store: RemoteStore, log: EventLogger) -> int:
    image: bytes | None = None
    if args.image:
        path = Path(args.image)
        try:
            image = path.read_bytes()
        except OSError as e:
            raise ConfigError(f"Failed to read image file: {path}") from e

    author = current_identity(store, logger=log)
    op = PostSubmissionOperation(store, submit=cfg.submit, logger=log)
    receipt = op.submit(image, args.caption, author)

    print(receipt.message)
    print(f"object_id={receipt.object_id}")
    if receipt.client_key:
        print(f"client_key={receipt.client_key}")
    return 0


def _cmd_logout(args: argparse.Namespace, cfg: AppConfig, store: RemoteStore, log: EventLogger) -> int:
    log_out(store, logger=log)
    print("logged_out=true")
    return 0


def _run_command(args: argparse.Namespace) -> int:
    with ExitStack() as stack:
        log = stack.enter_context(_open_logger(args))
        log.info("command_started", command=args.command, config_path=str(args.config))
        try:
            cfg = load_config(args.config)
            store = _build_store(cfg, args, stack)
            handler = getattr(args, "_handler")
            return int(handler(args, cfg, store, log))
        except Exception as e:
            log.exception("command_failed", exc=e, command=args.command)
            raise


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        return _run_command(args)
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except SubmitError as e:
        _eprint(e.user_message)
        return 3
    except (SyncError, SessionError, RemoteError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
