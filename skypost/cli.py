from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from .builder import BuildOptions, PostDraft, build_post
from .collaborators import BlobStore, IdentityResolver
from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import BuildError, ConfigError, PublishError
from .record import PostRecord
from .run_log import RunLogger
from .xrpc import XrpcClient


def _add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--text", required=True, help="Post text.")
    parser.add_argument(
        "--config",
        help="Path to YAML config file (defaults apply when omitted).",
    )
    parser.add_argument(
        "--lang",
        action="append",
        default=[],
        help="Language tag; repeat for several.",
    )
    parser.add_argument(
        "--image",
        action="append",
        default=[],
        help="Path to a PNG, JPEG or GIF image; repeat for several.",
    )
    parser.add_argument(
        "--alt",
        action="append",
        default=[],
        help="Alt text for the image in the same position.",
    )
    parser.add_argument(
        "--log",
        help="Append JSONL log lines to this file instead of stderr.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skypost")

    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser(
        "build",
        help="Assemble the post record and print it as JSON.",
    )
    _add_build_arguments(build)
    build.add_argument(
        "--offline",
        action="store_true",
        help="Use in-memory handle table and blob store instead of the server.",
    )
    build.set_defaults(_handler=_cmd_build)

    post = subparsers.add_parser(
        "post",
        help="Assemble the post record and publish it.",
    )
    _add_build_arguments(post)
    post.add_argument(
        "--repo",
        help="Repository (DID or handle) to publish into; overrides server.repo.",
    )
    post.set_defaults(_handler=_cmd_post)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _load(args: argparse.Namespace) -> AppConfig:
    if args.config:
        return load_config(args.config)
    return AppConfig()


def _open_logger(args: argparse.Namespace) -> RunLogger:
    if args.log:
        return RunLogger.open(Path(args.log))
    return RunLogger(stream=sys.stderr)


def _draft_from_args(args: argparse.Namespace) -> PostDraft:
    draft = PostDraft(text=args.text)
    for lang in args.lang:
        draft = draft.with_language(lang)

    alts = list(args.alt)
    for i, path in enumerate(args.image):
        alt = alts[i] if i < len(alts) else ""
        try:
            draft = draft.with_image_path(path, alt)
        except OSError as e:
            raise ConfigError(f"Failed to read image {path}: {e}") from e
    return draft


def _run_build(
    cfg: AppConfig,
    draft: PostDraft,
    *,
    identity: IdentityResolver,
    blobs: BlobStore,
    log: RunLogger,
) -> PostRecord:
    log.info(
        "build_started",
        text_bytes=len(draft.text.encode("utf-8")),
        images=len(draft.images),
        languages=list(draft.languages),
    )
    try:
        record = build_post(
            draft,
            identity=identity,
            blobs=blobs,
            options=BuildOptions.from_config(cfg),
            faults=log,
        )
    except BuildError as e:
        log.exception("build_failed", exc=e, stage=e.stage)
        raise

    log.info(
        "build_completed",
        facets=len(record.facets),
        images=len(record.images),
        created_at=record.created_at,
    )
    return record


def _cmd_build(args: argparse.Namespace) -> int:
    cfg = _load(args)
    draft = _draft_from_args(args)

    with _open_logger(args) as log:
        log.info("config_loaded", config_sha256=config_sha256(cfg))

        identity: IdentityResolver
        blobs: BlobStore
        if args.offline:
            from .offline import OfflineBlobStore, OfflineIdentityResolver

            identity = OfflineIdentityResolver()
            blobs = OfflineBlobStore()
        else:
            secrets = resolve_runtime_secrets(cfg) if draft.images else None
            client = XrpcClient.from_config(cfg, secrets, on_retry=log.retry)
            identity = client
            blobs = client

        record = _run_build(cfg, draft, identity=identity, blobs=blobs, log=log)

    print(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _cmd_post(args: argparse.Namespace) -> int:
    cfg = _load(args)
    repo = (args.repo or "").strip() or cfg.server.repo
    if not repo:
        raise ConfigError("No repository to publish into: set server.repo or pass --repo")

    secrets = resolve_runtime_secrets(cfg)
    draft = _draft_from_args(args)

    with _open_logger(args) as log:
        client = XrpcClient.from_config(cfg, secrets, on_retry=log.retry)
        record = _run_build(cfg, draft, identity=client, blobs=client, log=log)

        try:
            created = client.create_record(repo, record)
        except PublishError as e:
            log.exception("publish_failed", exc=e, repo=repo)
            raise
        log.info("publish_completed", uri=created.uri, cid=created.cid)

    print(f"uri={created.uri}")
    print(f"cid={created.cid}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (BuildError, PublishError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
