"""Command line entry point: download, archive or copy objects by streaming them.

Examples
--------
Settings not given on the command line are read from the environment, or from
a ``.env`` file in the working directory::

    obspec-stream download files/1.jpeg /tmp/1.jpeg --bucket my-bucket
    obspec-stream tar /tmp/u.tar files/1.jpeg files/135mb.mp4
    AWS_BUCKET_TO=backup AWS_KEY_TO=copy.mp4 obspec-stream copy --key files/135mb.mp4
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import posixpath
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from obspec_stream.config import CopyConfig, StreamConfig
from obspec_stream.errors import StreamError
from obspec_stream.readers import RangeStreamReader
from obspec_stream.sinks import TarStreamWriter, copy_object, download_to_file

logger = logging.getLogger(__name__)


def _env_with(args: argparse.Namespace, **names: str) -> dict[str, str]:
    """Environment overlaid with the arguments that were given."""
    env = dict(os.environ)
    for attr, var in names.items():
        value = getattr(args, attr, None)
        if value is not None:
            env[var] = str(value)
    return env


def _stream_config(args: argparse.Namespace, key: str | None = None) -> StreamConfig:
    env = _env_with(
        args,
        bucket="AWS_BUCKET_FROM",
        key="AWS_KEY_FROM",
        chunk_size="STREAM_CHUNK_SIZE",
        retries="STREAM_RETRIES",
    )
    if key is not None:
        env["AWS_KEY_FROM"] = key
    return StreamConfig.from_env(env)


def _s3_store(bucket: str):
    from obstore.store import S3Store

    # Credentials and region come from the standard AWS_* variables
    return S3Store(bucket)


def _source_store(args: argparse.Namespace, config: StreamConfig):
    if args.http_base:
        from obspec_stream.stores import AiohttpStore

        return AiohttpStore(args.http_base)
    return _s3_store(config.bucket)


async def _download(args: argparse.Namespace) -> None:
    config = _stream_config(args)
    store = _source_store(args, config)
    async with await RangeStreamReader.from_config(store, config) as reader:
        await download_to_file(reader, args.dest, buffer_size=config.chunk_size)


async def _tar(args: argparse.Namespace) -> None:
    base = _stream_config(args, key=args.keys[0])
    store = _source_store(args, base)
    output = Path(args.output)
    try:
        with output.open("wb") as f:
            async with TarStreamWriter(f, buffer_size=base.chunk_size) as tar:
                for key in args.keys:
                    config = replace(base, key=key)
                    async with await RangeStreamReader.from_config(
                        store, config
                    ) as reader:
                        await tar.add(posixpath.basename(key), reader)
    except BaseException:
        output.unlink(missing_ok=True)
        raise
    logger.info("Archive %s written with %d members", args.output, len(args.keys))


async def _copy(args: argparse.Namespace) -> None:
    env = _env_with(
        args,
        bucket="AWS_BUCKET_FROM",
        key="AWS_KEY_FROM",
        chunk_size="STREAM_CHUNK_SIZE",
        retries="STREAM_RETRIES",
        to_bucket="AWS_BUCKET_TO",
        to_key="AWS_KEY_TO",
        part_size="COPY_PART_SIZE",
    )
    config = CopyConfig.from_env(env)
    source = _source_store(args, config.source)
    dest = _s3_store(config.bucket)
    async with await RangeStreamReader.from_config(source, config.source) as reader:
        await copy_object(reader, dest, config.key, part_size=config.part_size)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="obspec-stream",
        description="Stream objects from an object store by range requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--bucket", help="Source bucket (env: AWS_BUCKET_FROM)")
    common.add_argument(
        "--chunk-size",
        type=int,
        help="Maximum bytes per range request (env: STREAM_CHUNK_SIZE)",
    )
    common.add_argument(
        "--retries",
        type=int,
        help="Body read retries per object (env: STREAM_RETRIES)",
    )
    common.add_argument(
        "--http-base",
        default=None,
        help="Read from this HTTP base URL instead of S3",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    download = sub.add_parser(
        "download", parents=[common], help="Write an object to a local file"
    )
    download.add_argument("key", nargs="?", help="Source key (env: AWS_KEY_FROM)")
    download.add_argument("dest", help="Local destination path")
    download.set_defaults(func=_download)

    tar = sub.add_parser("tar", parents=[common], help="Build a tar of several objects")
    tar.add_argument("output", help="Archive path")
    tar.add_argument("keys", nargs="+", help="Source keys, stored under their basename")
    tar.set_defaults(func=_tar)

    copy = sub.add_parser(
        "copy", parents=[common], help="Copy an object to another bucket in parts"
    )
    copy.add_argument("--key", help="Source key (env: AWS_KEY_FROM)")
    copy.add_argument("--to-bucket", help="Destination bucket (env: AWS_BUCKET_TO)")
    copy.add_argument("--to-key", help="Destination key (env: AWS_KEY_TO)")
    copy.add_argument(
        "--part-size", type=int, help="Upload part size (env: COPY_PART_SIZE)"
    )
    copy.set_defaults(func=_copy)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(args.func(args))
    except StreamError as e:
        logger.error("%s", e)
        return 1
    return 0


__all__ = ["build_parser", "main"]
