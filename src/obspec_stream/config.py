"""Reader and copy configuration loaded from arguments or environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from obspec_stream.errors import ConfigError
from obspec_stream.readers import DEFAULT_CHUNK_SIZE, DEFAULT_RETRIES

DEFAULT_PART_SIZE = 5 * 1024 * 1024


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigError(f"Environment variable {name} is required")
    return value


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


@dataclass(frozen=True)
class StreamConfig:
    """Which object to stream and how.

    Load from environment using StreamConfig.from_env().
    Sizes in bytes.
    """

    bucket: str
    key: str
    chunk_size: int = DEFAULT_CHUNK_SIZE
    retries: int = DEFAULT_RETRIES

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.retries < 0:
            raise ConfigError(f"retries must be non-negative, got {self.retries}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> StreamConfig:
        """Load configuration from environment variables.

        Required environment variables:
            AWS_BUCKET_FROM: source bucket
            AWS_KEY_FROM: source object key

        Optional environment variables (with defaults):
            STREAM_CHUNK_SIZE: maximum bytes per range request (1 MiB)
            STREAM_RETRIES: body read retries per object (3)
        """
        env = os.environ if env is None else env
        return cls(
            bucket=_require(env, "AWS_BUCKET_FROM"),
            key=_require(env, "AWS_KEY_FROM"),
            chunk_size=_int(env, "STREAM_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            retries=_int(env, "STREAM_RETRIES", DEFAULT_RETRIES),
        )


@dataclass(frozen=True)
class CopyConfig:
    """Source object plus the destination of a cross-bucket copy."""

    source: StreamConfig
    bucket: str
    key: str
    part_size: int = DEFAULT_PART_SIZE

    def __post_init__(self) -> None:
        if self.part_size <= 0:
            raise ConfigError(f"part_size must be positive, got {self.part_size}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> CopyConfig:
        """Load configuration from environment variables.

        Adds to the StreamConfig.from_env() variables:
            AWS_BUCKET_TO: destination bucket (required)
            AWS_KEY_TO: destination key (required)
            COPY_PART_SIZE: upload part size (5 MiB)
        """
        env = os.environ if env is None else env
        return cls(
            source=StreamConfig.from_env(env),
            bucket=_require(env, "AWS_BUCKET_TO"),
            key=_require(env, "AWS_KEY_TO"),
            part_size=_int(env, "COPY_PART_SIZE", DEFAULT_PART_SIZE),
        )


__all__ = ["CopyConfig", "DEFAULT_PART_SIZE", "StreamConfig"]
