"""Tests for StreamConfig and CopyConfig."""

import pytest

from obspec_stream.config import DEFAULT_PART_SIZE, CopyConfig, StreamConfig
from obspec_stream.errors import ConfigError
from obspec_stream.readers import DEFAULT_CHUNK_SIZE, DEFAULT_RETRIES


def test_stream_config_from_env_defaults():
    config = StreamConfig.from_env({"AWS_BUCKET_FROM": "src", "AWS_KEY_FROM": "a/b.bin"})

    assert config == StreamConfig(
        bucket="src",
        key="a/b.bin",
        chunk_size=DEFAULT_CHUNK_SIZE,
        retries=DEFAULT_RETRIES,
    )


def test_stream_config_from_env_overrides():
    config = StreamConfig.from_env(
        {
            "AWS_BUCKET_FROM": "src",
            "AWS_KEY_FROM": "k",
            "STREAM_CHUNK_SIZE": "100000",
            "STREAM_RETRIES": "0",
        }
    )
    assert config.chunk_size == 100_000
    assert config.retries == 0


def test_stream_config_reads_process_environment(monkeypatch):
    monkeypatch.setenv("AWS_BUCKET_FROM", "env-bucket")
    monkeypatch.setenv("AWS_KEY_FROM", "env-key")
    config = StreamConfig.from_env()
    assert (config.bucket, config.key) == ("env-bucket", "env-key")


@pytest.mark.parametrize(
    "env,match",
    [
        ({"AWS_KEY_FROM": "k"}, "AWS_BUCKET_FROM"),
        ({"AWS_BUCKET_FROM": "b"}, "AWS_KEY_FROM"),
        ({"AWS_BUCKET_FROM": "b", "AWS_KEY_FROM": "k", "STREAM_RETRIES": "x"}, "integer"),
        ({"AWS_BUCKET_FROM": "b", "AWS_KEY_FROM": "k", "STREAM_CHUNK_SIZE": "0"}, "positive"),
    ],
)
def test_stream_config_invalid(env, match):
    with pytest.raises(ConfigError, match=match):
        StreamConfig.from_env(env)


def test_copy_config_from_env():
    config = CopyConfig.from_env(
        {
            "AWS_BUCKET_FROM": "src",
            "AWS_KEY_FROM": "in.bin",
            "AWS_BUCKET_TO": "dst",
            "AWS_KEY_TO": "out.bin",
        }
    )
    assert config.source.bucket == "src"
    assert (config.bucket, config.key) == ("dst", "out.bin")
    assert config.part_size == DEFAULT_PART_SIZE


def test_copy_config_requires_destination():
    with pytest.raises(ConfigError, match="AWS_BUCKET_TO"):
        CopyConfig.from_env({"AWS_BUCKET_FROM": "src", "AWS_KEY_FROM": "in.bin"})


def test_copy_config_part_size():
    source = StreamConfig(bucket="a", key="b")
    with pytest.raises(ConfigError):
        CopyConfig(source=source, bucket="c", key="d", part_size=0)
