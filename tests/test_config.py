"""Tests for configuration module."""

from pathlib import Path

from mnemos.core.config import Settings


def test_default_settings():
    """Settings load with defaults."""
    settings = Settings(
        _env_file=None,  # Don't load .env in tests
    )
    assert settings.data_dir == Path("data")
    assert settings.embedding_dim == 1536
    assert settings.max_queue_size == 100
    assert settings.max_retries == 3
    assert settings.retry_delays == [1.0, 2.0, 4.0]


def test_storage_paths():
    """Cache and queue paths combine data_dir and file names."""
    settings = Settings(
        data_dir=Path("/tmp/test"),
        cache_file="cache.bin",
        _env_file=None,
    )
    assert settings.cache_path == Path("/tmp/test/cache.bin")
    assert settings.queue_path == Path("/tmp/test/sync-queue.json")


def test_env_prefix(monkeypatch):
    """MNEMOS_ environment variables override defaults."""
    monkeypatch.setenv("MNEMOS_MAX_QUEUE_SIZE", "7")
    monkeypatch.setenv("MNEMOS_NOTION_DATABASE_ID", "db-123")
    settings = Settings(_env_file=None)
    assert settings.max_queue_size == 7
    assert settings.notion_database_id == "db-123"
