"""
Configuration management.

Loads settings from environment variables and .env file.
Prefix: MNEMOS_
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MNEMOS_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Data storage directory")
    cache_file: str = Field(default="memories.bin", description="Binary memory cache file")
    queue_file: str = Field(default="sync-queue.json", description="Pending sync operations file")

    # Embeddings
    embedding_model: str = Field(
        default="text-embedding-3-small", description="LiteLLM embedding model"
    )
    embedding_dim: int = Field(default=1536, description="Embedding vector length")
    embedding_api_key: str = Field(
        default="", description="Embedding API key (falls back to provider env vars)"
    )

    # Notion
    notion_api_key: str = Field(default="", description="Notion integration token")
    notion_database_id: str = Field(default="", description="Notion memories database ID")
    notion_title_property: str = Field(
        default="Name", description="Database title property holding memory text"
    )
    notion_version: str = Field(default="2022-06-28", description="Notion-Version header")

    # Sync queue
    max_queue_size: int = Field(default=100, description="Max pending sync operations")
    max_retries: int = Field(default=3, description="Attempts before dropping an operation")
    retry_delays: list[float] = Field(
        default=[1.0, 2.0, 4.0], description="Backoff delays in seconds"
    )
    sync_on_open: bool = Field(default=True, description="Reconcile with Notion on startup")

    @property
    def cache_path(self) -> Path:
        return self.data_dir / self.cache_file

    @property
    def queue_path(self) -> Path:
        return self.data_dir / self.queue_file


def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
