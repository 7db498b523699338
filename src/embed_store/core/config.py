"""Configuration for embedding store backends with pydantic-based settings."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChromaConfig(BaseSettings):
    """Configuration for ChromaDB connectivity."""

    model_config = SettingsConfigDict(
        env_prefix="CHROMADB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mode: str = Field(
        default="ephemeral",
        description="ChromaDB mode: 'client', 'persistent', or 'ephemeral'",
    )
    host: Optional[str] = Field(
        default=None, description="ChromaDB server host (for client mode)"
    )
    port: Optional[int] = Field(
        default=None, description="ChromaDB server port (for client mode)"
    )
    path: Optional[str] = Field(
        default=None, description="Persistent storage path (for persistent mode)"
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to wait for each ChromaDB server call (for client mode)",
    )

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Validate ChromaDB mode."""
        valid_modes = {"client", "persistent", "ephemeral"}
        if v not in valid_modes:
            raise ValueError(f"mode must be one of {valid_modes}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_mode_requirements(self) -> "ChromaConfig":
        """Fill client defaults and require a path for persistent mode."""
        if self.mode == "client":
            if not self.host:
                self.host = "localhost"
            if not self.port:
                self.port = 8000
        if self.mode == "persistent" and not self.path:
            raise ValueError("path is required when mode='persistent'")
        return self

    def is_client_mode(self) -> bool:
        return self.mode == "client"

    def is_persistent_mode(self) -> bool:
        return self.mode == "persistent"

    def is_ephemeral_mode(self) -> bool:
        return self.mode == "ephemeral"


class RedisConfig(BaseSettings):
    """Configuration for Redis connectivity."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: Optional[str] = Field(default=None, description="Redis connection URL")
    host: Optional[str] = Field(default=None, description="Redis server host")
    port: int = Field(default=6379, description="Redis server port")
    db: int = Field(default=0, ge=0, description="Redis database number")
    password: Optional[str] = Field(default=None, description="Redis password")
    socket_timeout: float = Field(
        default=5.0, gt=0.0, description="Socket timeout in seconds for Redis calls"
    )
    prefix: str = Field(
        default="embed_store:", description="Key prefix for stored entries"
    )

    def is_configured(self) -> bool:
        """Check if Redis is configured."""
        return self.url is not None or self.host is not None

    def is_url_based(self) -> bool:
        return self.url is not None


class StoreConfig(BaseSettings):
    """Configuration for embedding store selection and settings.

    Attributes:
        backend: Type of store ('memory', 'chroma' or 'redis')
        dimension: Fixed embedding dimension; inferred from the first insert if unset
        collection_name: Chroma collection / Redis namespace name
        missing_id_policy: Update behaviour for unknown ids (memory backend only)
        persist_path: JSON file the memory backend is loaded from, if it exists
        log_level: Logging level used by the API entrypoint
        chroma: ChromaDB configuration (used if backend='chroma')
        redis: Redis configuration (used if backend='redis')
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBED_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Literal["memory", "chroma", "redis"] = Field(
        default="memory", description="Store backend: 'memory', 'chroma' or 'redis'"
    )
    dimension: Optional[int] = Field(
        default=None, gt=0, description="Fixed embedding dimension"
    )
    collection_name: str = Field(
        default="embeddings", min_length=1, description="Name of the collection"
    )
    missing_id_policy: Literal["fail", "upsert", "ignore"] = Field(
        default="fail", description="Update behaviour for unknown ids (memory only)"
    )
    persist_path: Optional[str] = Field(
        default=None, description="JSON file backing the memory store (optional)"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    chroma: Optional[ChromaConfig] = Field(
        default=None, description="ChromaDB configuration (used if backend='chroma')"
    )
    redis: Optional[RedisConfig] = Field(
        default=None, description="Redis configuration (used if backend='redis')"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v}")
        return level

    @model_validator(mode="after")
    def validate_backend_config(self) -> "StoreConfig":
        """Load backend connectivity from the environment when not given."""
        if self.backend == "chroma" and self.chroma is None:
            self.chroma = ChromaConfig()
        if self.backend == "redis" and self.redis is None:
            self.redis = RedisConfig()
            if not self.redis.is_configured():
                raise ValueError(
                    "Redis configuration required when backend='redis'. "
                    "Set REDIS_URL or REDIS_HOST environment variable."
                )
        return self


def get_store_config() -> StoreConfig:
    """Get store configuration from environment variables."""
    return StoreConfig()


def get_chroma_config() -> ChromaConfig:
    """Get ChromaDB configuration from environment variables."""
    return ChromaConfig()


def get_redis_config() -> Optional[RedisConfig]:
    """Get Redis configuration from environment variables, or None if not configured."""
    config = RedisConfig()
    if not config.is_configured():
        return None
    return config
