"""Pydantic-based runtime settings for the browser.

Loads from environment variables (with optional .env file).
Invalid values fail fast when settings are first built.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class EmbeddingBackend(str, Enum):
    none = "none"            # let Chroma embed query text itself
    fastembed = "fastembed"


class RuntimeSettings(BaseSettings):
    """All configuration for chroma-lens, validated at startup."""

    model_config = {"env_prefix": "", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # --- ChromaDB ---
    chroma_host: str | None = Field(
        default=None,
        description="Chroma server host; unset means a local client at chroma_path",
    )
    chroma_port: int = Field(default=8000, description="Chroma server port")
    chroma_ssl: bool = Field(default=False, description="Use HTTPS for the Chroma server")
    chroma_path: str = Field(
        default="./.chroma",
        description="Local persistence directory, or ':memory:' for an ephemeral client",
    )

    # --- Embeddings ---
    embedding_provider: EmbeddingBackend = Field(
        default=EmbeddingBackend.none,
        description="How semantic queries are embedded",
    )
    embedding_model_id: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="Embedding model identifier (fastembed only)",
    )

    # --- Browsing ---
    page_size_options: list[int] = Field(
        default_factory=lambda: [10, 25, 50, 100],
        description="Page sizes a user may pick",
    )
    default_page_size: int = Field(default=10, description="Initial page size")
    search_limit: int = Field(default=20, ge=1, le=100, description="Maximum search results")

    # --- Metadata catalog ---
    metadata_sample_size: int = Field(default=100, ge=1, le=10_000, description="Records sampled per refresh")
    metadata_sample_values: int = Field(default=5, ge=0, le=100, description="Example values kept per field")

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Root log level for the CLI and MCP server")

    @field_validator("chroma_port")
    @classmethod
    def _port_range(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f"chroma_port must be 1-65535, got {v}")
        return v

    @field_validator("page_size_options")
    @classmethod
    def _positive_options(cls, v: list[int]) -> list[int]:
        if not v or any(n < 1 for n in v):
            raise ValueError("page_size_options must be a non-empty list of positive sizes")
        return sorted(set(v))

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _default_size_is_an_option(self) -> RuntimeSettings:
        if self.default_page_size not in self.page_size_options:
            raise ValueError(
                f"default_page_size {self.default_page_size} is not one of {self.page_size_options}"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> RuntimeSettings:
    """Return the singleton RuntimeSettings (cached after first call)."""
    return RuntimeSettings()
