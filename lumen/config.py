"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Lumen configuration. All values come from environment variables."""

    # Anthropic (chat + auxiliary models)
    anthropic_api_key: str = Field(default="")
    default_chat_model: str = Field(default="sonnet")
    default_fast_model: str = Field(default="haiku")

    # Embedding providers, tried in order
    embedding_provider_order: str = Field(default="nvidia-nim,openai")
    embedding_dimension: int = Field(default=1536)
    openai_api_key: str = Field(default="")
    openai_base_url: str = Field(default="")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    nvidia_nim_api_key: str = Field(default="")
    nvidia_nim_base_url: str = Field(default="https://integrate.api.nvidia.com/v1")
    nvidia_nim_embedding_model: str = Field(default="nvidia/nv-embedqa-e5-v5")

    # Retrieval (SearxNG metasearch)
    searxng_url: str = Field(default="http://localhost:8080")
    scrape_max_bytes: int = Field(default=5 * 1024 * 1024)
    scrape_max_chars: int = Field(default=20000)

    # Database
    database_path: Path = Field(default=Path("data/lumen.db"))

    # Memory
    memory_timeout_seconds: float = Field(default=3.0)
    memory_extraction_enabled: bool = Field(default=True)
    memory_extraction_interval: int = Field(default=10)

    # Turn pipeline
    max_tool_steps: int = Field(default=10)
    stream_flush_chars: int = Field(default=15)
    stream_flush_interval_ms: int = Field(default=30)
    suggestions_enabled: bool = Field(default=True)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3001)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_embedding_provider_order(self) -> list[str]:
        """Parse EMBEDDING_PROVIDER_ORDER into a list of provider ids."""
        if not self.embedding_provider_order.strip():
            return []
        return [
            name.strip() for name in self.embedding_provider_order.split(",") if name.strip()
        ]


settings = Settings()
