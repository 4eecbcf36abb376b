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
    """Jarvis configuration. All values come from environment variables."""

    # Anthropic (chat + tool calling)
    anthropic_api_key: str = Field(default="")
    chat_model: str = Field(default="claude-sonnet-4-5-20250929")
    chat_max_tokens: int = Field(default=4096)

    # OpenAI (embeddings + speech synthesis)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")
    speech_model: str = Field(default="gpt-4o-mini-tts")
    speech_voice: str = Field(default="onyx")

    # Model backend: "local" talks to Anthropic directly, "remote" proxies
    # through another Jarvis server's /api/chat endpoints.
    model_backend: str = Field(default="local")
    remote_api_url: str = Field(default="http://localhost:3001")
    remote_api_token: str = Field(default="")

    # Database
    database_path: Path = Field(default=Path("data/jarvis.db"))

    # Turso (hosted libSQL); overrides database_path when set
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Auth: an empty secret means development mode (every caller is local-user)
    auth_jwt_secret: str = Field(default="")
    auth_jwt_audience: str = Field(default="authenticated")

    # Conversation / orchestration limits
    max_tool_rounds: int = Field(default=10)
    request_timeout_seconds: float = Field(default=30.0)
    max_embedding_chars: int = Field(default=50_000)
    context_snippet_chars: int = Field(default=700)
    context_max_results: int = Field(default=8)

    # Store caching
    list_cache_ttl_seconds: float = Field(default=30.0)
    item_cache_ttl_seconds: float = Field(default=300.0)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=3001)
    cors_origin: str = Field(default="http://localhost:3000")

    # Per-client request limits (0 disables a limit)
    rate_limit_general: int = Field(default=100)
    rate_limit_general_window_seconds: float = Field(default=900.0)
    rate_limit_chat: int = Field(default=50)
    rate_limit_chat_window_seconds: float = Field(default=3600.0)
    rate_limit_embedding: int = Field(default=200)
    rate_limit_embedding_window_seconds: float = Field(default=3600.0)

    # Timezone used for the date/time injected into prompts
    timezone: str = Field(default="UTC")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=_env_file(), env_file_encoding="utf-8", extra="forbid"
    )

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

    def is_remote_database(self) -> bool:
        """True when memories live on a hosted Turso database."""
        return bool(self.turso_database_url.strip())

    def auth_enabled(self) -> bool:
        """True when bearer tokens must be verified."""
        return bool(self.auth_jwt_secret.strip())

    def get_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGIN into a list of origins."""
        if not self.cors_origin.strip():
            return []
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]


settings = Settings()
