"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """VitalScore server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; the MCP surface has no auth layer of its own.
    vitalscore_host: str = "127.0.0.1"
    vitalscore_port: int = 8001
    vitalscore_log_level: str = "info"
    vitalscore_allow_insecure_bind: bool = False

    # Weight advisory LLM ("none" disables the advisory call entirely)
    llm_provider: Literal["anthropic", "openai", "mock", "none"] = "none"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    advisory_timeout_seconds: float = 5.0
    advisory_cache_ttl_seconds: float = 86400.0

    # Default component weights (re-normalized at load time)
    default_hrv_weight: float = 0.30
    default_sleep_weight: float = 0.30
    default_recovery_weight: float = 0.20
    default_activity_weight: float = 0.20

    # Scoring
    lookback_days: int = 30

    # Storage (result store)
    db_path: str = "~/.vitalscore/health.db"

    # Encryption
    encryption_key: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
