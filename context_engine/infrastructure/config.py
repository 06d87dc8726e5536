"""Configuration management for the context engine."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROMPTS_PATH = Path(__file__).resolve().parent.parent / "domain" / "llm" / "prompts"


class ContextSettings(BaseSettings):
    """Context engine settings loaded from ``CONTEXT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Ranking: combined = relevance_weight * stored relevance + query_weight * query score
    relevance_weight: float = Field(default=0.5, ge=0.0, description="Weight of stored relevance")
    query_weight: float = Field(default=0.5, ge=0.0, description="Weight of query-time score")

    # Pruning
    max_items_per_session: int = Field(default=200, ge=1, description="Capacity cap for default pruning")
    prune_default_max_relevance: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Relevance ceiling when only an age threshold is given"
    )

    # External collaborator timeouts
    scorer_timeout_seconds: float = Field(default=2.0, gt=0, description="Bound on one retrieval's scoring")
    summarizer_timeout_seconds: float = Field(default=30.0, gt=0, description="Bound on one summarizer call")

    # Summarization
    default_summary_max_tokens: int = Field(default=1000, ge=1)
    summary_cache_ttl_seconds: int = Field(default=300, ge=0, description="0 disables the summary cache")
    prompts_path: Path = Field(default=DEFAULT_PROMPTS_PATH, description="Root directory of prompt templates")
    summary_prompt_name: str = Field(default="context/summary")
    token_encoding: str = Field(default="cl100k_base", description="tiktoken encoding for token estimates")

    # Registration defaults
    default_conversation_relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    default_code_relevance: float = Field(default=0.5, ge=0.0, le=1.0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or console")
    configure_logging: bool = Field(default=True, description="Configure structlog on initialize()")

    @model_validator(mode="after")
    def check_weights(self) -> "ContextSettings":
        if self.relevance_weight + self.query_weight <= 0:
            raise ValueError("relevance_weight and query_weight must not both be zero")
        return self


@lru_cache
def get_settings() -> ContextSettings:
    """Get cached settings instance."""
    return ContextSettings()
