"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Authentication for the generation backend is handled by the Claude Agent
    SDK itself, so no API key lives here. Temperature is only a hint: the
    SDK backend folds it into the system prompt.
    """

    # LLM models, one per call family
    llm_model_analysis: str = "claude-haiku-4-5"   # metadata, beats, style, lore, critique, chaos
    llm_model_drafting: str = "claude-opus-4-6"    # chapter streams and refinement passes

    # Storage
    project_db_path: Path = Path("./data/projects.db")

    # Context window
    context_max_chars: int = 800_000   # ~200k tokens at ~4 chars/token
    context_break_window: int = 5_000

    # Retry policy for rate-limited backend calls
    retry_max_attempts: int = 3
    retry_initial_delay: float = 2.0

    # Automation
    autopilot_delay: float = 2.0
    autosave_debounce: float = 5.0
    polish_min_chars: int = 100

    # Source ingestion
    source_chunk_words: int = 1000
    metadata_sample_chars: int = 150_000
    style_sample_chars: int = 50_000

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("retry_max_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_max_attempts must be >= 0")
        return v

    @field_validator("retry_initial_delay", "autopilot_delay", "autosave_debounce")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays must be non-negative")
        return v

    @field_validator(
        "context_max_chars", "context_break_window", "source_chunk_words",
        "metadata_sample_chars", "style_sample_chars",
    )
    @classmethod
    def validate_positive_sizes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Size limits must be positive")
        return v

    @field_validator("project_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_context_window(self) -> "Settings":
        if self.context_break_window >= self.context_max_chars:
            raise ValueError(
                f"context_break_window ({self.context_break_window}) must be less than "
                f"context_max_chars ({self.context_max_chars})"
            )
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
