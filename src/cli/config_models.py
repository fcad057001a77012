"""Pydantic configuration models for taskbuffer."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from conversations.heuristics import DEFAULT_ACTION_INDICATORS
from shared_types import Environment

VALID_LLM_PROVIDERS = {"auto", "groq", "openai"}


def _expand_env(value: Optional[str]) -> Optional[str]:
    """Resolve a ``${VAR}`` reference; other values pass through."""
    if value and value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], "")
    return value


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "auto"
    model: Optional[str] = None  # None = use provider default
    api_key: Optional[str] = None
    timeout_seconds: float = 30.0

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_LLM_PROVIDERS:
            raise ValueError(f"Invalid LLM provider: {v}. Must be one of {VALID_LLM_PROVIDERS}")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {v}")
        return v


class PathsConfig(BaseModel):
    """File paths configuration."""

    db_path: Path = Path("~/.taskbuffer/taskbuffer.db")
    log_file: Optional[Path] = None

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.db_path = self.db_path.expanduser()
        if self.log_file:
            self.log_file = self.log_file.expanduser()
        return self


class BufferConfig(BaseModel):
    """Conversation buffering and early-release configuration."""

    buffer_minutes: float = 5
    silence_minutes: float = 3
    bucket_seconds: int = 300
    retention_days: float = 7
    min_messages_for_release: int = Field(default=2, ge=2)
    action_indicators: list[str] = Field(default_factory=lambda: list(DEFAULT_ACTION_INDICATORS))

    @model_validator(mode="after")
    def validate_windows(self):
        if self.silence_minutes <= 0 or self.buffer_minutes <= 0:
            raise ValueError("buffer_minutes and silence_minutes must be positive")
        if self.silence_minutes > self.buffer_minutes:
            raise ValueError(
                f"silence_minutes ({self.silence_minutes}) must not exceed "
                f"buffer_minutes ({self.buffer_minutes})"
            )
        if self.bucket_seconds <= 0:
            raise ValueError(f"bucket_seconds must be positive, got {self.bucket_seconds}")
        return self


class DedupConfig(BaseModel):
    """Duplicate suppression configuration."""

    lookback_hours: float = 48
    bypass_environments: list[str] = Field(default_factory=lambda: ["production"])
    model: Optional[str] = None  # None = llm.model
    max_tokens: int = 300
    temperature: float = 0.2
    policy_rules: Optional[str] = None  # None = built-in rules

    @field_validator("bypass_environments")
    @classmethod
    def validate_environments(cls, v: list[str]) -> list[str]:
        valid = {e.value for e in Environment}
        lowered = [e.lower() for e in v]
        unknown = [e for e in lowered if e not in valid]
        if unknown:
            raise ValueError(f"Unknown environments {unknown}. Must be among {sorted(valid)}")
        return lowered


class ExtractionConfig(BaseModel):
    """Action extraction configuration."""

    user_name: Optional[str] = None
    user_job_context: Optional[str] = None
    model: Optional[str] = None  # None = llm.model
    max_tokens: int = 2048
    temperature: float = 0.3


class SchedulerConfig(BaseModel):
    """Background sweep configuration."""

    sweep_interval_seconds: int = Field(default=60, ge=1)


class RetryConfig(BaseModel):
    """Retry/backoff configuration for rate-limited LLM calls."""

    max_attempts: int = Field(default=3, ge=1)


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_logs: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class PipelineConfig(BaseModel):
    """Main configuration model."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in secrets and free-text identity fields."""
        self.llm.api_key = _expand_env(self.llm.api_key)
        self.extraction.user_name = _expand_env(self.extraction.user_name)
        self.extraction.user_job_context = _expand_env(self.extraction.user_job_context)
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Create config from a parsed YAML mapping."""
        if "paths" in data:
            for key in ["db_path", "log_file"]:
                if isinstance(data["paths"].get(key), str):
                    data["paths"][key] = Path(data["paths"][key])
        return cls.model_validate(data)
