"""Centralized configuration via Pydantic BaseSettings.

Each concern has its own settings class with an env_prefix.
Settings are read from the environment when the class is instantiated.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

PromptStyle = Literal["legacy", "optimized"]


class ContextSettings(BaseSettings):
    """Context window policy for files shown to the reviewer model."""

    small_file_max_lines: int = Field(default=1000, ge=1)
    small_file_max_chars: int = Field(default=40_000, ge=1)
    header_lines: int = Field(default=200, ge=0)
    merge_gap: int = Field(default=100, ge=0)
    window_padding: int = Field(default=50, ge=0)

    model_config = {"env_prefix": "STAGEBOT_CONTEXT_"}


class ReviewSettings(BaseSettings):
    """Top-level Stagebot settings."""

    log_level: str = "INFO"
    log_buffer_size: int = Field(default=200, ge=1)
    prompt_style: PromptStyle = "optimized"
    max_prompt_tokens: int = Field(default=100_000, ge=1)
    diff_context_lines: int = Field(default=30, ge=0)

    model_config = {"env_prefix": "STAGEBOT_"}

    @model_validator(mode="after")
    def _normalize_log_level(self) -> "ReviewSettings":
        self.log_level = self.log_level.upper()
        return self
