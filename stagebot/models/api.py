"""Pydantic models for the review service's HTTP API."""

from pydantic import BaseModel, Field, field_validator

from .review import Check


class _DiffRequest(BaseModel):
    diff: str

    @field_validator("diff")
    @classmethod
    def _diff_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("diff must not be empty")
        return value


class PromptRequest(_DiffRequest):
    """Body of ``POST /review/prompt``.

    ``sources`` maps a changed file's path to its current text. Files not
    listed are shown to the model through their diff lines only.
    """

    sources: dict[str, str | None] = Field(default_factory=dict)
    checks: list[Check] = Field(default_factory=list)
    learned_patterns: str | None = None
    additional_context: str | None = None


class PromptResponse(BaseModel):
    system: str
    user: str
    style: str
    estimated_tokens: int
    files: list[str]


class ParseRequest(_DiffRequest):
    """Body of ``POST /review/parse``: the reviewed diff and the model's reply."""

    reply: str
