"""Pydantic models for patches, review findings and configured checks."""

import uuid
from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

ADD = "+"
CONTEXT = " "
DELETE = "-"


def normalize_path(path: str) -> str:
    """Forward slashes, lower-case. Used for every path comparison."""
    return path.replace("\\", "/").lower()


class Hunk(BaseModel):
    """A contiguous block of changes anchored at a post-change line number.

    Each entry in ``lines`` keeps its one-character marker: ``" "`` for
    context, ``"+"`` for an addition, ``"-"`` for a deletion. Context and
    addition lines advance the post-change counter; deletions do not.
    """

    model_config = ConfigDict(frozen=True)

    start_line: int = Field(ge=0)
    lines: tuple[str, ...] = ()

    def numbered(self) -> Iterator[tuple[int, str]]:
        """Yield ``(post_change_line, line)`` for every context/addition line."""
        line_no = self.start_line
        for line in self.lines:
            if line.startswith(DELETE):
                continue
            yield line_no, line
            line_no += 1

    def added_lines(self) -> list[int]:
        return [n for n, line in self.numbered() if line.startswith(ADD)]

    @property
    def last_line(self) -> int:
        """Last post-change line touched, or ``start_line - 1`` when empty."""
        visible = sum(1 for line in self.lines if not line.startswith(DELETE))
        return self.start_line + visible - 1


class Patch(BaseModel):
    """The changes to one file, as an ordered sequence of hunks."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    hunks: tuple[Hunk, ...] = ()

    @property
    def normalized_path(self) -> str:
        return normalize_path(self.file_path)

    def added_lines(self) -> set[int]:
        """Post-change line numbers of every addition in this patch."""
        return {n for hunk in self.hunks for n in hunk.added_lines()}


def _review_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Finding(BaseModel):
    """One structured review comment recovered from the model's reply."""

    review_id: str = Field(default_factory=_review_id)
    file_path: str = ""
    line_number: int = 0
    severity: str = "Medium"
    confidence: str = "Medium"
    issue: str = ""
    suggestion: str = ""
    fixed_code: str = ""
    rule: str = ""
    check_id: str = ""
    # NNF (org standard), Repo (repo config), Team (learned), AI (model judgment)
    rule_source: str = "AI"
    code_snippet: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class CheckSeverity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


class RegexPattern(BaseModel):
    type: Literal["regex"] = "regex"
    value: str


class ListPattern(BaseModel):
    type: Literal["list"] = "list"
    value: list[str]


class MetricsPattern(BaseModel):
    type: Literal["metrics"] = "metrics"
    value: dict[str, int]


CheckPattern = Annotated[
    RegexPattern | ListPattern | MetricsPattern,
    Field(discriminator="type"),
]


class Check(BaseModel):
    """A configured review rule, as handed to the prompt assembler."""

    id: str
    applies_to: list[str] = Field(default_factory=list)
    severity: CheckSeverity = CheckSeverity.WARNING
    description: str = ""
    guidance: str = ""
    pattern: CheckPattern | None = None


class ReviewPrompt(BaseModel):
    """The outbound request body for one review."""

    system: str
    user: str
    style: Literal["legacy", "optimized", "compact"] = "optimized"
    estimated_tokens: int = 0


class ReviewReport(BaseModel):
    """Findings for one review plus per-severity counts."""

    findings: list[Finding] = Field(default_factory=list)
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_findings(cls, findings: list[Finding]) -> "ReviewReport":
        return cls(
            findings=findings,
            total=len(findings),
            high=sum(1 for f in findings if f.severity == "High"),
            medium=sum(1 for f in findings if f.severity == "Medium"),
            low=sum(1 for f in findings if f.severity == "Low"),
        )
