"""Per-request review pipeline: diff → context → prompt, and reply → findings.

Every call works on state it builds itself (patches, changed-line index,
prompt), so one pipeline can serve concurrent reviews.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .config import ContextSettings, ReviewSettings
from .context_window import read_source
from .diff_parser import ChangedLineIndex, parse_diff
from .errors import ConfigError
from .git import find_repo_root, get_staged_diff
from .models.review import Check, Patch, ReviewPrompt, ReviewReport
from .prompt import build_compact_prompt, build_prompt
from .response_parser import parse_review_response
from .snippets import attach_snippets

logger = logging.getLogger(__name__)

# (system, user) -> model reply text
Completion = Callable[[str, str], Awaitable[str]]


@dataclass(frozen=True)
class PreparedReview:
    """Patches decomposed from the diff and the request built from them."""

    patches: list[Patch]
    prompt: ReviewPrompt


class ReviewPipeline:
    """Turns a diff into a review request and the model's reply into findings."""

    def __init__(
        self,
        settings: ReviewSettings | None = None,
        context_settings: ContextSettings | None = None,
    ) -> None:
        self.settings = settings or ReviewSettings()
        self.context_settings = context_settings or ContextSettings()

    def prepare(
        self,
        diff: str,
        repo_root: str | Path | None = None,
        sources: Mapping[str, str | None] | None = None,
        checks: Iterable[Check] = (),
        learned_patterns: str | None = None,
        additional_context: str | None = None,
    ) -> PreparedReview:
        """Decompose ``diff`` and build the prompt.

        File text comes from ``sources`` when given, otherwise from the
        working tree under ``repo_root``. Files without text are reviewed
        from their diff lines alone.
        """
        patches = parse_diff(diff)
        logger.info("[review] Reviewing %d file(s)", len(patches))
        for patch in patches:
            logger.debug("[review]   %s: %d hunk(s)", patch.file_path, len(patch.hunks))

        texts: dict[str, str | None] = {}
        for patch in patches:
            if sources is not None and patch.file_path in sources:
                texts[patch.file_path] = sources[patch.file_path]
            else:
                texts[patch.file_path] = read_source(repo_root, patch.file_path)

        checks = list(checks)
        prompt = build_prompt(
            patches,
            texts,
            checks,
            learned_patterns,
            additional_context,
            style=self.settings.prompt_style,
            settings=self.context_settings,
        )
        if prompt.estimated_tokens > self.settings.max_prompt_tokens:
            logger.warning(
                "[review] Prompt ~%d tokens exceeds budget %d, using compact prompt",
                prompt.estimated_tokens, self.settings.max_prompt_tokens,
            )
            prompt = build_compact_prompt(patches, checks)

        return PreparedReview(patches=patches, prompt=prompt)

    def prepare_staged(
        self,
        start_dir: str | Path | None = None,
        checks: Iterable[Check] = (),
        learned_patterns: str | None = None,
        additional_context: str | None = None,
    ) -> PreparedReview:
        """Prepare a review of the changes staged in the enclosing repository."""
        repo_root = find_repo_root(start_dir)
        if not repo_root:
            raise ConfigError(f"not inside a git repository: {start_dir or Path.cwd()}")
        diff = get_staged_diff(repo_root, self.settings.diff_context_lines)
        return self.prepare(
            diff,
            repo_root=repo_root,
            checks=checks,
            learned_patterns=learned_patterns,
            additional_context=additional_context,
        )

    def finish(self, reply: str, patches: list[Patch]) -> ReviewReport:
        """Parse the model's reply and attach the changed code to each finding."""
        findings = attach_snippets(parse_review_response(reply), patches)
        if not findings and reply.strip():
            logger.warning("[review] No findings parsed; reply may not follow the output format")

        index = ChangedLineIndex(patches)
        for f in findings:
            if not index.intersects(f.file_path, f.line_number):
                logger.debug("[review] %s:%d is not an added line", f.file_path, f.line_number)
            logger.info("[review] %s:%d %s - %s", f.file_path, f.line_number, f.severity, f.issue)

        return ReviewReport.from_findings(findings)

    async def run(
        self,
        diff: str,
        complete: Completion,
        repo_root: str | Path | None = None,
        sources: Mapping[str, str | None] | None = None,
        checks: Iterable[Check] = (),
        learned_patterns: str | None = None,
        additional_context: str | None = None,
    ) -> ReviewReport:
        """Full review: prepare, ask the model through ``complete``, finish."""
        prepared = self.prepare(
            diff, repo_root, sources, checks, learned_patterns, additional_context,
        )
        if not prepared.patches:
            logger.info("[review] No reviewable changes")
            return ReviewReport()

        reply = await complete(prepared.prompt.system, prepared.prompt.user)
        return self.finish(reply or "", prepared.patches)
