"""Assemble the outbound review request from rules, patterns and file context."""

import logging
from collections.abc import Iterable, Mapping
from pathlib import PurePosixPath

from .config import ContextSettings, PromptStyle
from .context_window import render_file_context
from .diff_parser import changed_lines
from .models.review import ADD, Check, CheckSeverity, Patch, ReviewPrompt

logger = logging.getLogger(__name__)

# Short persona used as the system message in the single-message layout
REVIEWER_PERSONA = (
    "You are an expert code reviewer. Analyze code changes and provide specific, "
    "actionable feedback. Focus on code quality, readability, potential bugs, "
    "security issues, and best practices."
)

REVIEW_INSTRUCTIONS = """You are a SENIOR SOFTWARE ENGINEER doing a THOROUGH code review. Be CRITICAL and DETAIL-ORIENTED.
Examine EVERY changed line carefully.

=== REVIEW CHECKLIST ===
SECURITY: injection, hardcoded secrets, insecure crypto, missing auth checks,
path traversal, insecure deserialization, sensitive data written to logs.
PERFORMANCE: N+1 queries, blocking calls in async code, repeated expensive work.
RELIABILITY: missing null/None checks, swallowed exceptions, resource leaks,
race conditions, unvalidated external input.
CODE QUALITY: vague or misspelled log messages, magic numbers, unclear names,
duplication, deep nesting, commented-out or dead code.
DOCUMENTATION: spelling and grammar in comments and strings, comments that
contradict the code they describe.

=== SEVERITY GUIDELINES ===
High: security holes, crashes, data corruption, production issues
Medium: performance degradation, poor error handling, maintainability issues
Low: style issues, minor improvements

=== CONFIDENCE GUIDELINES ===
High: objective issues (vulnerabilities, definite bugs, spelling errors)
Medium: code smells, performance concerns, best-practice violations
Low: subjective preferences, speculative improvements

=== OUTPUT FORMAT (MANDATORY) ===
For EACH issue, you MUST provide ALL fields:
FILE: <file path>
LINE: <line number>
SEVERITY: High|Medium|Low
CONFIDENCE: High|Medium|Low
ISSUE: <detailed explanation of the problem>
SUGGESTION: <specific, actionable improvement with reasoning>
FIXEDCODE: <the exact corrected line>
RULE: <category: Security|Performance|Reliability|Code Quality|Best Practices|Documentation>
CHECKID: <nnf-{id} for organization standards, repo-{id} for repository rules,
team-{rule} for patterns learned from team feedback, 'none' if no rule matches>
---

=== WHAT TO REVIEW ===
FULL FILE CONTEXT and PARTIAL FILE CONTEXT are for understanding only.
ONLY report issues on lines marked '← NEW LINE' or '←CHANGED'.
Report an unchanged line only when the change breaks it, and report it on the changed line.
"""

_SEVERITY_ICONS = {
    CheckSeverity.ERROR: "🔴",
    CheckSeverity.WARNING: "🟡",
    CheckSeverity.INFO: "🔵",
}

_CHECK_GROUPS = (
    ("repo-", "### 📁 REPOSITORY RULES (Highest Priority - use repo- prefix in CHECKID)"),
    ("nnf-", "### 📘 ORGANIZATION STANDARDS (use nnf- prefix in CHECKID)"),
    ("team-", "### 📚 TEAM LEARNING (use team- prefix in CHECKID)"),
)
_OTHER_CHECKS = "### 🤖 OTHER CHECKS (use 'none' in CHECKID)"

COMPACT_CHECK_LIMIT = 5


def estimate_tokens(text: str | None) -> int:
    """Rough token count: one token per four characters."""
    return len(text or "") // 4


def _extension(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).suffix.lower()


def relevant_checks(checks: Iterable[Check], file_paths: Iterable[str]) -> list[Check]:
    """Checks that apply to at least one reviewed file extension."""
    extensions = {_extension(p) for p in file_paths} - {""}
    return [
        c for c in checks
        if not c.applies_to or any(ext.lower() in extensions for ext in c.applies_to)
    ]


def _format_check(check: Check) -> list[str]:
    icon = _SEVERITY_ICONS[check.severity]
    lines = [f"- {icon} **{check.id}** [{check.severity.value}]: {check.description}"]
    if check.guidance:
        lines.append(f"  → {check.guidance}")
    return lines


def format_checks(checks: list[Check]) -> str:
    """Render checks grouped by id prefix, so the model can tag CHECKID."""
    if not checks:
        return ""

    out = [
        "## CODING STANDARDS TO ENFORCE",
        "",
        "Use the check ID exactly as shown in the CHECKID field.",
        "",
    ]
    claimed: set[str] = set()
    for prefix, title in _CHECK_GROUPS:
        group = [c for c in checks if c.id.lower().startswith(prefix)]
        if not group:
            continue
        out.append(title)
        for check in group:
            out.extend(_format_check(check))
            claimed.add(check.id)
        out.append("")

    others = [c for c in checks if c.id not in claimed]
    if others:
        out.append(_OTHER_CHECKS)
        for check in others:
            out.extend(_format_check(check))
        out.append("")
    return "\n".join(out)


def format_changed_lines(patch: Patch) -> str:
    """The per-file CHANGED LINES section with post-change numbers."""
    out = ["CHANGED LINES (review these specifically):"]
    if not patch.hunks:
        out.append("(no hunks)")
    for hunk in patch.hunks:
        out.append(f"Starting at line {hunk.start_line}:")
        for line_no, line in hunk.numbered():
            if line.startswith(ADD):
                out.append(f"{line_no}: + {line[1:]}  ← NEW LINE")
            else:
                out.append(f"{line_no}:   {line[1:]}  (context)")
        out.append("")
    return "\n".join(out)


def _file_section(
    patch: Patch,
    source: str | None,
    settings: ContextSettings,
) -> str:
    parts = [f"=== File: {patch.file_path} ===", ""]
    if source is not None:
        parts.append(render_file_context(source, changed_lines(patch), settings))
    parts.append(format_changed_lines(patch))
    return "\n".join(parts)


def build_user_prompt(
    patches: list[Patch],
    sources: Mapping[str, str | None] | None = None,
    checks: Iterable[Check] = (),
    learned_patterns: str | None = None,
    additional_context: str | None = None,
    settings: ContextSettings | None = None,
) -> str:
    """Build the per-request part of the prompt.

    ``sources`` maps a patch's file path to the current file text; a missing
    or None entry means the file is shown through its diff lines only.
    """
    settings = settings or ContextSettings()
    sources = sources or {}
    paths = [p.file_path for p in patches]
    file_types = ", ".join(sorted({_extension(p) for p in paths} - {""})) or "(none)"

    sections = [f"## FILES TO REVIEW ({len(patches)} files)\nFile types: {file_types}\n"]

    rules = format_checks(relevant_checks(checks, paths))
    if rules:
        sections.append(rules)

    if learned_patterns:
        sections.append(learned_patterns.rstrip() + "\n")

    if additional_context:
        sections.append(
            "## USER'S SPECIFIC REQUEST (HIGHEST PRIORITY)\n"
            "The following request takes precedence over all other checks.\n"
            f"{additional_context.strip()}\n"
        )

    sections.append(
        "## REVIEW PRIORITY ORDER\n"
        "1. User's specific request (if provided above)\n"
        "2. Repository rules\n"
        "3. Organization standards\n"
        "If rules conflict, follow the higher priority source.\n"
    )

    sections.append("## CODE CONTEXT AND CHANGES\n")
    for patch in patches:
        sections.append(_file_section(patch, sources.get(patch.file_path), settings))

    return "\n".join(sections)


def build_prompt(
    patches: list[Patch],
    sources: Mapping[str, str | None] | None = None,
    checks: Iterable[Check] = (),
    learned_patterns: str | None = None,
    additional_context: str | None = None,
    style: PromptStyle = "optimized",
    settings: ContextSettings | None = None,
) -> ReviewPrompt:
    """Build the review request in either message layout.

    ``optimized`` keeps the static instructions in the system message so the
    provider can cache them; ``legacy`` sends one user message with
    everything and a short persona as the system message.
    """
    user = build_user_prompt(
        patches, sources, checks, learned_patterns, additional_context, settings,
    )
    if style == "legacy":
        system, user = REVIEWER_PERSONA, f"{REVIEW_INSTRUCTIONS}\n{user}"
    else:
        system = REVIEW_INSTRUCTIONS

    tokens = estimate_tokens(system) + estimate_tokens(user)
    logger.debug("[prompt] %s prompt: ~%d tokens (system %d chars, user %d chars)",
                 style, tokens, len(system), len(user))
    return ReviewPrompt(system=system, user=user, style=style, estimated_tokens=tokens)


def build_compact_prompt(patches: list[Patch], checks: Iterable[Check] = ()) -> ReviewPrompt:
    """A minimal prompt for when the full one would exceed the token budget.

    Only the most critical checks and the added lines are included.
    """
    out = ["Review these changes:", ""]

    critical = [c for c in checks if c.severity == CheckSeverity.ERROR][:COMPACT_CHECK_LIMIT]
    if critical:
        out.append("Critical checks:")
        out.extend(f"- {c.id}: {c.description}" for c in critical)
        out.append("")

    out.append("```diff")
    for patch in patches:
        out.append(f"--- {patch.file_path}")
        for hunk in patch.hunks:
            out.append(f"@@ +{hunk.start_line},{len(hunk.lines)} @@")
            out.extend(line for line in hunk.lines if line.startswith(ADD))
    out.append("```")

    user = "\n".join(out)
    tokens = estimate_tokens(REVIEW_INSTRUCTIONS) + estimate_tokens(user)
    return ReviewPrompt(system=REVIEW_INSTRUCTIONS, user=user, style="compact", estimated_tokens=tokens)
