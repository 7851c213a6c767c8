"""Recover the literal changed line a finding points at."""

import logging

from .models.review import Finding, Patch, normalize_path

logger = logging.getLogger(__name__)


def find_patch(patches: list[Patch], file_path: str) -> Patch | None:
    """Find the patch for a path reported by the model.

    Exact match first (separator and case insensitive), then a suffix match
    in either direction, since models often return partial paths.
    """
    target = normalize_path(file_path.strip())
    if not target:
        return None

    for patch in patches:
        if patch.normalized_path == target:
            return patch

    for patch in patches:
        candidate = patch.normalized_path
        if candidate and (candidate.endswith(target) or target.endswith(candidate)):
            return patch
    return None


def extract_code_snippet(patches: list[Patch], file_path: str, line_number: int) -> str:
    """Text of post-change line ``line_number`` without its diff marker, or ``""``."""
    patch = find_patch(patches, file_path)
    if patch is None:
        return ""
    for hunk in patch.hunks:
        for line_no, line in hunk.numbered():
            if line_no == line_number:
                return line[1:]
    return ""


def attach_snippets(findings: list[Finding], patches: list[Patch]) -> list[Finding]:
    """Fill ``code_snippet`` on each finding in place and return the list."""
    for finding in findings:
        finding.code_snippet = extract_code_snippet(patches, finding.file_path, finding.line_number)
        if not finding.code_snippet:
            logger.debug(
                "[snippet] No changed line for %s:%d", finding.file_path, finding.line_number,
            )
    return findings
