"""Build bounded, line-numbered source excerpts around changed lines.

Small files are shown whole. Large files get a fixed header (imports,
declarations, fields) followed by one window per cluster of nearby changes,
with explicit markers for the lines left out.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from .config import ContextSettings

logger = logging.getLogger(__name__)

CHANGED_MARKER = " ←CHANGED"

Window = tuple[int, int, list[int]]


def split_source(content: str) -> list[str]:
    """Split file text into lines, dropping ``\\r`` and the final empty line."""
    lines = content.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return [line.rstrip("\r") for line in lines]


def is_small_file(content: str, settings: ContextSettings | None = None) -> bool:
    settings = settings or ContextSettings()
    return (
        len(split_source(content)) <= settings.small_file_max_lines
        and len(content) <= settings.small_file_max_chars
    )


def cluster_changes(changes: Iterable[int], merge_gap: int = 100) -> list[Window]:
    """Greedily group sorted changes into ``(start, end, changes)`` windows.

    A change joins the current window when it is at most ``merge_gap``
    lines past the window's end.
    """
    ordered = sorted(set(changes))
    if not ordered:
        return []

    windows: list[Window] = []
    start = end = ordered[0]
    members = [ordered[0]]
    for line in ordered[1:]:
        if line - end <= merge_gap:
            end = line
            members.append(line)
        else:
            windows.append((start, end, members))
            start = end = line
            members = [line]
    windows.append((start, end, members))
    return windows


def _numbered(line_no: int, text: str, changed: set[int]) -> str:
    marker = CHANGED_MARKER if line_no in changed else ""
    return f"{line_no:>4}: {text}{marker}"


def _omitted(first: int, last: int) -> list[str]:
    return ["", f"...[lines {first}-{last} omitted] ...", ""]


def build_context_window(
    content: str,
    changed: Iterable[int],
    settings: ContextSettings | None = None,
) -> str:
    """Return the numbered excerpt of ``content`` to show the reviewer.

    Every emitted line is prefixed with its 1-based number, padded to four
    columns; lines in ``changed`` end with the changed marker.
    """
    settings = settings or ContextSettings()
    lines = split_source(content)
    changed_set = set(changed)
    total = len(lines)

    if is_small_file(content, settings):
        return "\n".join(_numbered(i, text, changed_set) for i, text in enumerate(lines, 1))

    header = min(settings.header_lines, total)
    out = [_numbered(i, lines[i - 1], changed_set) for i in range(1, header + 1)]

    last_end = header
    for start, end, _ in cluster_changes(changed_set, settings.merge_gap):
        if end <= last_end:
            continue
        window_start = max(last_end + 1, start - settings.window_padding)
        window_end = min(total, end + settings.window_padding)
        if window_end < window_start:
            continue
        if window_start > last_end + 1:
            out.extend(_omitted(last_end + 1, window_start - 1))
        out.extend(_numbered(i, lines[i - 1], changed_set) for i in range(window_start, window_end + 1))
        last_end = window_end

    if last_end < total:
        out.extend(_omitted(last_end + 1, total)[:-1])

    return "\n".join(out)


def render_file_context(
    content: str,
    changed: Iterable[int],
    settings: ContextSettings | None = None,
) -> str:
    """Wrap the context window in its title and code fence."""
    settings = settings or ContextSettings()
    block = build_context_window(content, changed, settings)
    if is_small_file(content, settings):
        title = "FULL FILE CONTEXT (for better understanding):"
    else:
        total = len(split_source(content))
        title = f"PARTIAL FILE CONTEXT (file has {total} lines, showing relevant sections):"
    return f"{title}\n```\n{block}\n```\n"


def read_source(repo_root: str | Path | None, file_path: str) -> str | None:
    """Read a reviewed file from the working tree.

    Returns None when there is no repo root, the path points outside it, or
    the file is missing, unreadable or not UTF-8; the review then goes ahead
    without context.
    """
    if not repo_root:
        return None
    root = Path(repo_root).resolve()
    path = root.joinpath(*file_path.replace("\\", "/").split("/")).resolve()
    if not path.is_relative_to(root):
        logger.warning("[context] Refusing to read %s outside %s", file_path, root)
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("[context] No source for %s: %s", file_path, e)
        return None
