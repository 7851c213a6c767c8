"""Parse unified diffs into per-file patches with post-change line tracking."""

import logging
import re

from .errors import DiffParseError
from .models.review import ADD, CONTEXT, DELETE, Hunk, Patch, normalize_path

logger = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_GIT_HEADER = re.compile(r'^diff --git "?a/.*?"? "?b/(?P<path>.+?)"?$')


def parse_hunk_header(line: str) -> tuple[int, int, int]:
    """Return ``(new_start, old_count, new_count)`` for an ``@@`` header.

    Raises:
        DiffParseError: the header does not follow ``@@ -a[,b] +c[,d] @@``.
    """
    match = _HUNK_HEADER.match(line)
    if not match:
        raise DiffParseError(line)
    old_count = int(match.group(2)) if match.group(2) is not None else 1
    new_start = int(match.group(3))
    new_count = int(match.group(4)) if match.group(4) is not None else 1
    return new_start, old_count, new_count


def _target_path(line: str) -> str | None:
    """Path from a ``+++`` line, or None for ``/dev/null``."""
    path = line[4:].split("\t", 1)[0].strip()
    if path == "/dev/null":
        return None
    if path.startswith("b/"):
        path = path[2:]
    return path


def _git_header_path(line: str) -> str | None:
    """b-side path from a ``diff --git a/X b/X`` line."""
    match = _GIT_HEADER.match(line)
    return match.group("path") if match else None


class _FileBuilder:
    """Accumulates hunks for one file while the diff is being read."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.hunks: list[Hunk] = []
        self._start = 0
        self._lines: list[str] | None = None

    def open_hunk(self, start: int) -> None:
        self.close_hunk()
        self._start = start
        self._lines = []

    def add(self, line: str) -> None:
        if self._lines is not None:
            self._lines.append(line)

    def close_hunk(self) -> None:
        if self._lines is not None:
            self.hunks.append(Hunk(start_line=self._start, lines=tuple(self._lines)))
        self._lines = None

    def build(self) -> Patch:
        self.close_hunk()
        return Patch(file_path=self.path, hunks=tuple(self.hunks))


def parse_diff(raw_diff: str) -> list[Patch]:
    """Parse a unified diff (one or more files) into patches.

    Context and addition lines are stored with their marker; deletion lines
    only consume the old-side line budget and are not stored. A file with no
    hunks still yields a patch, including ``diff --git`` sections with no
    ``---``/``+++`` pair (mode changes, binary files, renames). A malformed
    ``@@`` header skips that hunk's body only; the rest of the diff is still
    decomposed.
    """
    patches: list[Patch] = []
    current: _FileBuilder | None = None
    # current came from a ``diff --git`` line and its ``+++`` line is still due
    from_git_header = False
    old_left = new_left = 0
    in_hunk = False
    skipping = False

    def finish() -> None:
        nonlocal current, from_git_header
        if current is not None:
            patches.append(current.build())
        current = None
        from_git_header = False

    lines = raw_diff.splitlines()
    for i, line in enumerate(lines):
        if skipping:
            next_line = lines[i + 1] if i + 1 < len(lines) else ""
            starts_file = line.startswith("--- ") and next_line.startswith("+++ ")
            if not (line.startswith("@@") or line.startswith("diff --git ") or starts_file):
                continue
            skipping = False

        if in_hunk and (old_left > 0 or new_left > 0):
            if line.startswith(ADD):
                current.add(line)
                new_left -= 1
                continue
            if line.startswith(DELETE):
                old_left -= 1
                continue
            if line.startswith(CONTEXT) or line == "":
                current.add(line or CONTEXT)
                old_left -= 1
                new_left -= 1
                continue
            if line.startswith("\\"):
                continue
            # Header counts overstated the body; fall through and treat
            # this line as diff structure.
            logger.debug("[diff] Hunk body ended early in %s", current.path)
        in_hunk = False

        if line.startswith("diff --git "):
            finish()
            path = _git_header_path(line)
            if path is not None:
                current = _FileBuilder(path)
                from_git_header = True
            continue

        if line.startswith("deleted file mode") and from_git_header:
            logger.debug("[diff] Skipping deleted file %s", current.path)
            current = None
            from_git_header = False
            continue

        if line.startswith("--- "):
            if not from_git_header:
                finish()
            continue

        if line.startswith("+++ "):
            path = _target_path(line)
            if from_git_header:
                current = None
                from_git_header = False
            finish()
            if path is None:
                logger.debug("[diff] Skipping deleted file")
                continue
            current = _FileBuilder(path)
            continue

        if line.startswith("@@"):
            if current is None:
                skipping = True
                continue
            try:
                start, old_left, new_left = parse_hunk_header(line)
            except DiffParseError as e:
                logger.warning("[diff] Skipping hunk in %s: %s", current.path, e)
                current.close_hunk()
                skipping = True
                continue
            current.open_hunk(start)
            in_hunk = True
            continue

        if line.startswith("\\"):
            continue

    finish()
    return patches


def changed_lines(patch: Patch) -> list[int]:
    """Sorted post-change line numbers of the additions in ``patch``."""
    return sorted(patch.added_lines())


class ChangedLineIndex:
    """Maps each file to the post-change lines added in this review.

    Built once per review request from its patches and threaded through
    the pipeline; there is no process-wide instance.
    """

    def __init__(self, patches: list[Patch]) -> None:
        self._lines: dict[str, set[int]] = {}
        for patch in patches:
            self._lines.setdefault(patch.normalized_path, set()).update(patch.added_lines())

    def lines_for(self, file_path: str) -> set[int]:
        return set(self._lines.get(normalize_path(file_path), ()))

    def intersects(self, file_path: str, start: int, end: int | None = None) -> bool:
        """True if any line in ``start..end`` (inclusive) was added in ``file_path``."""
        lines = self._lines.get(normalize_path(file_path))
        if not lines:
            return False
        end = start if end is None else end
        return any(start <= n <= end for n in lines)
