"""Read staged changes from a local git working tree."""

import logging
import subprocess
from pathlib import Path

from .errors import GitError

logger = logging.getLogger(__name__)


def _run_git(args: list[str], cwd: str | Path) -> subprocess.CompletedProcess:
    cmd = ["git", *args]
    try:
        return subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise GitError(cmd, -1, str(e)) from e


def find_repo_root(start_dir: str | Path | None = None) -> str:
    """Top-level directory of the repository containing ``start_dir``.

    Returns an empty string when git is unavailable or the directory is not
    inside a repository.
    """
    try:
        result = _run_git(["rev-parse", "--show-toplevel"], start_dir or Path.cwd())
    except GitError as e:
        logger.debug("[git] %s", e)
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def get_staged_diff(repo_root: str | Path, context_lines: int = 30) -> str:
    """Unified diff of the staged changes, with ``context_lines`` of context.

    Raises:
        GitError: git could not be run or exited non-zero.
    """
    args = ["diff", "--cached", f"--unified={context_lines}"]
    result = _run_git(args, repo_root)
    if result.returncode != 0:
        raise GitError(["git", *args], result.returncode, result.stderr)
    logger.info("[git] Staged diff for %s: %d chars", repo_root, len(result.stdout))
    return result.stdout
