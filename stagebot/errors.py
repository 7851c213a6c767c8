"""Exception hierarchy for Stagebot."""


class StagebotError(Exception):
    """Base exception for all Stagebot errors."""


class ConfigError(StagebotError):
    """Missing or invalid configuration."""


class DiffParseError(StagebotError):
    """A unified diff header could not be parsed."""

    def __init__(self, line: str, message: str = "unparsable hunk header") -> None:
        self.line = line
        super().__init__(f"{message}: {line[:200]}")


class GitError(StagebotError):
    """A git invocation failed."""

    def __init__(self, command: list[str], returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{' '.join(command)} exited {returncode}: {stderr[:200]}")
