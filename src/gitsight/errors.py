"""Exception hierarchy for GitSight.

Errors are split by how the pipeline reacts to them:

- ``RepositoryAccessError`` and ``HistoryParseError`` are recoverable. The
  repository (or commit) is skipped with a warning and the batch continues.
- ``FunctionArgumentError`` fails the query that triggered it and nothing else.
- ``PersistenceError`` aborts the write phase.
- ``NetworkError`` is retried when ``retryable`` is set, otherwise fatal for
  the source that raised it.

``ConfigurationError`` is fatal and aborts a run before any extraction starts.
"""

from pathlib import Path
from typing import Optional


class GitSightError(Exception):
    """Base class for all GitSight errors."""


class ConfigurationError(GitSightError):
    """Raised when configuration is missing, malformed, or inconsistent."""

    def __init__(self, message: str, config_path: Optional[Path] = None):
        self.config_path = config_path
        if config_path is not None:
            message = f"{message} (in {config_path})"
        super().__init__(message)


ConfigError = ConfigurationError


class RepositoryAccessError(GitSightError):
    """Raised when a repository cannot be opened, resolved, or walked."""

    def __init__(self, repo_name: str, reason: str):
        self.repo_name = repo_name
        self.reason = reason
        super().__init__(f"Repository '{repo_name}' is not accessible: {reason}")


class HistoryParseError(GitSightError):
    """Raised when the history of a single commit cannot be parsed."""

    def __init__(self, commit_hash: str, detail: str):
        self.commit_hash = commit_hash
        self.detail = detail
        super().__init__(f"Unparsable history for commit {commit_hash[:8]}: {detail}")


class FunctionArgumentError(GitSightError):
    """Raised when a query function receives a malformed argument."""

    def __init__(self, function: str, value: object, detail: str):
        self.function = function
        self.value = value
        self.detail = detail
        super().__init__(f"{function}({value!r}): {detail}")


class PersistenceError(GitSightError):
    """Raised when extracted records cannot be written to a table file."""


class NetworkError(GitSightError):
    """Raised when a network operation (clone, pull, API call) fails."""

    def __init__(self, source: str, detail: str, retryable: bool = True):
        self.source = source
        self.detail = detail
        self.retryable = retryable
        super().__init__(f"{source}: {detail}")


def describe(error: Optional[BaseException]) -> str:
    """Return a single-line description of an error for warning logs."""
    if error is None:
        return "unknown error"
    text = str(error).strip().splitlines()
    return text[0] if text else error.__class__.__name__


__all__ = [
    "GitSightError",
    "ConfigError",
    "ConfigurationError",
    "RepositoryAccessError",
    "HistoryParseError",
    "FunctionArgumentError",
    "PersistenceError",
    "NetworkError",
    "describe",
]
