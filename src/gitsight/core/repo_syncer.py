"""Clone-or-pull synchronization of repository working copies.

Network operations retry transient failures (timeouts, dropped connections,
other git errors) with exponential backoff. Authentication and not-found
failures are never retried.
"""

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

import git
from git import Repo

from ..config.schema import RepositoryConfig
from ..errors import NetworkError, RepositoryAccessError

logger = logging.getLogger(__name__)


# Error strings that mark a failure as permanent.
_AUTH_ERROR_TOKENS = ("authentication", "permission denied", "401", "403")
_NOT_FOUND_TOKENS = ("repository not found", "404", "does not exist")


@dataclass
class SyncResult:
    """Outcome of syncing one repository."""

    repo_name: str
    action: str
    """One of ``cloned``, ``pulled`` or ``skipped``."""

    elapsed_seconds: float = 0.0
    attempts: int = 1


def _build_git_env() -> dict[str, str]:
    """Build a subprocess environment that disables interactive git prompts."""
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_ASKPASS"] = ""
    env["GCM_INTERACTIVE"] = "never"
    return env


def _is_permanent(message: str) -> bool:
    lowered = message.lower()
    return any(tok in lowered for tok in _AUTH_ERROR_TOKENS + _NOT_FOUND_TOKENS)


class RepoSyncer:
    """Bring a repository's working copy up to date before extraction.

    - Path missing, remote configured: clone (``-b branch`` when one is set).
    - Path present: pull from the tracking remote (``origin`` when the branch
      tracks nothing) unless pulling is disabled.
    - Path missing, no remote: ``RepositoryAccessError``.

    Args:
        disable_pull: Leave existing working copies untouched
        max_retries: Retries after the first attempt for transient failures
        backoff_factor: Wait ``backoff_factor ** attempt`` seconds between attempts
        timeout_seconds: Per-attempt clone timeout
        sleep: Replaceable for tests
    """

    def __init__(
        self,
        disable_pull: bool = False,
        max_retries: int = 3,
        backoff_factor: float = 2,
        timeout_seconds: int = 300,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.disable_pull = disable_pull
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.timeout_seconds = timeout_seconds
        self.sleep = sleep

    def sync(self, descriptor: RepositoryConfig) -> SyncResult:
        """Clone or pull ``descriptor``'s working copy.

        Raises:
            RepositoryAccessError: If there is neither a working copy nor a remote
            NetworkError: If the network operation failed; ``retryable`` is False
                for authentication and not-found failures
        """
        if not descriptor.path.exists():
            if not descriptor.remote:
                raise RepositoryAccessError(
                    descriptor.name, f"{descriptor.path} does not exist and no remote is configured"
                )
            return self._with_retry(descriptor, "cloned", lambda: self._clone(descriptor))

        if self.disable_pull:
            logger.debug(f"Pull disabled, using {descriptor.name} as is")
            return SyncResult(repo_name=descriptor.name, action="skipped", attempts=0)

        return self._with_retry(descriptor, "pulled", lambda: self._pull(descriptor))

    def _with_retry(
        self, descriptor: RepositoryConfig, action: str, operation: Callable[[], None]
    ) -> SyncResult:
        last_error: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                wait_time = self.backoff_factor**attempt
                logger.info(
                    f"Retry {attempt}/{self.max_retries} for {descriptor.name} in {wait_time}s"
                )
                self.sleep(wait_time)

            start_time = time.time()
            try:
                operation()
            except subprocess.TimeoutExpired:
                last_error = f"timed out after {self.timeout_seconds}s"
                logger.warning(f"{descriptor.name}: {last_error}")
                if descriptor.path.exists() and action == "cloned":
                    # Remove the partial clone before retrying
                    shutil.rmtree(descriptor.path, ignore_errors=True)
                continue
            except (git.GitCommandError, subprocess.CalledProcessError) as e:
                last_error = str(getattr(e, "stderr", None) or e).strip()
                if _is_permanent(last_error):
                    raise NetworkError(descriptor.name, last_error, retryable=False) from e
                logger.warning(f"{descriptor.name}: {last_error}")
                continue

            elapsed = time.time() - start_time
            logger.info(f"{descriptor.name}: {action} ({elapsed:.1f}s)")
            return SyncResult(
                repo_name=descriptor.name,
                action=action,
                elapsed_seconds=elapsed,
                attempts=attempt + 1,
            )

        raise NetworkError(
            descriptor.name,
            f"giving up after {self.max_retries + 1} attempts: {last_error}",
            retryable=True,
        )

    def _clone(self, descriptor: RepositoryConfig) -> None:
        descriptor.path.parent.mkdir(parents=True, exist_ok=True)
        cmd = ["git", "clone", "--config", "credential.helper="]
        if descriptor.branch:
            cmd.extend(["-b", descriptor.branch])
        cmd.extend([descriptor.remote, str(descriptor.path)])

        logger.info(f"Cloning {descriptor.name} from {descriptor.remote}")
        result = subprocess.run(
            cmd,
            env=_build_git_env(),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=self.timeout_seconds,
        )
        if result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, cmd, result.stdout, result.stderr)

    def _pull(self, descriptor: RepositoryConfig) -> None:
        try:
            repo = Repo(descriptor.path)
        except (git.InvalidGitRepositoryError, git.NoSuchPathError) as e:
            raise RepositoryAccessError(descriptor.name, f"not a git repository: {e}") from e

        try:
            # A detached HEAD has nothing to fast-forward
            tracking = None if repo.head.is_detached else repo.active_branch.tracking_branch()
            remote_name = tracking.remote_name if tracking is not None else "origin"
            if remote_name not in [remote.name for remote in repo.remotes]:
                logger.debug(f"{descriptor.name} has no remote '{remote_name}', skipping pull")
                return

            remote = repo.remote(remote_name)
            with repo.git.custom_environment(GIT_TERMINAL_PROMPT="0", GCM_INTERACTIVE="never"):
                remote.fetch()
                if tracking is not None:
                    remote.pull()
                else:
                    logger.debug(f"{descriptor.name}: no tracking branch, fetched only")
        finally:
            repo.close()
