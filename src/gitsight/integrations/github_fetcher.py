"""GitHub repository-list fetcher.

Lists repositories through the GitHub API and writes them out as a
repo-descriptor YAML file (the ``files`` entries of a ``create`` database)
plus an ``active`` table with stars and forks.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from github import Auth, Github
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from ..config.schema import GitHubFetchConfig, RepositoryConfig
from ..errors import NetworkError, PersistenceError
from ..models.records import ActiveRecord, RecordKind
from ..storage.table_store import TableStore

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of one fetch job."""

    destination: Path
    repositories: list[RepositoryConfig]
    active: list[ActiveRecord] = field(default_factory=list)
    excluded: int = 0


class GitHubFetcher:
    """Fetch repository lists for an authenticated user, a named user or an organisation.

    Args:
        config: The fetch job
        client: Pre-built PyGithub client, mainly for tests
        sleep: Replaceable for tests
    """

    def __init__(
        self,
        config: GitHubFetchConfig,
        client: Optional[Github] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.sleep = sleep
        if client is not None:
            self.github = client
        elif config.token:
            self.github = Github(auth=Auth.Token(config.token), base_url=config.base_url)
        else:
            self.github = Github(base_url=config.base_url)

    def fetch(self) -> FetchResult:
        """List repositories, apply exclusions and write the descriptor file.

        The stars and forks of the listed repositories are returned in
        ``FetchResult.active``; see ``write_active_tables``.

        Raises:
            NetworkError: If the API call fails; ``retryable`` is False for bad
                credentials and unknown users or organisations
            PersistenceError: If the output files cannot be written
        """
        raw_repos = self._with_retry(self._list_repositories)

        repositories = []
        active = []
        excluded = 0
        for repo in raw_repos:
            owner = repo.owner.login
            if owner in self.config.exclude_orgs or (
                repo.full_name in self.config.exclude_repos or repo.name in self.config.exclude_repos
            ):
                excluded += 1
                continue

            repositories.append(
                RepositoryConfig(
                    name=repo.full_name,
                    path=self.config.clone_dir / owner / repo.name,
                    branch=repo.default_branch,
                    remote=repo.clone_url,
                    stars=repo.stargazers_count,
                    forks=repo.forks_count,
                )
            )
            active.append(
                ActiveRecord(
                    repo_name=repo.full_name,
                    stars=repo.stargazers_count,
                    forks=repo.forks_count,
                )
            )

        repositories.sort(key=lambda r: r.name)
        active.sort(key=lambda r: r.repo_name)

        destination = self.resolve_destination()
        self._write_descriptors(destination, repositories)

        logger.info(
            f"Fetched {len(repositories)} repositories ({excluded} excluded) into {destination}"
        )
        return FetchResult(
            destination=destination, repositories=repositories, active=active, excluded=excluded
        )

    def resolve_destination(self) -> Path:
        """Fill ``${user}`` and ``${org}`` placeholders in the destination path."""
        text = str(self.config.destination)
        if "${user}" in text:
            user = self.config.username or self._with_retry(lambda: self.github.get_user().login)
            text = text.replace("${user}", user)
        if "${org}" in text:
            text = text.replace("${org}", self.config.org or "")
        return Path(text)

    def _list_repositories(self) -> list[Any]:
        mode = self.config.mode
        if mode == "authenticated":
            params = {
                key: value
                for key, value in (
                    ("visibility", self.config.visibility),
                    ("affiliation", self.config.affiliation),
                    ("type", self.config.repo_type),
                )
                if value
            }
            return list(self.github.get_user().get_repos(**params))

        params = {"type": self.config.repo_type} if self.config.repo_type else {}
        if mode == "user":
            return list(self.github.get_user(self.config.username).get_repos(**params))
        return list(self.github.get_organization(self.config.org).get_repos(**params))

    def _with_retry(self, operation: Callable[[], Any]) -> Any:
        """Run ``operation``, retrying rate limits and server errors with backoff."""
        source = f"github:{self.config.mode}"
        for attempt in range(self.config.max_retries + 1):
            try:
                return operation()
            except BadCredentialsException as e:
                raise NetworkError(source, "bad credentials", retryable=False) from e
            except UnknownObjectException as e:
                target = self.config.username or self.config.org or "resource"
                raise NetworkError(source, f"{target} not found", retryable=False) from e
            except RateLimitExceededException as e:
                last_error: Exception = e
                reason = "rate limit hit"
            except GithubException as e:
                if e.status is None or e.status < 500:
                    raise NetworkError(source, f"HTTP {e.status}: {e.data}", retryable=False) from e
                last_error = e
                reason = f"server error {e.status}"

            if attempt < self.config.max_retries:
                wait_time = self.config.backoff_factor**attempt
                logger.warning(f"GitHub {reason}, waiting {wait_time}s...")
                self.sleep(wait_time)

        raise NetworkError(
            source, f"giving up after {self.config.max_retries + 1} attempts: {last_error}"
        ) from last_error

    @staticmethod
    def _write_descriptors(destination: Path, repositories: list[RepositoryConfig]) -> None:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    [repo.to_dict() for repo in repositories],
                    f,
                    sort_keys=False,
                    allow_unicode=True,
                )
        except OSError as e:
            raise PersistenceError(f"Cannot write repository list {destination}: {e}") from e


def write_active_tables(results: list[FetchResult]) -> dict[Path, int]:
    """Write the ``active`` table next to each fetch destination.

    Jobs whose destinations share a directory feed one table. A repository
    listed by more than one job keeps the counts of the last job.

    Returns:
        Number of rows written per directory

    Raises:
        PersistenceError: If a table cannot be written
    """
    by_directory: dict[Path, dict[str, ActiveRecord]] = {}
    for result in results:
        records = by_directory.setdefault(result.destination.parent, {})
        for record in result.active:
            records[record.repo_name] = record

    written = {}
    for directory, records in by_directory.items():
        rows = sorted(records.values(), key=lambda r: r.repo_name)
        written[directory] = TableStore(directory).write(RecordKind.ACTIVE, rows)
        logger.debug(f"Wrote {len(rows)} active rows to {directory}")
    return written
