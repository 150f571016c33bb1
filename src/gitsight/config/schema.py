"""Configuration dataclasses for GitSight."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class RepositoryConfig:
    """Descriptor for a single repository to extract.

    ``branch`` defaults to whatever is checked out in the working copy.
    ``stars`` and ``forks`` are only set for descriptors produced by the
    GitHub fetcher.
    """

    name: str
    path: Path
    branch: Optional[str] = None
    remote: Optional[str] = None
    stars: Optional[int] = None
    forks: Optional[int] = None

    def __post_init__(self) -> None:
        self.path = Path(self.path).expanduser().resolve()

    def to_dict(self) -> dict:
        """Serialize to the repo-descriptor YAML shape."""
        data = {"name": self.name, "path": str(self.path)}
        if self.branch:
            data["branch"] = self.branch
        if self.remote:
            data["remote"] = self.remote
        if self.stars is not None:
            data["stars"] = self.stars
        if self.forks is not None:
            data["forks"] = self.forks
        return data


@dataclass(frozen=True)
class AuthorConfig:
    """A (name, email) pair as it appears in an author mapping."""

    name: str
    email: str


@dataclass(frozen=True)
class AuthorMappingConfig:
    """Maps one source identity onto a destination identity."""

    source: AuthorConfig
    destination: AuthorConfig


@dataclass
class DatabaseConfig:
    """One destination directory and the repositories extracted into it."""

    directory: Path
    name: str
    files: list[Path] = field(default_factory=list)
    repositories: list[RepositoryConfig] = field(default_factory=list)


@dataclass
class CreateConfig:
    """Settings for the ``create`` (extract + persist) action."""

    databases: list[DatabaseConfig] = field(default_factory=list)
    author_mappings: list[AuthorMappingConfig] = field(default_factory=list)
    disable_pull: bool = False
    max_workers: Optional[int] = None


@dataclass
class GitHubFetchConfig:
    """One GitHub repository-list fetch job."""

    mode: str
    token: Optional[str]
    clone_dir: Path
    destination: Path
    username: Optional[str] = None
    org: Optional[str] = None
    visibility: Optional[str] = None
    affiliation: Optional[str] = None
    repo_type: Optional[str] = None
    exclude_orgs: list[str] = field(default_factory=list)
    exclude_repos: list[str] = field(default_factory=list)
    base_url: str = "https://api.github.com"
    max_retries: int = 3
    backoff_factor: int = 2

    VALID_MODES = ("authenticated", "user", "org")


@dataclass
class FetchConfig:
    """Settings for the ``fetch`` action."""

    github: list[GitHubFetchConfig] = field(default_factory=list)


@dataclass
class ExecutionConfig:
    """A database directory registered into the query engine under ``db_name``."""

    db_name: str
    directory: Path


@dataclass
class QueryConfig:
    """Settings for the ``query`` and ``shell`` actions."""

    executions: list[ExecutionConfig] = field(default_factory=list)


@dataclass
class Config:
    """Top-level configuration."""

    create: Optional[CreateConfig] = None
    fetch: Optional[FetchConfig] = None
    query: Optional[QueryConfig] = None
    config_path: Optional[Path] = None
