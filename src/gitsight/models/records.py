"""Typed records produced by history extraction.

Each record type is a frozen dataclass tagged with its ``RecordKind``. The
CSV column order of every table is fixed by ``TABLE_COLUMNS``; records are
only flattened into rows by the table store.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, field
from enum import Enum
from typing import ClassVar, Union


class RecordKind(str, Enum):
    """Table a record belongs to. The value doubles as the CSV file stem."""

    COMMIT = "commit"
    CHANGE = "change"
    TAG = "tag"
    SNAPSHOT = "snapshot"
    ACTIVE = "active"


TABLE_COLUMNS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.COMMIT: (
        "repo_name",
        "hash",
        "branch",
        "datetime",
        "author_name",
        "author_email",
        "author_domain",
    ),
    RecordKind.CHANGE: (
        "repo_name",
        "hash",
        "branch",
        "datetime",
        "author_name",
        "author_email",
        "author_domain",
        "ext",
        "insertion",
        "deletion",
    ),
    RecordKind.TAG: ("repo_name", "branch", "datetime", "tag", "size", "files"),
    RecordKind.SNAPSHOT: ("repo_name", "branch", "datetime", "ext", "code", "comment", "blank"),
    RecordKind.ACTIVE: ("repo_name", "stars", "forks"),
}

# Columns loaded as integers by the query engine; everything else is text.
INTEGER_COLUMNS = frozenset(
    {"insertion", "deletion", "size", "files", "code", "comment", "blank", "stars", "forks"}
)


@dataclass(frozen=True)
class Identity:
    """Author identity exactly as recorded by version control."""

    name: str
    email: str


@dataclass(frozen=True)
class CanonicalIdentity:
    """Identity after author mapping has been applied."""

    name: str
    email: str
    domain: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "domain", email_domain(self.email))


def email_domain(email: str) -> str:
    """Return the lowercased part of ``email`` after the first '@', or ''."""
    _, at, domain = email.partition("@")
    return domain.lower() if at else ""


@dataclass(frozen=True)
class CommitRecord:
    kind: ClassVar[RecordKind] = RecordKind.COMMIT

    repo_name: str
    hash: str
    branch: str
    datetime: str
    author_name: str
    author_email: str
    author_domain: str


@dataclass(frozen=True)
class ChangeRecord:
    kind: ClassVar[RecordKind] = RecordKind.CHANGE

    repo_name: str
    hash: str
    branch: str
    datetime: str
    author_name: str
    author_email: str
    author_domain: str
    ext: str
    insertion: int
    deletion: int

    def __post_init__(self) -> None:
        if self.insertion < 0 or self.deletion < 0:
            raise ValueError(
                f"Negative line counts for {self.hash[:8]}: +{self.insertion} -{self.deletion}"
            )


@dataclass(frozen=True)
class TagRecord:
    kind: ClassVar[RecordKind] = RecordKind.TAG

    repo_name: str
    branch: str
    datetime: str
    tag: str
    size: int
    files: int


@dataclass(frozen=True)
class SnapshotRecord:
    kind: ClassVar[RecordKind] = RecordKind.SNAPSHOT

    repo_name: str
    branch: str
    datetime: str
    ext: str
    code: int
    comment: int
    blank: int


@dataclass(frozen=True)
class ActiveRecord:
    kind: ClassVar[RecordKind] = RecordKind.ACTIVE

    repo_name: str
    stars: int
    forks: int


Record = Union[CommitRecord, ChangeRecord, TagRecord, SnapshotRecord, ActiveRecord]


def to_row(record: Record) -> tuple:
    """Flatten a record into a CSV row in ``TABLE_COLUMNS`` order."""
    return astuple(record)


@dataclass
class RepositoryHistory:
    """Everything extracted from one repository in one pass."""

    repo_name: str
    branch: str
    commits: list[CommitRecord] = field(default_factory=list)
    changes: list[ChangeRecord] = field(default_factory=list)
    tags: list[TagRecord] = field(default_factory=list)
    snapshots: list[SnapshotRecord] = field(default_factory=list)
    unparsable_commits: int = 0

    def records(self, kind: RecordKind) -> list[Record]:
        return {
            RecordKind.COMMIT: self.commits,
            RecordKind.CHANGE: self.changes,
            RecordKind.TAG: self.tags,
            RecordKind.SNAPSHOT: self.snapshots,
        }.get(kind, [])
