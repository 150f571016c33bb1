"""Record types for GitSight tables."""

from .records import (
    INTEGER_COLUMNS,
    TABLE_COLUMNS,
    ActiveRecord,
    CanonicalIdentity,
    ChangeRecord,
    CommitRecord,
    Identity,
    Record,
    RecordKind,
    RepositoryHistory,
    SnapshotRecord,
    TagRecord,
    email_domain,
    to_row,
)

__all__ = [
    "INTEGER_COLUMNS",
    "TABLE_COLUMNS",
    "ActiveRecord",
    "CanonicalIdentity",
    "ChangeRecord",
    "CommitRecord",
    "Identity",
    "Record",
    "RecordKind",
    "RepositoryHistory",
    "SnapshotRecord",
    "TagRecord",
    "email_domain",
    "to_row",
]
