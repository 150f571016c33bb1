"""Utility modules for GitSight."""

from .commit_utils import (
    EMPTY_TREE_SHA,
    diff_base,
    first_parent,
    is_initial_commit,
    is_merge_commit,
    normalize_extension,
)

__all__ = [
    "EMPTY_TREE_SHA",
    "diff_base",
    "first_parent",
    "is_initial_commit",
    "is_merge_commit",
    "normalize_extension",
]
