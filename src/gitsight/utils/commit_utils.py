"""Utilities for working with Git commit objects and paths."""

from pathlib import PurePosixPath
from typing import Optional

import git

# Object id of the empty tree; diffing a root commit against it lists every file as added.
EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


def is_merge_commit(commit: git.Commit) -> bool:
    """Determine if a commit is a merge commit.

    A merge commit is one with 2 or more parent commits. This includes:
    - Standard merges (2 parents)
    - Octopus merges (3+ parents)

    Args:
        commit: GitPython Commit object to check

    Returns:
        True if commit has 2 or more parents, False otherwise
    """
    return len(commit.parents) > 1


def is_initial_commit(commit: git.Commit) -> bool:
    """Determine if a commit is an initial commit (has no parents)."""
    return len(commit.parents) == 0


def first_parent(commit: git.Commit) -> Optional[git.Commit]:
    """Return the first parent of ``commit``, or None for a root commit."""
    if is_initial_commit(commit):
        return None
    return commit.parents[0]


def diff_base(commit: git.Commit) -> str:
    """Return the revision ``commit`` is diffed against.

    WHY: Merge commits are diffed against their first parent only, so a merged
    side branch shows up once, as the changes of the merge commit. Root commits
    are diffed against the empty tree.
    """
    parent = first_parent(commit)
    return parent.hexsha if parent is not None else EMPTY_TREE_SHA


def normalize_extension(path: str) -> str:
    """Return the lowercased extension of ``path`` without its leading dot.

    Files without an extension, and dotfiles such as ``.gitignore``, yield ''.

    Examples:
        >>> normalize_extension("src/Main.RS")
        'rs'
        >>> normalize_extension("Makefile")
        ''
    """
    return PurePosixPath(path).suffix[1:].lower()
