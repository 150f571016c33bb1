"""First-parent history traversal."""

import logging
from collections.abc import Iterator

import git

from ..utils.commit_utils import first_parent

logger = logging.getLogger(__name__)


class FirstParentWalker:
    """Walk a branch from its head down to the root along first parents.

    WHY: Following every parent of a merge visits the side branch's commits
    and, when merges are diffed against all parents, counts their changes
    twice. Following first parents gives each line change exactly one owner
    on the mainline: the side branch's work shows up once, as the diff of the
    merge commit against its first parent.

    The walk order depends only on the commit graph, so two walks of the same
    history always produce the same sequence.
    """

    def __init__(self, head: git.Commit):
        self.head = head

    def chain(self) -> list[git.Commit]:
        """Return the first-parent chain, oldest commit first."""
        commits = []
        seen = set()
        commit = self.head
        while commit is not None:
            if commit.hexsha in seen:
                # Only reachable with a corrupted object database
                raise ValueError(f"Cycle in first-parent chain at {commit.hexsha[:8]}")
            seen.add(commit.hexsha)
            commits.append(commit)
            commit = first_parent(commit)

        commits.reverse()
        logger.debug(f"First-parent chain from {self.head.hexsha[:8]}: {len(commits)} commits")
        return commits

    def __iter__(self) -> Iterator[git.Commit]:
        return iter(self.chain())

    def contains(self, commit: git.Commit) -> bool:
        """True if ``commit`` is reachable from the head through any parents."""
        if commit.hexsha == self.head.hexsha:
            return True
        return self.head.repo.is_ancestor(commit.hexsha, self.head.hexsha)
