"""History extraction: commits, per-file changes, tags and snapshots of one repository."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import git
from git import Repo

from ..config.schema import RepositoryConfig
from ..errors import HistoryParseError, RepositoryAccessError
from ..models.records import (
    ChangeRecord,
    CommitRecord,
    Identity,
    RepositoryHistory,
    SnapshotRecord,
    TagRecord,
)
from ..utils.commit_utils import diff_base, normalize_extension
from .code_stats import CodeStatsAnalyzer
from .identity import AuthorNormalizer
from .traversal import FirstParentWalker

logger = logging.getLogger(__name__)


def parse_numstat(output: str, commit_hash: str) -> list[tuple[str, int, int]]:
    """Parse ``git diff --numstat -z --no-renames`` output.

    Each entry is ``<insertions>\\t<deletions>\\t<path>`` terminated by NUL.
    Binary files report ``-`` for both counts, which become 0.

    Returns:
        List of (path, insertions, deletions), one per touched file

    Raises:
        HistoryParseError: If an entry does not have the numstat shape
    """
    entries = []
    for entry in output.split("\0"):
        entry = entry.strip("\n")
        if not entry:
            continue

        parts = entry.split("\t", 2)
        if len(parts) != 3 or not parts[2]:
            raise HistoryParseError(commit_hash, f"malformed numstat entry {entry!r}")

        try:
            insertions = int(parts[0]) if parts[0] != "-" else 0
            deletions = int(parts[1]) if parts[1] != "-" else 0
        except ValueError as e:
            raise HistoryParseError(commit_hash, f"non-numeric counts in {entry!r}") from e

        if insertions < 0 or deletions < 0:
            raise HistoryParseError(commit_hash, f"negative counts in {entry!r}")

        entries.append((parts[2], insertions, deletions))
    return entries


def _offset_timezone(offset_west: int) -> timezone:
    # git stores offsets as seconds west of UTC
    return timezone(timedelta(seconds=-offset_west))


class HistoryExtractor:
    """Extract typed records from the history of one branch of a repository.

    WHY: Every extraction walks the first-parent chain of the branch and diffs
    each commit against its first parent, so aggregate line totals equal the
    diff between the root (empty tree) and the branch head, and running the
    extractor twice over unchanged history yields the same records.
    """

    def __init__(
        self,
        normalizer: Optional[AuthorNormalizer] = None,
        code_stats: Optional[CodeStatsAnalyzer] = None,
        capture_tags: bool = True,
        capture_snapshot: bool = True,
    ):
        self.normalizer = normalizer or AuthorNormalizer()
        self.code_stats = code_stats or CodeStatsAnalyzer()
        self.capture_tags = capture_tags
        self.capture_snapshot = capture_snapshot

    def extract(self, descriptor: RepositoryConfig) -> RepositoryHistory:
        """Extract all records for ``descriptor``.

        Raises:
            RepositoryAccessError: If the working copy cannot be opened, the
                branch cannot be resolved, or the history cannot be walked
        """
        repo = self._open(descriptor.name, descriptor.path)
        try:
            branch, head = self._resolve_branch(repo, descriptor)

            try:
                commits = FirstParentWalker(head).chain()
            except (git.GitCommandError, ValueError) as e:
                raise RepositoryAccessError(descriptor.name, f"history walk failed: {e}") from e

            history = RepositoryHistory(repo_name=descriptor.name, branch=branch)
            for commit in commits:
                self._extract_commit(repo, commit, history)

            if history.unparsable_commits:
                logger.warning(
                    f"{descriptor.name}: {history.unparsable_commits} commits had unparsable "
                    "diffs and were recorded without changes"
                )

            if self.capture_tags:
                history.tags = self._extract_tags(repo, descriptor.name, branch, head)

            if self.capture_snapshot:
                history.snapshots = self._extract_snapshot(descriptor.name, branch, head)

            logger.info(
                f"{descriptor.name}@{branch}: {len(history.commits)} commits, "
                f"{len(history.changes)} changes, {len(history.tags)} tags"
            )
            return history
        finally:
            repo.close()

    def _open(self, repo_name: str, path: Path) -> Repo:
        try:
            return Repo(path)
        except git.NoSuchPathError as e:
            raise RepositoryAccessError(repo_name, f"path does not exist: {path}") from e
        except git.InvalidGitRepositoryError as e:
            raise RepositoryAccessError(repo_name, f"not a git repository: {path}") from e

    def _resolve_branch(self, repo: Repo, descriptor: RepositoryConfig) -> tuple[str, git.Commit]:
        """Return the branch name and its head commit."""
        branch = descriptor.branch
        if not branch:
            try:
                branch = repo.active_branch.name
            except TypeError as e:
                # GitPython raises TypeError when HEAD is detached
                raise RepositoryAccessError(
                    descriptor.name, "HEAD is detached and no branch is configured"
                ) from e

        try:
            head = repo.commit(branch)
        except (git.BadName, git.GitCommandError, ValueError) as e:
            raise RepositoryAccessError(
                descriptor.name, f"branch '{branch}' cannot be resolved"
            ) from e

        return branch, head

    def _extract_commit(self, repo: Repo, commit: git.Commit, history: RepositoryHistory) -> None:
        identity = self.normalizer.normalize(
            Identity(name=commit.author.name or "", email=commit.author.email or "")
        )
        commit_record = CommitRecord(
            repo_name=history.repo_name,
            hash=commit.hexsha,
            branch=history.branch,
            datetime=commit.authored_datetime.isoformat(),
            author_name=identity.name,
            author_email=identity.email,
            author_domain=identity.domain,
        )
        history.commits.append(commit_record)

        try:
            entries = self._diff_entries(repo, commit)
        except HistoryParseError as e:
            logger.warning(f"{history.repo_name}: {e}")
            history.unparsable_commits += 1
            return

        for path, insertions, deletions in entries:
            history.changes.append(
                ChangeRecord(
                    repo_name=commit_record.repo_name,
                    hash=commit_record.hash,
                    branch=commit_record.branch,
                    datetime=commit_record.datetime,
                    author_name=commit_record.author_name,
                    author_email=commit_record.author_email,
                    author_domain=commit_record.author_domain,
                    ext=normalize_extension(path),
                    insertion=insertions,
                    deletion=deletions,
                )
            )

    def _diff_entries(self, repo: Repo, commit: git.Commit) -> list[tuple[str, int, int]]:
        try:
            output = repo.git.diff(
                diff_base(commit), commit.hexsha, "--numstat", "-z", "--no-renames", "--no-color"
            )
        except git.GitCommandError as e:
            raise HistoryParseError(commit.hexsha, f"git diff failed: {e.stderr or e}") from e
        return parse_numstat(output, commit.hexsha)

    def _extract_tags(
        self, repo: Repo, repo_name: str, branch: str, head: git.Commit
    ) -> list[TagRecord]:
        walker = FirstParentWalker(head)
        records = []
        for tag_ref in repo.tags:
            try:
                commit = tag_ref.commit
            except ValueError:
                # Tag points at a tree or blob rather than a commit
                logger.debug(f"{repo_name}: skipping non-commit tag {tag_ref.name}")
                continue

            try:
                if not walker.contains(commit):
                    continue
            except git.GitCommandError as e:
                logger.warning(f"{repo_name}: cannot check reachability of {tag_ref.name}: {e}")
                continue

            totals = self.code_stats.tree_totals(commit)
            records.append(
                TagRecord(
                    repo_name=repo_name,
                    branch=branch,
                    datetime=self._tag_datetime(tag_ref, commit).isoformat(),
                    tag=tag_ref.name,
                    size=totals.size,
                    files=totals.files,
                )
            )

        records.sort(key=lambda r: (r.datetime, r.tag))
        return records

    @staticmethod
    def _tag_datetime(tag_ref: git.TagReference, commit: git.Commit) -> datetime:
        """Annotated tags use their own creation time, lightweight tags their commit's."""
        tag_object = tag_ref.tag
        if tag_object is not None and tag_object.tagged_date:
            return datetime.fromtimestamp(
                tag_object.tagged_date, _offset_timezone(tag_object.tagger_tz_offset)
            )
        return commit.authored_datetime

    def _extract_snapshot(
        self, repo_name: str, branch: str, head: git.Commit
    ) -> list[SnapshotRecord]:
        stamp = head.authored_datetime.isoformat()
        return [
            SnapshotRecord(
                repo_name=repo_name,
                branch=branch,
                datetime=stamp,
                ext=ext,
                code=counts.code,
                comment=counts.comment,
                blank=counts.blank,
            )
            for ext, counts in sorted(self.code_stats.line_counts(head).items())
        ]
