"""Parallel extraction of many repositories into one database."""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

import git
from tqdm import tqdm

from ..config.schema import RepositoryConfig
from ..errors import NetworkError, RepositoryAccessError, describe
from ..models.records import RepositoryHistory
from ..storage.table_store import TableStore
from .analyzer import HistoryExtractor
from .repo_syncer import RepoSyncer

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Counts for one batch run."""

    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    commits: int = 0
    changes: int = 0
    tags: int = 0
    snapshots: int = 0
    unparsable_commits: int = 0

    @property
    def skip_count(self) -> int:
        return len(self.skipped)

    @property
    def failed(self) -> bool:
        """True only when every repository in a non-empty batch was skipped."""
        return self.total > 0 and self.skip_count == self.total

    def merge(self, other: "BatchSummary") -> None:
        self.total += other.total
        self.succeeded.extend(other.succeeded)
        self.skipped.update(other.skipped)
        self.commits += other.commits
        self.changes += other.changes
        self.tags += other.tags
        self.snapshots += other.snapshots
        self.unparsable_commits += other.unparsable_commits


class ExtractionBatch:
    """Extract repositories on a bounded worker pool and persist their records.

    WHY: Extraction is dominated by git subprocess calls, so threads give real
    parallelism across repositories. Within one repository the walk is
    sequential. Records are written only from the calling thread, in the order
    the descriptors were given, which keeps the table store single-writer and
    the output files deterministic.

    A repository that cannot be synced, opened or walked is skipped with a
    warning; the rest of the batch continues.
    """

    def __init__(
        self,
        extractor: HistoryExtractor,
        store: TableStore,
        syncer: Optional[RepoSyncer] = None,
        max_workers: Optional[int] = None,
        show_progress: bool = True,
    ):
        self.extractor = extractor
        self.store = store
        self.syncer = syncer
        self.max_workers = max_workers or os.cpu_count() or 1
        self.show_progress = show_progress

    def _process(self, descriptor: RepositoryConfig) -> RepositoryHistory:
        if self.syncer is not None:
            self.syncer.sync(descriptor)
        return self.extractor.extract(descriptor)

    def run(self, descriptors: list[RepositoryConfig]) -> BatchSummary:
        """Extract every descriptor and append the records to the store.

        Raises:
            PersistenceError: If writing to the table store fails
        """
        summary = BatchSummary(total=len(descriptors))
        if not descriptors:
            logger.warning(f"No repositories configured for database '{self.store.name}'")
            return summary

        workers = min(self.max_workers, len(descriptors))
        logger.info(
            f"Extracting {len(descriptors)} repositories into '{self.store.name}' "
            f"with {workers} workers"
        )

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: list[tuple[RepositoryConfig, Future]] = [
                (descriptor, executor.submit(self._process, descriptor))
                for descriptor in descriptors
            ]

            progress = tqdm(
                futures,
                desc=f"Extracting {self.store.name}",
                unit="repo",
                disable=not self.show_progress,
            )
            for descriptor, future in progress:
                try:
                    history = future.result()
                except (RepositoryAccessError, NetworkError, git.GitError) as e:
                    reason = describe(e)
                    logger.warning(f"Skipping repository {descriptor.name}: {reason}")
                    summary.skipped[descriptor.name] = reason
                    continue
                except Exception as e:
                    reason = f"unexpected {type(e).__name__}: {describe(e)}"
                    logger.warning(f"Skipping repository {descriptor.name}: {reason}", exc_info=True)
                    summary.skipped[descriptor.name] = reason
                    continue

                self._write(history)
                summary.succeeded.append(descriptor.name)
                summary.commits += len(history.commits)
                summary.changes += len(history.changes)
                summary.tags += len(history.tags)
                summary.snapshots += len(history.snapshots)
                summary.unparsable_commits += history.unparsable_commits

        if summary.failed:
            logger.error(f"All {summary.total} repositories failed for '{self.store.name}'")
        elif summary.skipped:
            logger.warning(
                f"{summary.skip_count} of {summary.total} repositories skipped "
                f"for '{self.store.name}'"
            )
        return summary

    def _write(self, history: RepositoryHistory) -> None:
        self.store.append(history.commits)
        self.store.append(history.changes)
        self.store.append(history.tags)
        self.store.append(history.snapshots)
