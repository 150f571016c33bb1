"""Core extraction components."""

from .analyzer import HistoryExtractor
from .batch import BatchSummary, ExtractionBatch
from .code_stats import CodeStatsAnalyzer
from .identity import AuthorNormalizer
from .repo_syncer import RepoSyncer, SyncResult
from .traversal import FirstParentWalker

__all__ = [
    "AuthorNormalizer",
    "BatchSummary",
    "CodeStatsAnalyzer",
    "ExtractionBatch",
    "FirstParentWalker",
    "HistoryExtractor",
    "RepoSyncer",
    "SyncResult",
]
