"""Tree-level code statistics: blob totals and per-extension line counts."""

import logging
import re
from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass

import git
from git.objects.blob import Blob

from ..utils.commit_utils import normalize_extension

logger = logging.getLogger(__name__)

_C_STYLE = (r"^\s*//", r"^\s*/\*", r"^\s*\*")
_HASH_STYLE = (r"^\s*#",)
_MARKUP = (r"^\s*<!--",)

# Line-comment prefixes per extension. A line is a comment when it starts with
# one of these after leading whitespace; block comment bodies are only
# recognized where their lines carry a leading ``*``.
COMMENT_PATTERNS: dict[str, tuple[str, ...]] = {
    "py": _HASH_STYLE + (r'^\s*"""', r"^\s*'''"),
    "js": _C_STYLE,
    "jsx": _C_STYLE,
    "ts": _C_STYLE,
    "tsx": _C_STYLE,
    "java": _C_STYLE,
    "kt": _C_STYLE,
    "scala": _C_STYLE,
    "go": _C_STYLE,
    "rs": _C_STYLE,
    "swift": _C_STYLE,
    "c": _C_STYLE,
    "h": _C_STYLE,
    "cc": _C_STYLE,
    "cpp": _C_STYLE,
    "hpp": _C_STYLE,
    "cs": _C_STYLE,
    "css": (r"^\s*/\*", r"^\s*\*"),
    "scss": _C_STYLE,
    "html": _MARKUP,
    "xml": _MARKUP,
    "vue": _C_STYLE + _MARKUP,
    "sh": _HASH_STYLE,
    "bash": _HASH_STYLE,
    "zsh": _HASH_STYLE,
    "rb": _HASH_STYLE,
    "pl": _HASH_STYLE,
    "r": _HASH_STYLE,
    "yaml": _HASH_STYLE,
    "yml": _HASH_STYLE,
    "toml": _HASH_STYLE,
    "sql": (r"^\s*--", r"^\s*/\*", r"^\s*\*"),
    "lua": (r"^\s*--",),
    "hs": (r"^\s*--", r"^\s*\{-"),
    "php": _C_STYLE + _HASH_STYLE,
}

_COMPILED = {ext: [re.compile(p) for p in patterns] for ext, patterns in COMMENT_PATTERNS.items()}

# Same heuristic git uses: a NUL byte in the first 8000 bytes marks a binary blob.
_BINARY_SNIFF_BYTES = 8000


@dataclass(frozen=True)
class TreeTotals:
    """Blob size and count across a tree."""

    size: int
    files: int


@dataclass
class LineCounts:
    """Code, comment and blank line counts for one extension."""

    code: int = 0
    comment: int = 0
    blank: int = 0


class CodeStatsAnalyzer:
    """Compute statistics over the tree of a commit.

    Only regular blobs are counted. Symlinks (mode 120000) and submodule
    entries (mode 160000, commits in another repository) are skipped.
    """

    @staticmethod
    def iter_blobs(tree: git.Tree) -> Iterator[Blob]:
        for item in tree.traverse():
            if item.type != "blob" or item.mode == Blob.link_mode:
                continue
            yield item

    def tree_totals(self, commit: git.Commit) -> TreeTotals:
        """Return the summed blob size in bytes and the blob count at ``commit``."""
        size = 0
        files = 0
        for blob in self.iter_blobs(commit.tree):
            size += blob.size
            files += 1
        return TreeTotals(size=size, files=files)

    def line_counts(self, commit: git.Commit) -> dict[str, LineCounts]:
        """Classify every line of every text blob at ``commit``, keyed by extension.

        Binary blobs are skipped. Extensions without known comment syntax count
        every non-blank line as code.
        """
        counts: dict[str, LineCounts] = defaultdict(LineCounts)
        for blob in self.iter_blobs(commit.tree):
            data = blob.data_stream.read()
            if b"\0" in data[:_BINARY_SNIFF_BYTES]:
                continue
            ext = normalize_extension(blob.path)
            classify_lines(data.decode("utf-8", errors="replace"), ext, counts[ext])
        return dict(counts)


def classify_lines(content: str, ext: str, into: LineCounts) -> LineCounts:
    """Add the blank/comment/code classification of ``content`` to ``into``."""
    patterns = _COMPILED.get(ext, ())
    for line in content.splitlines():
        if not line.strip():
            into.blank += 1
        elif any(pattern.match(line) for pattern in patterns):
            into.comment += 1
        else:
            into.code += 1
    return into
