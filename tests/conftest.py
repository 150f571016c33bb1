"""Shared fixtures: temporary directories and real git repositories."""

import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import git
import pytest
from git import Actor, Repo

ALICE = ("Alice", "alice@example.com")


def git_date(iso: str) -> str:
    """Convert an ISO 8601 timestamp with offset into git's internal date format."""
    moment = datetime.fromisoformat(iso)
    offset_minutes = int(moment.utcoffset().total_seconds()) // 60
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{int(moment.timestamp())} {sign}{hours:02d}{minutes:02d}"


def commit_files(
    repo: Repo,
    files: dict[str, Optional[Union[str, bytes]]],
    message: str = "change",
    author: tuple[str, str] = ALICE,
    date: str = "2021-10-12T10:00:00+02:00",
) -> git.Commit:
    """Write (or delete, for None) files in the working tree and commit them."""
    root = Path(repo.working_tree_dir)
    to_add, to_remove = [], []
    for name, content in files.items():
        path = root / name
        if content is None:
            to_remove.append(name)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        to_add.append(name)

    if to_add:
        repo.index.add(to_add)
    if to_remove:
        repo.index.remove(to_remove, working_tree=True)

    actor = Actor(*author)
    stamp = git_date(date)
    return repo.index.commit(
        message, author=actor, committer=actor, author_date=stamp, commit_date=stamp
    )


def init_repo(path: Path) -> Repo:
    repo = Repo.init(path)
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Test User")
        cw.set_value("user", "email", "test@example.com")
        cw.set_value("commit", "gpgsign", "false")
        cw.set_value("tag", "gpgsign", "false")
    return repo


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def linear_repo(temp_dir):
    """Three commits on ``main``: add two files, edit one, delete one."""
    repo = init_repo(temp_dir / "linear")
    commit_files(
        repo,
        {"app.py": "import os\n\n# entry point\nprint(os.name)\n", "README": "hello\n"},
        message="initial",
        date="2021-10-11T09:00:00+02:00",
    )
    repo.git.branch("-M", "main")
    commit_files(
        repo,
        {"app.py": "import os\n\n# entry point\nprint(os.name)\nprint('done')\n"},
        message="extend",
        author=("Bob", "bob@Y.com"),
        date="2021-10-12T23:30:00+09:00",
    )
    commit_files(repo, {"README": None}, message="drop readme", date="2021-10-13T08:15:00-05:00")
    yield repo
    repo.close()


@pytest.fixture
def merge_repo(temp_dir):
    """A mainline with a merged feature branch.

    main:    A --- C --- M
                \\      /
    feature:     B ---
    """
    repo = init_repo(temp_dir / "merged")
    commit_files(repo, {"core.py": "a = 1\n"}, message="A", date="2021-01-01T10:00:00+00:00")
    repo.git.branch("-M", "main")

    repo.git.checkout("-b", "feature")
    commit_files(
        repo,
        {"feature.js": "// feature\nlet x = 1;\nlet y = 2;\n"},
        message="B",
        date="2021-01-02T10:00:00+00:00",
    )

    repo.git.checkout("main")
    commit_files(repo, {"core.py": "a = 1\nb = 2\n"}, message="C", date="2021-01-03T10:00:00+00:00")

    with repo.git.custom_environment(
        GIT_AUTHOR_DATE=git_date("2021-01-04T10:00:00+00:00"),
        GIT_COMMITTER_DATE=git_date("2021-01-04T10:00:00+00:00"),
    ):
        repo.git.merge("feature", "--no-ff", "-m", "M")
    yield repo
    repo.close()


@pytest.fixture
def make_commit():
    """The ``commit_files`` helper, for tests that grow a fixture repository."""
    return commit_files


@pytest.fixture
def make_repo():
    """The ``init_repo`` helper, for tests that need several repositories."""
    return init_repo
