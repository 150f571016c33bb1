"""Tests for clone-or-pull repository synchronization."""

import subprocess
from unittest.mock import Mock, patch

import pytest

from gitsight.config.schema import RepositoryConfig
from gitsight.core.repo_syncer import RepoSyncer
from gitsight.errors import NetworkError, RepositoryAccessError


def completed(returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)


@pytest.fixture
def remote_descriptor(temp_dir):
    return RepositoryConfig(
        name="acme/app",
        path=temp_dir / "clones" / "acme" / "app",
        branch="main",
        remote="https://github.com/acme/app.git",
    )


class TestClone:
    def test_clone_command(self, remote_descriptor):
        syncer = RepoSyncer(sleep=Mock())
        with patch("gitsight.core.repo_syncer.subprocess.run", return_value=completed()) as run:
            result = syncer.sync(remote_descriptor)

        assert result.action == "cloned"
        assert result.attempts == 1
        cmd = run.call_args[0][0]
        assert cmd == [
            "git",
            "clone",
            "--config",
            "credential.helper=",
            "-b",
            "main",
            "https://github.com/acme/app.git",
            str(remote_descriptor.path),
        ]
        env = run.call_args[1]["env"]
        assert env["GIT_TERMINAL_PROMPT"] == "0"

    def test_auth_failure_not_retried(self, remote_descriptor):
        sleep = Mock()
        syncer = RepoSyncer(sleep=sleep)
        failure = completed(128, "remote: Authentication failed for 'https://github.com/acme/app.git'")
        with patch("gitsight.core.repo_syncer.subprocess.run", return_value=failure) as run:
            with pytest.raises(NetworkError) as exc_info:
                syncer.sync(remote_descriptor)

        assert exc_info.value.retryable is False
        assert run.call_count == 1
        sleep.assert_not_called()

    def test_not_found_not_retried(self, remote_descriptor):
        syncer = RepoSyncer(sleep=Mock())
        failure = completed(128, "ERROR: Repository not found.")
        with patch("gitsight.core.repo_syncer.subprocess.run", return_value=failure) as run:
            with pytest.raises(NetworkError) as exc_info:
                syncer.sync(remote_descriptor)

        assert not exc_info.value.retryable
        assert run.call_count == 1

    def test_timeout_retried_with_backoff(self, remote_descriptor):
        sleep = Mock()
        syncer = RepoSyncer(max_retries=2, backoff_factor=2, sleep=sleep)
        outcomes = [subprocess.TimeoutExpired(cmd="git", timeout=300), completed()]
        with patch("gitsight.core.repo_syncer.subprocess.run", side_effect=outcomes) as run:
            result = syncer.sync(remote_descriptor)

        assert result.action == "cloned"
        assert result.attempts == 2
        assert run.call_count == 2
        sleep.assert_called_once_with(2)

    def test_transient_failures_exhaust_retries(self, remote_descriptor):
        sleep = Mock()
        syncer = RepoSyncer(max_retries=2, backoff_factor=3, sleep=sleep)
        failure = completed(128, "fatal: unable to access: Connection reset by peer")
        with patch("gitsight.core.repo_syncer.subprocess.run", return_value=failure) as run:
            with pytest.raises(NetworkError) as exc_info:
                syncer.sync(remote_descriptor)

        assert exc_info.value.retryable is True
        assert "Connection reset" in str(exc_info.value)
        assert run.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [3, 9]

    def test_partial_clone_removed_after_timeout(self, remote_descriptor):
        def timeout_after_partial_clone(*args, **kwargs):
            remote_descriptor.path.mkdir(parents=True, exist_ok=True)
            (remote_descriptor.path / "partial").write_text("x")
            raise subprocess.TimeoutExpired(cmd="git", timeout=1)

        syncer = RepoSyncer(max_retries=0, sleep=Mock())
        with patch(
            "gitsight.core.repo_syncer.subprocess.run", side_effect=timeout_after_partial_clone
        ):
            with pytest.raises(NetworkError):
                syncer.sync(remote_descriptor)

        assert not remote_descriptor.path.exists()


class TestExistingWorkingCopy:
    def test_missing_path_without_remote(self, temp_dir):
        descriptor = RepositoryConfig(name="local", path=temp_dir / "nowhere")
        with pytest.raises(RepositoryAccessError):
            RepoSyncer().sync(descriptor)

    def test_pull_disabled(self, linear_repo):
        descriptor = RepositoryConfig(name="linear", path=linear_repo.working_tree_dir)
        with patch("gitsight.core.repo_syncer.subprocess.run") as run:
            result = RepoSyncer(disable_pull=True).sync(descriptor)

        assert result.action == "skipped"
        assert result.attempts == 0
        run.assert_not_called()

    def test_pull_without_remote_is_noop(self, linear_repo):
        head = linear_repo.head.commit.hexsha
        descriptor = RepositoryConfig(name="linear", path=linear_repo.working_tree_dir)

        result = RepoSyncer().sync(descriptor)

        assert result.action == "pulled"
        assert linear_repo.head.commit.hexsha == head

    def test_pull_from_local_origin(self, linear_repo, temp_dir, make_commit):
        clone = linear_repo.clone(str(temp_dir / "clone"))
        new_commit = make_commit(linear_repo, {"new.py": "pass\n"}, message="upstream")

        descriptor = RepositoryConfig(name="clone", path=clone.working_tree_dir)
        RepoSyncer().sync(descriptor)

        assert clone.head.commit.hexsha == new_commit.hexsha
        clone.close()

    def test_pull_on_plain_directory(self, temp_dir):
        (temp_dir / "plain").mkdir()
        descriptor = RepositoryConfig(name="plain", path=temp_dir / "plain")
        with pytest.raises(RepositoryAccessError):
            RepoSyncer().sync(descriptor)

    def test_pull_without_origin_remote(self, linear_repo, temp_dir):
        linear_repo.create_remote("upstream", str(temp_dir / "elsewhere.git"))
        descriptor = RepositoryConfig(name="linear", path=linear_repo.working_tree_dir)

        result = RepoSyncer(max_retries=0, sleep=Mock()).sync(descriptor)

        assert result.action == "pulled"

    def test_pull_from_tracked_non_origin_remote(self, linear_repo, temp_dir, make_commit):
        upstream = linear_repo.clone(str(temp_dir / "upstream"))
        clone = upstream.clone(str(temp_dir / "clone"))
        clone.remotes.origin.rename("upstream")
        new_commit = make_commit(upstream, {"new.py": "pass\n"}, message="upstream")

        RepoSyncer().sync(RepositoryConfig(name="clone", path=clone.working_tree_dir))

        assert clone.head.commit.hexsha == new_commit.hexsha
        clone.close()
        upstream.close()
