"""
Tests for the CLI module.

These tests drive the commands end to end through click's CliRunner, against
real temporary git repositories.
"""

import json
import textwrap
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from gitsight.cli import cli, configure_logging, main
from gitsight.integrations.github_fetcher import FetchResult
from gitsight.models.records import ActiveRecord, RecordKind
from gitsight.storage.table_store import TableStore


def write_config(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def extracted(runner, temp_dir, linear_repo):
    """Run ``create`` over the linear repository and return a query config."""
    create_config = write_config(
        temp_dir / "create.yaml",
        f"""
        create:
          databases:
            - dir: {temp_dir / "db"}
              name: db
              repos:
                - name: acme/linear
                  path: {linear_repo.working_tree_dir}
        """,
    )
    result = runner.invoke(cli, ["create", "-c", str(create_config), "--no-sync", "--log", "none"])
    assert result.exit_code == 0, result.output

    return write_config(
        temp_dir / "query.yaml",
        f"""
        query:
          executions:
            - dbName: db
              dir: {temp_dir / "db"}
        """,
    )


class TestCLI:
    """Test cases for the main CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "GitSight" in result.output
        for command in ("create", "fetch", "query", "shell", "functions"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "GitSight" in result.output

    def test_functions_catalog(self, runner):
        result = runner.invoke(cli, ["functions"])

        assert result.exit_code == 0
        assert "year" in result.output
        assert "duration" in result.output

    def test_missing_config_file(self, runner, temp_dir):
        result = runner.invoke(cli, ["create", "-c", str(temp_dir / "absent.yaml")])
        assert result.exit_code != 0

    def test_missing_section(self, runner, temp_dir):
        config = write_config(
            temp_dir / "gitsight.yaml", "query:\n  executions: []\n"
        )
        result = runner.invoke(cli, ["create", "-c", str(config), "--log", "none"])

        assert result.exit_code == 1
        assert "no 'create' section" in result.output


class TestCreate:
    def test_writes_tables(self, extracted, temp_dir):
        db = temp_dir / "db"
        for name in ("commit", "change", "tag", "snapshot"):
            assert (db / f"{name}.csv").exists()

        lines = (db / "commit.csv").read_text().splitlines()
        assert lines[0] == "repo_name,hash,branch,datetime,author_name,author_email,author_domain"
        assert len(lines) == 4

    def test_rerun_does_not_duplicate(self, runner, extracted, temp_dir):
        before = (temp_dir / "db" / "change.csv").read_text()
        result = runner.invoke(
            cli, ["create", "-c", str(temp_dir / "create.yaml"), "--no-sync", "--log", "none"]
        )

        assert result.exit_code == 0
        assert (temp_dir / "db" / "change.csv").read_text() == before

    def test_all_repositories_failed(self, runner, temp_dir):
        config = write_config(
            temp_dir / "gitsight.yaml",
            f"""
            create:
              databases:
                - dir: {temp_dir / "db"}
                  repos:
                    - name: gone
                      path: {temp_dir / "gone"}
            """,
        )
        result = runner.invoke(cli, ["create", "-c", str(config), "--no-sync", "--log", "none"])

        assert result.exit_code == 1
        assert "Every repository failed" in result.output


class TestFetch:
    def test_jobs_share_active_table(self, runner, temp_dir):
        config = write_config(
            temp_dir / "gitsight.yaml",
            f"""
            fetch:
              github:
                - mode: user
                  username: alice
                  cloneDir: {temp_dir / "clones"}
                  destination: {temp_dir / "db" / "alice.yaml"}
                - mode: org
                  org: acme
                  token: literal-token
                  cloneDir: {temp_dir / "clones"}
                  destination: {temp_dir / "db" / "acme.yaml"}
            """,
        )

        def fake_fetcher(job):
            owner = job.username or job.org
            fetcher = Mock()
            fetcher.fetch.return_value = FetchResult(
                destination=job.destination,
                repositories=[],
                active=[ActiveRecord(f"{owner}/repo", 1, 0)],
            )
            return fetcher

        with patch("gitsight.cli.GitHubFetcher", side_effect=fake_fetcher):
            result = runner.invoke(cli, ["fetch", "-c", str(config), "--log", "none"])

        assert result.exit_code == 0, result.output
        active = TableStore(temp_dir / "db").read_table(RecordKind.ACTIVE)
        assert list(active["repo_name"]) == ["acme/repo", "alice/repo"]


class TestQuery:
    def test_csv_output(self, runner, extracted):
        result = runner.invoke(
            cli,
            [
                "query",
                "-c",
                str(extracted),
                "--format",
                "csv",
                "--log",
                "none",
                "SELECT author_name, COUNT(*) AS n FROM 'db.commit' "
                "GROUP BY author_name ORDER BY author_name",
            ],
        )

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["author_name,n", "Alice,2", "Bob,1"]

    def test_json_output_with_functions(self, runner, extracted):
        result = runner.invoke(
            cli,
            [
                "query",
                "-c",
                str(extracted),
                "--format",
                "json",
                "--log",
                "none",
                "SELECT hash, year(datetime) AS y, weekday(datetime) AS d "
                "FROM 'db.commit' ORDER BY datetime",
            ],
        )

        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert [(r["y"], r["d"]) for r in rows] == [(2021, "Mon"), (2021, "Tue"), (2021, "Wed")]

    def test_table_output(self, runner, extracted):
        result = runner.invoke(
            cli,
            ["query", "-c", str(extracted), "SELECT SUM(insertion) AS added FROM 'db.change'"],
        )

        assert result.exit_code == 0
        assert "added" in result.output
        assert "6" in result.output

    def test_function_argument_error(self, runner, extracted):
        result = runner.invoke(
            cli,
            ["query", "-c", str(extracted), "--log", "none", "SELECT year('yesterday')"],
        )

        assert result.exit_code == 1
        assert "year" in result.output

    def test_sql_error(self, runner, extracted):
        result = runner.invoke(
            cli, ["query", "-c", str(extracted), "--log", "none", "SELECT * FROM nowhere"]
        )
        assert result.exit_code == 1


class TestShell:
    def test_runs_statements_until_exit(self, runner, extracted):
        result = runner.invoke(
            cli,
            ["shell", "-c", str(extracted), "--log", "none"],
            input="SELECT COUNT(*) AS commits FROM 'db.commit'\nSELECT year('bad')\nexit\n",
        )

        assert result.exit_code == 0, result.output
        assert "db.commit" in result.output
        assert "commits" in result.output
        assert "year" in result.output

    def test_end_of_input_leaves(self, runner, extracted):
        result = runner.invoke(cli, ["shell", "-c", str(extracted), "--log", "none"], input="")
        assert result.exit_code == 0


class TestLogging:
    def test_none_silences_package_logger(self):
        import logging

        configure_logging("none")
        assert logging.getLogger("gitsight").level == logging.CRITICAL

        configure_logging("DEBUG")
        assert logging.getLogger("gitsight").level == logging.DEBUG
        configure_logging("WARNING")

    def test_main_entry_point(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0
