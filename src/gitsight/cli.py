"""Command-line interface for GitSight."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import pandas as pd
from rich import box
from rich.console import Console
from rich.table import Table

from ._version import __version__
from .config import Config, ConfigLoader, ConfigurationError
from .core.analyzer import HistoryExtractor
from .core.batch import BatchSummary, ExtractionBatch
from .core.identity import AuthorNormalizer
from .core.repo_syncer import RepoSyncer
from .errors import FunctionArgumentError, GitSightError, NetworkError, PersistenceError
from .integrations.github_fetcher import GitHubFetcher, write_active_tables
from .query.engine import QueryEngine, QueryError
from .storage.table_store import TableStore

logger = logging.getLogger(__name__)

LOG_LEVELS = ["none", "WARNING", "INFO", "DEBUG"]


def configure_logging(log: str) -> None:
    """Configure logging from the ``--log`` option. ``none`` silences GitSight."""
    if log.upper() != "NONE":
        log_level = getattr(logging, log.upper())
        logging.basicConfig(
            level=log_level,
            format="[%(levelname)s] %(filename)s:%(lineno)d - %(message)s",
            handlers=[logging.StreamHandler(sys.stderr)],
            force=True,
        )
        logging.getLogger("gitsight").setLevel(log_level)
        logger.debug(f"Logging enabled at {log.upper()} level")
    else:
        logging.getLogger().setLevel(logging.CRITICAL)
        logging.getLogger("gitsight").setLevel(logging.CRITICAL)


def log_option(func):
    return click.option(
        "--log",
        type=click.Choice(LOG_LEVELS, case_sensitive=False),
        default="WARNING",
        help="Logging level (default: WARNING)",
    )(func)


def config_option(func):
    return click.option(
        "--config",
        "-c",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        required=True,
        help="Path to YAML configuration file",
    )(func)


def _load_config(config: Path, section: str) -> Config:
    try:
        cfg = ConfigLoader.load(config)
    except ConfigurationError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        sys.exit(1)

    if getattr(cfg, section) is None:
        click.echo(f"❌ Configuration error: no '{section}' section in {config}", err=True)
        sys.exit(1)
    return cfg


def render_dataframe(df: pd.DataFrame, output_format: str, console: Console) -> None:
    """Print a result set as a rich table, CSV or JSON records."""
    if output_format == "csv":
        click.echo(df.to_csv(index=False), nl=False)
        return
    if output_format == "json":
        click.echo(df.to_json(orient="records", force_ascii=False))
        return

    table = Table(box=box.SIMPLE_HEAVY)
    for column in df.columns:
        table.add_column(str(column))
    for row in df.itertuples(index=False):
        table.add_row(*("" if pd.isna(value) else str(value) for value in row))
    console.print(table)
    console.print(f"[dim]{len(df)} rows[/dim]")


def _render_summary(summary: BatchSummary, console: Console) -> None:
    table = Table(title="Extraction summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Repositories", str(summary.total))
    table.add_row("Extracted", str(len(summary.succeeded)))
    table.add_row("Skipped", str(summary.skip_count))
    table.add_row("Commits", str(summary.commits))
    table.add_row("Changes", str(summary.changes))
    table.add_row("Tags", str(summary.tags))
    table.add_row("Snapshots", str(summary.snapshots))
    if summary.unparsable_commits:
        table.add_row("Commits without changes (unparsable diff)", str(summary.unparsable_commits))
    console.print(table)

    for name, reason in summary.skipped.items():
        console.print(f"[yellow]⚠️  skipped {name}: {reason}[/yellow]")


def _build_engine(cfg: Config) -> QueryEngine:
    engine = QueryEngine()
    for execution in cfg.query.executions:
        engine.register_database(execution.db_name, execution.directory)
    return engine


@click.group()
@click.version_option(version=__version__, prog_name="GitSight")
@click.help_option("-h", "--help")
def cli() -> None:
    """GitSight - extract git history into CSV tables and query it with SQL."""


@cli.command()
@config_option
@log_option
@click.option("--no-sync", is_flag=True, help="Do not clone or pull; use working copies as they are")
def create(config: Path, log: str, no_sync: bool) -> None:
    """Extract history of the configured repositories into database directories."""
    configure_logging(log)
    console = Console()
    cfg = _load_config(config, "create")

    try:
        normalizer = AuthorNormalizer(cfg.create.author_mappings)
    except ConfigurationError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        sys.exit(1)

    syncer = None if no_sync else RepoSyncer(disable_pull=cfg.create.disable_pull)
    extractor = HistoryExtractor(normalizer=normalizer)

    overall = BatchSummary()
    try:
        for database in cfg.create.databases:
            store = TableStore(database.directory, database.name)
            store.reset()
            batch = ExtractionBatch(
                extractor, store, syncer=syncer, max_workers=cfg.create.max_workers
            )
            summary = batch.run(database.repositories)
            overall.merge(summary)
            console.print(
                f"✅ {database.name}: {len(summary.succeeded)}/{summary.total} repositories "
                f"→ {database.directory}"
            )
    except PersistenceError as e:
        click.echo(f"❌ Write failed: {e}", err=True)
        sys.exit(1)

    _render_summary(overall, console)
    if overall.failed:
        click.echo("❌ Every repository failed", err=True)
        sys.exit(1)


@cli.command()
@config_option
@log_option
def fetch(config: Path, log: str) -> None:
    """List GitHub repositories into repo-descriptor files."""
    configure_logging(log)
    console = Console()
    cfg = _load_config(config, "fetch")

    failures = 0
    results = []
    for job in cfg.fetch.github:
        try:
            result = GitHubFetcher(job).fetch()
        except (NetworkError, PersistenceError) as e:
            failures += 1
            click.echo(f"❌ GitHub fetch ({job.mode}) failed: {e}", err=True)
            continue
        results.append(result)
        console.print(
            f"✅ {len(result.repositories)} repositories → {result.destination}"
            + (f" ({result.excluded} excluded)" if result.excluded else "")
        )

    try:
        for directory, rows in write_active_tables(results).items():
            console.print(f"✅ {rows} active rows → {directory}")
    except PersistenceError as e:
        failures += 1
        click.echo(f"❌ Write failed: {e}", err=True)

    if failures:
        sys.exit(1)


@cli.command()
@config_option
@log_option
@click.argument("sql")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "csv", "json"]),
    default="table",
    help="Output format (default: table)",
)
def query(config: Path, log: str, sql: str, output_format: str) -> None:
    """Run one SQL statement against the configured databases."""
    configure_logging(log)
    console = Console()
    cfg = _load_config(config, "query")

    try:
        engine = _build_engine(cfg)
        df = engine.execute(sql)
    except (FunctionArgumentError, QueryError, PersistenceError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    render_dataframe(df, output_format, console)


@cli.command()
@config_option
@log_option
def shell(config: Path, log: str) -> None:
    """Interactive SQL prompt. Type 'exit' or press Ctrl-D to leave."""
    configure_logging(log)
    console = Console()
    cfg = _load_config(config, "query")

    try:
        engine = _build_engine(cfg)
    except PersistenceError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    tables = [name for names in engine.tables.values() for name in names]
    console.print(f"[cyan]Tables:[/cyan] {', '.join(tables) or '(none)'}")

    while True:
        try:
            statement = click.prompt("gitsight>", prompt_suffix=" ").strip()
        except (EOFError, click.Abort):
            break
        if statement.lower() in ("exit", "quit", r"\q"):
            break
        if not statement:
            continue
        try:
            render_dataframe(engine.execute(statement), "table", console)
        except GitSightError as e:
            console.print(str(e), style="red", markup=False)


@cli.command()
def functions() -> None:
    """List the SQL functions and aggregates available in queries."""
    console = Console()
    table = Table(title="Functions", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")
    for name, description in QueryEngine.catalog():
        table.add_row(name, description)
    console.print(table)


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the ``gitsight`` console script."""
    cli.main(args=argv, prog_name="gitsight")


if __name__ == "__main__":
    main()
