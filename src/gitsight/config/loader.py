"""YAML configuration loading and environment variable expansion.

Repository descriptors for a database are the merge of its inline ``repos``
list and every repo-descriptor file listed under ``files``. Relative paths are
resolved against the directory holding the configuration file.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import (
    ConfigurationError,
    EnvironmentVariableError,
    InvalidValueError,
    handle_yaml_error,
)
from .schema import (
    AuthorConfig,
    AuthorMappingConfig,
    Config,
    CreateConfig,
    DatabaseConfig,
    ExecutionConfig,
    FetchConfig,
    GitHubFetchConfig,
    QueryConfig,
    RepositoryConfig,
)

logger = logging.getLogger(__name__)

_LEGACY_FETCH_KEYS = {
    "githubAuthenticated": "authenticated",
    "githubUser": "user",
    "githubOrg": "org",
}


class ConfigLoader:
    """Load and validate configuration from YAML files."""

    @classmethod
    def load(cls, config_path: Union[Path, str]) -> Config:
        """Load configuration from YAML file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_path = Path(config_path).expanduser().resolve()

        cls._load_environment(config_path)
        data = cls._load_yaml(config_path)

        create = None
        if data.get("create") is not None:
            create = cls._process_create_config(data["create"], config_path)

        fetch = None
        if data.get("fetch") is not None:
            fetch = cls._process_fetch_config(data["fetch"], config_path)

        query = None
        # "shell" is accepted as an alias of "query" for older configuration files
        query_data = data.get("query", data.get("shell"))
        if query_data is not None:
            query = cls._process_query_config(query_data, config_path)

        if create is None and fetch is None and query is None:
            raise ConfigurationError(
                "Configuration must define at least one of 'create', 'fetch' or 'query'",
                config_path,
            )

        return Config(create=create, fetch=fetch, query=query, config_path=config_path)

    @classmethod
    def load_repositories(cls, repos_file: Union[Path, str]) -> list[RepositoryConfig]:
        """Load a standalone repo-descriptor file (as written by ``fetch``)."""
        repos_file = Path(repos_file).expanduser().resolve()
        data = cls._load_yaml(repos_file, allow_list=True)
        if data is None:
            return []
        if not isinstance(data, list):
            raise InvalidValueError("repos", type(data).__name__, "a list", repos_file)
        return [cls._process_repository(item, i, repos_file) for i, item in enumerate(data)]

    @classmethod
    def _load_environment(cls, config_path: Path) -> None:
        """Load .env then .env.local from the config directory, later files win."""
        loaded_any = False
        for name in (".env", ".env.local"):
            env_file = config_path.parent / name
            if env_file.exists():
                load_dotenv(env_file, override=True)
                logger.debug(f"Loaded environment variables from {env_file}")
                loaded_any = True

        if not loaded_any:
            logger.debug("No .env file found next to the configuration file")

    @classmethod
    def _load_yaml(cls, config_path: Path, allow_list: bool = False) -> Any:
        """Load and parse a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            handle_yaml_error(e, config_path)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except PermissionError as e:
            raise ConfigurationError(
                f"Permission denied reading configuration file: {config_path}"
            ) from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}", config_path) from e

        if allow_list:
            return data

        if data is None:
            raise ConfigurationError(
                "Configuration file is empty or contains only null values", config_path
            )
        if not isinstance(data, dict):
            raise InvalidValueError(
                "root", type(data).__name__, "a YAML mapping", config_path
            )
        return data

    @staticmethod
    def _resolve_env_var(value: Optional[str]) -> Optional[str]:
        """Resolve a whole-value ``${VAR}`` reference.

        Returns None when the value is empty or the variable is unset, so the
        caller can decide whether the field is required.
        """
        if not value:
            return None

        if value.startswith("${") and value.endswith("}"):
            resolved = os.environ.get(value[2:-1])
            if not resolved:
                return None
            return resolved

        return value

    @staticmethod
    def _resolve_path(value: Union[str, Path], config_path: Path) -> Path:
        path = Path(os.path.expandvars(str(value))).expanduser()
        if not path.is_absolute():
            path = config_path.parent / path
        return path.resolve()

    @classmethod
    def _process_repository(
        cls, repo_data: Any, index: int, config_path: Path
    ) -> RepositoryConfig:
        if not isinstance(repo_data, dict):
            raise InvalidValueError(f"repos[{index}]", repo_data, "a mapping", config_path)
        name = repo_data.get("name")
        if not name:
            raise ConfigurationError(f"Repository {index} is missing 'name'", config_path)
        path = repo_data.get("path")
        if not path:
            raise ConfigurationError(f"Repository '{name}' is missing 'path'", config_path)

        return RepositoryConfig(
            name=str(name),
            path=cls._resolve_path(path, config_path),
            branch=repo_data.get("branch") or None,
            remote=repo_data.get("remote") or None,
            stars=repo_data.get("stars", repo_data.get("stargazers_count")),
            forks=repo_data.get("forks", repo_data.get("forks_count")),
        )

    @classmethod
    def _process_author_mappings(
        cls, mappings_data: Any, config_path: Path
    ) -> list[AuthorMappingConfig]:
        if not mappings_data:
            return []
        if not isinstance(mappings_data, list):
            raise InvalidValueError("authorMappings", mappings_data, "a list", config_path)

        mappings = []
        for i, item in enumerate(mappings_data):
            try:
                source = item["source"]
                destination = item["destination"]
                mappings.append(
                    AuthorMappingConfig(
                        source=AuthorConfig(name=str(source["name"]), email=str(source["email"])),
                        destination=AuthorConfig(
                            name=str(destination["name"]), email=str(destination["email"])
                        ),
                    )
                )
            except (KeyError, TypeError) as e:
                raise InvalidValueError(
                    f"authorMappings[{i}]",
                    item,
                    "{source: {name, email}, destination: {name, email}}",
                    config_path,
                ) from e
        return mappings

    @classmethod
    def _process_create_config(cls, create_data: Any, config_path: Path) -> CreateConfig:
        """Process the ``create`` section."""
        if not isinstance(create_data, dict):
            raise InvalidValueError("create", create_data, "a mapping", config_path)

        databases = []
        for i, db_data in enumerate(create_data.get("databases") or []):
            if not isinstance(db_data, dict) or not db_data.get("dir"):
                raise ConfigurationError(f"Database {i} is missing 'dir'", config_path)

            directory = cls._resolve_path(db_data["dir"], config_path)
            files = [cls._resolve_path(f, config_path) for f in db_data.get("files") or []]

            repositories = [
                cls._process_repository(item, j, config_path)
                for j, item in enumerate(db_data.get("repos") or [])
            ]
            for repos_file in files:
                repositories.extend(cls.load_repositories(repos_file))

            databases.append(
                DatabaseConfig(
                    directory=directory,
                    name=db_data.get("name") or directory.name,
                    files=files,
                    repositories=repositories,
                )
            )

        if not databases:
            raise ConfigurationError("'create' requires at least one database", config_path)

        max_workers = create_data.get("maxWorkers")
        if max_workers is not None and (not isinstance(max_workers, int) or max_workers < 1):
            raise InvalidValueError("maxWorkers", max_workers, "a positive integer", config_path)

        return CreateConfig(
            databases=databases,
            author_mappings=cls._process_author_mappings(
                create_data.get("authorMappings"), config_path
            ),
            disable_pull=bool(create_data.get("disablePull", False)),
            max_workers=max_workers,
        )

    @classmethod
    def _process_fetch_config(cls, fetch_data: Any, config_path: Path) -> FetchConfig:
        """Process the ``fetch`` section."""
        if not isinstance(fetch_data, dict):
            raise InvalidValueError("fetch", fetch_data, "a mapping", config_path)

        raw_jobs = list(fetch_data.get("github") or [])
        # Per-mode lists, as in older configuration files
        for key, mode in _LEGACY_FETCH_KEYS.items():
            raw_jobs.extend({**job, "mode": mode} for job in fetch_data.get(key) or [])

        jobs = []
        for i, job in enumerate(raw_jobs):
            if not isinstance(job, dict):
                raise InvalidValueError(f"fetch.github[{i}]", job, "a mapping", config_path)
            mode = job.get("mode", "authenticated")
            if mode not in GitHubFetchConfig.VALID_MODES:
                raise InvalidValueError(
                    f"fetch.github[{i}].mode",
                    mode,
                    " | ".join(GitHubFetchConfig.VALID_MODES),
                    config_path,
                )
            if mode == "user" and not job.get("username"):
                raise ConfigurationError(f"fetch.github[{i}] needs 'username'", config_path)
            if mode == "org" and not job.get("org"):
                raise ConfigurationError(f"fetch.github[{i}] needs 'org'", config_path)

            token = cls._resolve_env_var(job.get("token"))
            if job.get("token") and not token:
                raise EnvironmentVariableError(
                    str(job["token"]).strip("${}"), f"fetch.github[{i}]", config_path
                )
            if mode == "authenticated" and not token:
                raise ConfigurationError(
                    f"fetch.github[{i}] in 'authenticated' mode needs a token", config_path
                )

            for key in ("cloneDir", "destination"):
                if not job.get(key):
                    raise ConfigurationError(f"fetch.github[{i}] is missing '{key}'", config_path)

            # ${user} / ${org} placeholders in destination are filled in by the fetcher
            destination = Path(str(job["destination"])).expanduser()
            if not destination.is_absolute():
                destination = config_path.parent / destination

            rate_limit = job.get("rateLimit") or {}
            jobs.append(
                GitHubFetchConfig(
                    mode=mode,
                    token=token,
                    clone_dir=cls._resolve_path(job["cloneDir"], config_path),
                    destination=destination,
                    username=job.get("username"),
                    org=job.get("org"),
                    visibility=job.get("visibility"),
                    affiliation=job.get("affiliation"),
                    repo_type=job.get("type") or None,
                    exclude_orgs=list(job.get("excludeOrgs") or []),
                    exclude_repos=list(job.get("excludeRepos") or []),
                    base_url=job.get("baseUrl", "https://api.github.com"),
                    max_retries=rate_limit.get("maxRetries", 3),
                    backoff_factor=rate_limit.get("backoffFactor", 2),
                )
            )

        return FetchConfig(github=jobs)

    @classmethod
    def _process_query_config(cls, query_data: Any, config_path: Path) -> QueryConfig:
        """Process the ``query`` section."""
        if not isinstance(query_data, dict):
            raise InvalidValueError("query", query_data, "a mapping", config_path)

        executions = []
        for i, execution in enumerate(query_data.get("executions") or []):
            db_name = execution.get("dbName")
            directory = execution.get("dir")
            if not db_name or not directory:
                raise ConfigurationError(
                    f"query.executions[{i}] needs both 'dbName' and 'dir'", config_path
                )
            executions.append(
                ExecutionConfig(
                    db_name=str(db_name), directory=cls._resolve_path(directory, config_path)
                )
            )
        return QueryConfig(executions=executions)
