"""Configuration management for GitSight."""

from .errors import ConfigurationError, EnvironmentVariableError, InvalidValueError
from .loader import ConfigLoader
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

__all__ = [
    "AuthorConfig",
    "AuthorMappingConfig",
    "Config",
    "ConfigLoader",
    "ConfigurationError",
    "CreateConfig",
    "DatabaseConfig",
    "EnvironmentVariableError",
    "ExecutionConfig",
    "FetchConfig",
    "GitHubFetchConfig",
    "InvalidValueError",
    "QueryConfig",
    "RepositoryConfig",
]
