"""Configuration error types and YAML error translation."""

from pathlib import Path
from typing import Optional

import yaml

from ..errors import ConfigError, ConfigurationError


class EnvironmentVariableError(ConfigurationError):
    """Raised when a ``${VAR}`` reference points to an unset variable."""

    def __init__(self, var_name: str, section: str, config_path: Optional[Path] = None):
        self.var_name = var_name
        self.section = section
        super().__init__(
            f"Environment variable '{var_name}' required by '{section}' is not set",
            config_path,
        )


class InvalidValueError(ConfigurationError):
    """Raised when a configuration field holds a value of the wrong shape."""

    def __init__(self, field: str, value: object, expected: str, config_path: Optional[Path] = None):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for '{field}': {value!r} (expected {expected})", config_path)


def handle_yaml_error(error: yaml.YAMLError, config_path: Path) -> None:
    """Translate a PyYAML error into a ConfigurationError with a location hint."""
    location = ""
    mark = getattr(error, "problem_mark", None)
    if mark is not None:
        location = f" at line {mark.line + 1}, column {mark.column + 1}"
    problem = getattr(error, "problem", None) or str(error)
    raise ConfigurationError(f"Invalid YAML{location}: {problem}", config_path) from error


__all__ = [
    "ConfigError",
    "ConfigurationError",
    "EnvironmentVariableError",
    "InvalidValueError",
    "handle_yaml_error",
]
