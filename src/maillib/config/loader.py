"""YAML configuration loading.

Configuration files are read with PyYAML and returned as a
:class:`box.Box`, so sections are reachable as attributes
(``config.mail.smtp.host``). String values may reference environment
variables as ``${VAR}`` or ``${VAR:-default}``, which keeps secrets such as
SMTP passwords out of the file.

Lookup order when no explicit path is given:

1. the file named by ``$MAILLIB_CONFIG``
2. ``./maillib.conf.yml``
3. ``~/.config/maillib/maillib.conf.yml``

Examples:
    >>> config = load_config()  # doctest: +SKIP
    >>> config.mail.smtp.host  # doctest: +SKIP
    'smtp.example.com'
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from box import Box

from maillib.exceptions import ConfigurationError

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MAILLIB_CONFIG"
CONFIG_FILENAME = "maillib.conf.yml"
USER_CONFIG_DIR = Path("~/.config/maillib")

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)(?::-([^}]*))?\}")

_cached_config: Box | None = None


def _expand_env_vars(value: str, source: str | None = None) -> str:
    """Expand ``${VAR}`` references in *value*.

    Raises:
        ConfigurationError: If a variable without default is not set.

    Examples:
        >>> import os
        >>> os.environ["MAILLIB_DOC_HOST"] = "mx.example.com"
        >>> _expand_env_vars("${MAILLIB_DOC_HOST}:${MAILLIB_DOC_PORT:-25}")
        'mx.example.com:25'
    """

    def replacer(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        env_value = os.environ.get(name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        where = f" (in {source})" if source else ""
        raise ConfigurationError(
            f"Environment variable '{name}' is not set{where}",
            details={"variable": name, "source": source},
        )

    return _ENV_VAR_PATTERN.sub(replacer, value)


def _expand_env_vars_recursive(data: Any, source: str | None = None) -> Any:
    if isinstance(data, dict):
        return {key: _expand_env_vars_recursive(value, source) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars_recursive(item, source) for item in data]
    if isinstance(data, str):
        return _expand_env_vars(data, source)
    return data


def default_config_paths() -> list[Path]:
    """Return the implicit lookup locations, highest priority first."""
    paths: list[Path] = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path).expanduser())
    paths.append(Path.cwd() / CONFIG_FILENAME)
    paths.append(USER_CONFIG_DIR.expanduser() / CONFIG_FILENAME)
    return paths


def load_from_file(path: str | Path) -> Box:
    """Load one YAML file into a Box.

    Args:
        path: The YAML file to read.

    Returns:
        The parsed configuration; an empty file yields an empty Box.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not valid
            YAML, or its root is not a mapping.
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}", details={"path": str(config_path)})
    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config root must be a mapping, got {type(data).__name__}: {config_path}",
            details={"path": str(config_path)},
        )
    log.debug("Loaded config from %s", config_path)
    return Box(_expand_env_vars_recursive(data, str(config_path)))


def load_from_env(env_var: str = CONFIG_ENV_VAR) -> Box:
    """Load the file named by the *env_var* environment variable.

    Raises:
        ConfigurationError: If the variable is unset or the file is invalid.
    """
    value = os.environ.get(env_var)
    if not value:
        raise ConfigurationError(f"Environment variable '{env_var}' is not set")
    return load_from_file(value)


def load_config(path: str | Path | None = None) -> Box:
    """Load configuration from *path* or the first implicit location found.

    Args:
        path: Explicit file; it must exist.

    Returns:
        The configuration, or an empty Box when no file is found.

    Raises:
        ConfigurationError: If an explicit (or ``$MAILLIB_CONFIG``) file is
            missing, or the file found is invalid.
    """
    if path is not None:
        return load_from_file(path)
    if os.environ.get(CONFIG_ENV_VAR):
        return load_from_env(CONFIG_ENV_VAR)
    for candidate in default_config_paths():
        if candidate.is_file():
            return load_from_file(candidate)
    log.debug("No maillib config file found, using defaults")
    return Box()


def get_config(*, force_reload: bool = False) -> Box:
    """Return the process-wide configuration, loading it on first use."""
    global _cached_config  # pylint: disable=global-statement
    if _cached_config is None or force_reload:
        _cached_config = load_config()
    return _cached_config


def clear_config() -> None:
    """Forget the cached configuration."""
    global _cached_config  # pylint: disable=global-statement
    _cached_config = None


__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILENAME",
    "clear_config",
    "default_config_paths",
    "get_config",
    "load_config",
    "load_from_env",
    "load_from_file",
]
