"""Configuration sources: YAML files and legacy key/value options."""

from maillib.config.legacy import CDO_NAMESPACE, LegacyOption, apply_legacy_options
from maillib.config.loader import (
    CONFIG_ENV_VAR,
    clear_config,
    get_config,
    load_config,
    load_from_env,
    load_from_file,
)

__all__ = [
    "CDO_NAMESPACE",
    "CONFIG_ENV_VAR",
    "LegacyOption",
    "apply_legacy_options",
    "clear_config",
    "get_config",
    "load_config",
    "load_from_env",
    "load_from_file",
]
