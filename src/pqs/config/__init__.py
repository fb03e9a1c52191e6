"""Global configuration."""

from pqs.config.loader import (
    find_config_file,
    get_config_search_paths,
    load_config,
    resolve_cache_root,
    save_config,
)
from pqs.config.schema import DEFAULT_CONFIG, PqsConfig

__all__ = [
    "DEFAULT_CONFIG",
    "PqsConfig",
    "find_config_file",
    "get_config_search_paths",
    "load_config",
    "resolve_cache_root",
    "save_config",
]
