"""Configuration file discovery and loading."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path

import yaml

from pqs.config.schema import DEFAULT_CONFIG, PqsConfig
from pqs.git.cache import get_default_cache_root

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


def get_local_config_paths() -> list[Path]:
    """Get project-level config paths: ./pqs.config.yaml, ./pqs.config.json."""
    cwd = Path.cwd()
    return [cwd / "pqs.config.yaml", cwd / "pqs.config.json"]


def get_home_config_paths() -> list[Path]:
    """Get user-level config paths: ~/.pqs/config.yaml, ~/.pqs.config.json."""
    home = Path.home()
    return [home / ".pqs" / CONFIG_FILENAME, home / ".pqs.config.json"]


def get_system_config_paths() -> list[Path]:
    """Get system-wide config paths under /etc."""
    return [Path("/etc/pqs") / CONFIG_FILENAME, Path("/etc/pqs.config.json")]


def get_config_search_paths() -> list[Path]:
    """All config locations in lookup order."""
    return [
        *get_local_config_paths(),
        *get_home_config_paths(),
        *get_system_config_paths(),
    ]


def load_yaml_config(path: Path) -> dict[str, object] | None:
    """Load a YAML (or JSON) config file, return None if unusable.

    Unreadable or malformed files are logged and skipped.
    """
    if not path.exists():
        return None
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Skipping unreadable config file %s: %s", path, e)
        return None
    if data is None:
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping config file %s: expected a mapping", path)
        return None
    result: dict[str, object] = data
    return result


def find_config_file(
    paths: Sequence[Path] | None = None,
) -> tuple[Path, dict[str, object]] | None:
    """Return the first usable config file and its contents."""
    for path in paths if paths is not None else get_config_search_paths():
        data = load_yaml_config(path)
        if data is not None:
            return path, data
    return None


def load_config(paths: Sequence[Path] | None = None) -> PqsConfig:
    """Load configuration.

    The first usable file in the search order wins; it is layered on top
    of the built-in defaults, so keys it leaves out keep their defaults.
    """
    found = find_config_file(paths)
    if found is None:
        logger.debug("No config file found, using defaults")
        return DEFAULT_CONFIG

    path, data = found
    logger.debug("Using config from %s", path)
    return DEFAULT_CONFIG.merge(PqsConfig.from_dict(data))


def save_config(config: PqsConfig, path: Path) -> None:
    """Save config to a YAML file.

    Creates parent directories if needed.
    Only saves non-None values.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def resolve_cache_root(config: PqsConfig) -> Path:
    """Resolve the cache root directory.

    Precedence (highest to lowest):
    1. PQS_CACHE_DIR env var
    2. cache_dir from config
    3. ~/.pqs/cache
    """
    if os.environ.get("PQS_CACHE_DIR"):
        return get_default_cache_root()
    if config.cache_dir:
        return Path(config.cache_dir).expanduser()
    return get_default_cache_root()
