"""Remote template repositories: URL handling, caching and cloning."""

from pqs.git.cache import CacheEntry, CacheIndex, CacheStats, get_default_cache_root
from pqs.git.fetcher import DEFAULT_CLONE_TIMEOUT, RepositoryFetcher
from pqs.git.urls import (
    LocalLocation,
    RemoteLocation,
    RepoInfo,
    classify,
    extract_branch,
    generate_cache_key,
    get_cache_path,
    is_git_url,
    normalize_git_url,
    parse_git_url,
    validate_git_url,
)

__all__ = [
    "DEFAULT_CLONE_TIMEOUT",
    "CacheEntry",
    "CacheIndex",
    "CacheStats",
    "LocalLocation",
    "RemoteLocation",
    "RepoInfo",
    "RepositoryFetcher",
    "classify",
    "extract_branch",
    "generate_cache_key",
    "get_cache_path",
    "get_default_cache_root",
    "is_git_url",
    "normalize_git_url",
    "parse_git_url",
    "validate_git_url",
]
