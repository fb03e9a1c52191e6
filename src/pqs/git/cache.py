"""Persistent index of cached template repositories."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pqs.git.urls import (
    extract_branch,
    generate_cache_key,
    normalize_git_url,
    parse_git_url,
)

logger = logging.getLogger(__name__)

CACHE_INDEX_FILENAME = ".cache-index.json"
DEFAULT_MAX_AGE_DAYS = 7
DEFAULT_CLEANUP_DAYS = 30

# Keys managed by the index itself; anything else passed to upsert is extra
_ENTRY_FIELDS = ("url", "branch", "last_updated", "host", "owner", "name")


def get_default_cache_root() -> Path:
    """Resolve the cache root directory.

    Priority:
    1. PQS_CACHE_DIR environment variable
    2. Default: ~/.pqs/cache/
    """
    env_root = os.environ.get("PQS_CACHE_DIR")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path.home() / ".pqs" / "cache"


def _parse_timestamp(raw: object) -> datetime:
    """Parse a stored ISO timestamp; unparseable values count as infinitely old."""
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed
    return datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True)
class CacheEntry:
    """A cached repository snapshot as recorded in the index."""

    key: str
    url: str
    branch: str | None
    last_updated: datetime
    host: str
    owner: str
    name: str
    path: Path
    exists: bool = True
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(UTC)) - self.last_updated

    def is_older_than(self, max_age_days: float, now: datetime | None = None) -> bool:
        return self.age(now) > timedelta(days=max_age_days)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the index record format (path and key are implied)."""
        result: dict[str, Any] = dict(self.extra)
        result.update(
            {
                "url": self.url,
                "branch": self.branch,
                "last_updated": self.last_updated.isoformat(),
                "host": self.host,
                "owner": self.owner,
                "name": self.name,
            }
        )
        return result

    @classmethod
    def from_dict(
        cls, key: str, data: dict[str, Any], path: Path, exists: bool
    ) -> CacheEntry:
        """Create from an index record."""
        branch = data.get("branch")
        return cls(
            key=key,
            url=str(data.get("url", "")),
            branch=str(branch) if branch is not None else None,
            last_updated=_parse_timestamp(data.get("last_updated")),
            host=str(data.get("host", "unknown")),
            owner=str(data.get("owner", "unknown")),
            name=str(data.get("name", "unknown")),
            path=path,
            exists=exists,
            extra={k: v for k, v in data.items() if k not in _ENTRY_FIELDS},
        )


@dataclass(frozen=True)
class CacheStats:
    """Summary of the cache contents."""

    total_entries: int
    valid_entries: int
    stale_entries: int
    missing_entries: int
    approximate_size: int  # number of cached files
    cache_path: Path


class CacheIndex:
    """JSON index mapping cache key -> cached repository metadata.

    Every operation re-reads and rewrites the whole document. Concurrent
    processes sharing a cache root are not coordinated: the last writer wins.
    """

    def __init__(self, cache_root: Path | None = None) -> None:
        """Initialize the index.

        Args:
            cache_root: Directory holding cached checkouts. Defaults to
                get_default_cache_root().
        """
        self.cache_root = cache_root or get_default_cache_root()
        self.index_path = self.cache_root / CACHE_INDEX_FILENAME

    def initialize(self) -> None:
        """Create the cache directory and an empty index if missing."""
        self.cache_root.mkdir(parents=True, exist_ok=True)
        if not self.index_path.exists():
            self.save({})

    def load(self) -> dict[str, dict[str, Any]]:
        """Load the index document, returning {} if missing or unreadable."""
        if not self.index_path.exists():
            return {}
        try:
            with self.index_path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load cache index %s: %s", self.index_path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed cache index %s", self.index_path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict)}

    def save(self, index: dict[str, dict[str, Any]]) -> bool:
        """Atomically replace the index document.

        Failures are logged and reported via the return value, never raised.
        """
        temp_path: Path | None = None
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.cache_root,
                prefix=CACHE_INDEX_FILENAME,
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as f:
                temp_path = Path(f.name)
                json.dump(index, f, indent=2)
            os.replace(temp_path, self.index_path)
            temp_path = None
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to save cache index %s: %s", self.index_path, e)
            return False
        finally:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()

    def path_for(self, url: str) -> Path:
        """Get the cache directory for a repository URL."""
        return self.cache_root / generate_cache_key(url)

    def get(self, url: str) -> CacheEntry | None:
        """Get the entry for a URL, only if both record and directory exist."""
        key = generate_cache_key(url)
        record = self.load().get(key)
        path = self.cache_root / key
        if record is None or not path.exists():
            return None
        return CacheEntry.from_dict(key, record, path, exists=True)

    def upsert(self, url: str, **extra: Any) -> CacheEntry:
        """Add or refresh the record for a URL with a fresh timestamp."""
        key = generate_cache_key(url)
        index = self.load()
        info = parse_git_url(url)
        record: dict[str, Any] = {
            "url": normalize_git_url(url),
            "branch": extract_branch(url),
            "last_updated": datetime.now(UTC).isoformat(),
            "host": info.host,
            "owner": info.owner,
            "name": info.name,
        }
        record.update(extra)
        index[key] = record
        self.save(index)
        path = self.cache_root / key
        return CacheEntry.from_dict(key, record, path, exists=path.exists())

    def remove(self, url: str) -> None:
        """Remove the record for a URL and its cached directory."""
        self._remove_key(generate_cache_key(url))

    def _remove_key(self, key: str) -> None:
        index = self.load()
        if key in index:
            del index[key]
            self.save(index)

        path = self.cache_root / key
        if path.exists():
            shutil.rmtree(path)

    def is_stale(
        self,
        url: str,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        now: datetime | None = None,
    ) -> bool:
        """Check if a URL is uncached or older than max_age_days."""
        entry = self.get(url)
        if entry is None:
            return True
        return entry.is_older_than(max_age_days, now)

    def list_entries(self) -> list[CacheEntry]:
        """List every indexed repository, including ones missing on disk."""
        entries: list[CacheEntry] = []
        for key, record in self.load().items():
            path = self.cache_root / key
            entries.append(
                CacheEntry.from_dict(key, record, path, exists=path.exists())
            )
        return entries

    def cleanup_stale(
        self,
        max_age_days: float = DEFAULT_CLEANUP_DAYS,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> list[str]:
        """Remove entries older than the threshold or missing on disk.

        This does not touch directories without an index record; see
        cleanup_orphaned() for that direction.

        Returns:
            Cache keys removed (or that would be removed with dry_run).
        """
        removed: list[str] = []
        for entry in self.list_entries():
            if entry.exists and not entry.is_older_than(max_age_days, now):
                continue
            if not dry_run:
                self._remove_key(entry.key)
            removed.append(entry.key)
        return removed

    def cleanup_orphaned(self, dry_run: bool = False) -> list[str]:
        """Remove cache directories that have no index record.

        Returns:
            Directory names removed (or that would be removed with dry_run).
        """
        if not self.cache_root.exists():
            return []

        known = set(self.load())
        removed: list[str] = []
        for item in sorted(self.cache_root.iterdir()):
            if not item.is_dir() or item.name in known:
                continue
            if not dry_run:
                shutil.rmtree(item)
            removed.append(item.name)
        return removed

    def stats(self, max_age_days: float = DEFAULT_MAX_AGE_DAYS) -> CacheStats:
        """Compute cache statistics."""
        entries = self.list_entries()
        valid = [e for e in entries if e.exists]
        size = 0
        for entry in valid:
            size += sum(1 for p in entry.path.rglob("*") if p.is_file())
        return CacheStats(
            total_entries=len(entries),
            valid_entries=len(valid),
            stale_entries=sum(1 for e in valid if e.is_older_than(max_age_days)),
            missing_entries=len(entries) - len(valid),
            approximate_size=size,
            cache_path=self.cache_root,
        )

    def clear(self) -> None:
        """Remove every cached repository and reset the index."""
        if self.cache_root.exists():
            shutil.rmtree(self.cache_root)
        self.initialize()
