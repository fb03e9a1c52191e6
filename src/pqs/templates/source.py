"""Uniform handling of local and remote template locations."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from pqs.errors import PqsError, SourceNotFoundError
from pqs.git.cache import DEFAULT_MAX_AGE_DAYS, CacheEntry
from pqs.git.fetcher import RepositoryFetcher
from pqs.git.urls import (
    LocalLocation,
    RemoteLocation,
    classify,
    parse_git_url,
    validate_git_url,
)
from pqs.templates.loader import DiscoveryResult, find_templates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceDisplay:
    """How a template source is presented to the user."""

    type: Literal["local", "remote"]
    display: str
    full: str


class TemplateSource:
    """A template location: a local directory or a remote git repository.

    The location is classified once; remote sources share a
    RepositoryFetcher (and through it the cache index).
    """

    def __init__(
        self, location: str, fetcher: RepositoryFetcher | None = None
    ) -> None:
        self.location = location
        self._classified: LocalLocation | RemoteLocation = classify(location)
        self._fetcher = fetcher

    @property
    def is_remote(self) -> bool:
        return isinstance(self._classified, RemoteLocation)

    @property
    def fetcher(self) -> RepositoryFetcher:
        if self._fetcher is None:
            self._fetcher = RepositoryFetcher()
        return self._fetcher

    @property
    def local_path(self) -> Path:
        """The expanded directory, or the cache directory for remote sources."""
        if isinstance(self._classified, RemoteLocation):
            return self.fetcher.cache.path_for(self.location)
        return self._classified.path

    def prepare(
        self,
        force: bool = False,
        quiet: bool = False,
        refresh_stale: bool = False,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    ) -> Path:
        """Make the source available locally and return its directory.

        Raises:
            SourceNotFoundError: If a local directory does not exist.
            PqsError: Any fetcher failure for remote sources.
        """
        if self.is_remote:
            return self.fetcher.resolve_and_validate(
                self.location,
                force=force,
                quiet=quiet,
                refresh_stale=refresh_stale,
                max_age_days=max_age_days,
            )

        path = self.local_path
        if not path.exists():
            raise SourceNotFoundError(path)
        return path

    def is_available(self) -> bool:
        """Check if the source can be used, without fetching anything."""
        try:
            if self.is_remote:
                return (
                    validate_git_url(self.location)
                    and self.fetcher.is_git_available()
                )
            return self.local_path.exists()
        except OSError:
            return False

    def discover_templates(
        self,
        force: bool = False,
        quiet: bool = True,
        refresh_stale: bool = False,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    ) -> DiscoveryResult:
        """Find templates in this source.

        Never raises for source failures: they are returned as warnings.
        """
        try:
            root = self.prepare(
                force=force,
                quiet=quiet,
                refresh_stale=refresh_stale,
                max_age_days=max_age_days,
            )
        except (PqsError, OSError) as e:
            message = f"Failed to discover templates in {self.location}: {e}"
            logger.info(message)
            return DiscoveryResult(warnings=(message,))

        return find_templates(root, source=self.location, is_remote=self.is_remote)

    def display_info(self) -> SourceDisplay:
        if self.is_remote:
            info = parse_git_url(self.location)
            return SourceDisplay(
                type="remote", display=f"{info.host}/{info.full}", full=self.location
            )
        return SourceDisplay(
            type="local", display=self.location, full=str(self.local_path)
        )

    def _require_remote(self, message: str) -> None:
        if not self.is_remote:
            raise PqsError(message)

    def needs_update(self, max_age_days: float = DEFAULT_MAX_AGE_DAYS) -> bool:
        """Check if a remote source's cache is missing or stale."""
        if not self.is_remote:
            return False
        return self.fetcher.cache.is_stale(self.location, max_age_days)

    def update(self, quiet: bool = False) -> Path:
        """Re-clone a cached remote source."""
        self._require_remote("Cannot update local template source")
        return self.fetcher.update(self.location, quiet=quiet)

    def remove_from_cache(self) -> None:
        self._require_remote("Cannot remove local template source from cache")
        self.fetcher.cache.remove(self.location)

    def cache_info(self) -> CacheEntry | None:
        """Cache entry of a remote source; None for local sources."""
        if not self.is_remote:
            return None
        return self.fetcher.cache.get(self.location)

    @classmethod
    def from_locations(
        cls, locations: Iterable[str], fetcher: RepositoryFetcher | None = None
    ) -> list[TemplateSource]:
        return [cls(location, fetcher=fetcher) for location in locations]
