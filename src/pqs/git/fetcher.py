"""Clone remote template repositories into the local cache."""

from __future__ import annotations

import logging
import shutil
import subprocess
from datetime import UTC, datetime
from pathlib import Path

from pqs.console import console
from pqs.errors import (
    CloneFailedError,
    GitUnavailableError,
    InvalidReferenceError,
    NoTemplatesFoundError,
    SourceNotCachedError,
)
from pqs.git.cache import DEFAULT_MAX_AGE_DAYS, CacheIndex
from pqs.git.urls import (
    extract_branch,
    normalize_git_url,
    parse_git_url,
    validate_git_url,
)

logger = logging.getLogger(__name__)

DEFAULT_CLONE_TIMEOUT = 60


class RepositoryFetcher:
    """Resolves remote repository URLs to cached local checkouts."""

    def __init__(
        self,
        cache: CacheIndex | None = None,
        clone_timeout: float = DEFAULT_CLONE_TIMEOUT,
    ) -> None:
        self.cache = cache or CacheIndex()
        self.clone_timeout = clone_timeout

    @staticmethod
    def is_git_available() -> bool:
        """Check if a working git client is on PATH."""
        if shutil.which("git") is None:
            return False
        try:
            result = subprocess.run(
                ["git", "--version"],
                capture_output=True,
                text=True,
            )
        except OSError:
            return False
        return result.returncode == 0

    def resolve(
        self,
        url: str,
        force: bool = False,
        quiet: bool = False,
        refresh_stale: bool = False,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    ) -> Path:
        """Return the local checkout for url, cloning it if needed.

        A valid cache entry is reused without network access unless force is
        set, or refresh_stale is set and the entry is older than max_age_days.

        Raises:
            InvalidReferenceError: If url fails validation.
            GitUnavailableError: If git cannot be run.
            CloneFailedError: If the clone fails or times out.
        """
        if not validate_git_url(url):
            raise InvalidReferenceError(url)
        if not self.is_git_available():
            raise GitUnavailableError()

        cache_path = self.cache.path_for(url)
        repo = parse_git_url(url).full
        entry = self.cache.get(url)
        if entry is not None and not force:
            if not (refresh_stale and entry.is_older_than(max_age_days)):
                if not quiet:
                    console.print(f"[dim]Using cached template from {repo}[/dim]")
                logger.debug("Cache hit for %s at %s", url, cache_path)
                return cache_path

        if cache_path.exists():
            shutil.rmtree(cache_path)

        if not quiet:
            console.print(f"[cyan]Downloading template from {repo}...[/cyan]")
        self.clone_repository(
            normalize_git_url(url), cache_path, branch=extract_branch(url), quiet=quiet
        )
        self.cache.upsert(url, cloned_at=datetime.now(UTC).isoformat())
        return cache_path

    def clone_repository(
        self,
        url: str,
        target: Path,
        branch: str | None = None,
        quiet: bool = False,
    ) -> None:
        """Shallow-clone url into target and strip its .git directory.

        A failed or timed-out clone leaves nothing behind at target.
        """
        target.parent.mkdir(parents=True, exist_ok=True)

        cmd = ["git", "clone", "--depth", "1"]
        if branch:
            cmd.extend(["--branch", branch])
        if quiet:
            cmd.append("--quiet")
        cmd.extend([url, str(target)])

        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.clone_timeout,
            )
        except subprocess.TimeoutExpired:
            self._discard(target)
            raise CloneFailedError(
                url, f"timed out after {self.clone_timeout} seconds"
            ) from None
        except OSError as e:
            self._discard(target)
            raise CloneFailedError(url, str(e)) from e

        if result.returncode != 0:
            self._discard(target)
            reason = result.stderr.strip() or f"git exited with code {result.returncode}"
            raise CloneFailedError(url, reason)

        git_dir = target / ".git"
        if git_dir.exists():
            shutil.rmtree(git_dir)

    @staticmethod
    def _discard(target: Path) -> None:
        if target.exists():
            shutil.rmtree(target, ignore_errors=True)

    def validate_template_repository(self, path: Path) -> bool:
        """Check that a checkout contains at least one template definition."""
        from pqs.templates.loader import find_template_files

        return bool(find_template_files(path))

    def resolve_and_validate(
        self,
        url: str,
        force: bool = False,
        quiet: bool = False,
        refresh_stale: bool = False,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
    ) -> Path:
        """Resolve url and make sure it holds templates.

        A checkout without templates is evicted from the cache.

        Raises:
            NoTemplatesFoundError: If no template definitions were found.
        """
        path = self.resolve(
            url,
            force=force,
            quiet=quiet,
            refresh_stale=refresh_stale,
            max_age_days=max_age_days,
        )
        if not self.validate_template_repository(path):
            self.cache.remove(url)
            raise NoTemplatesFoundError(parse_git_url(url).full)
        return path

    def update(self, url: str, quiet: bool = False) -> Path:
        """Re-clone a repository that is already cached.

        Raises:
            SourceNotCachedError: If nothing is cached for url.
        """
        if self.cache.get(url) is None:
            raise SourceNotCachedError(url)
        return self.resolve_and_validate(url, force=True, quiet=quiet)
