"""Template location classification and git URL parsing."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

UNKNOWN = "unknown"

_GIT_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^https?://.*\.git$"),
    re.compile(r"^https?://github\.com/[\w.-]+/[\w.-]+$"),
    re.compile(r"^https?://gitlab\.com/[\w.-]+/[\w.-]+$"),
    re.compile(r"^https?://bitbucket\.org/[\w.-]+/[\w.-]+$"),
    re.compile(r"^git@[\w.-]+:[\w.-]+/[\w.-]+\.git$"),
    re.compile(r"^ssh://git@[\w.-]+/[\w.-]+/[\w.-]+\.git$"),
)

# Hosted owner/repo URLs that get a .git suffix during normalization
_BARE_HOSTED_URL = re.compile(
    r"^https?://(?:github\.com|gitlab\.com|bitbucket\.org)/[\w.-]+/[\w.-]+$"
)

_REPO_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^https?://([\w.-]+)/([\w.-]+)/([\w.-]+)\.git$"),
    re.compile(r"^git@([\w.-]+):([\w.-]+)/([\w.-]+)\.git$"),
    re.compile(r"^ssh://git@([\w.-]+)/([\w.-]+)/([\w.-]+)\.git$"),
)

MIN_URL_LENGTH = 10


@dataclass(frozen=True)
class RepoInfo:
    """Host, owner and name parsed from a repository URL.

    Unrecognized URLs produce the ``unknown/unknown`` sentinel, which is
    only suitable for display.
    """

    host: str
    owner: str
    name: str

    @property
    def full(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def is_known(self) -> bool:
        return self.host != UNKNOWN


UNKNOWN_REPO = RepoInfo(host=UNKNOWN, owner=UNKNOWN, name=UNKNOWN)


@dataclass(frozen=True)
class LocalLocation:
    """A template location on the local filesystem."""

    raw: str
    path: Path


@dataclass(frozen=True)
class RemoteLocation:
    """A template location in a remote git repository."""

    raw: str
    url: str  # normalized, without branch fragment
    branch: str | None = None


def _strip_fragment(location: str) -> str:
    return location.split("#", 1)[0]


def is_git_url(location: str) -> bool:
    """Check if a location string refers to a remote git repository.

    A trailing ``#branch`` fragment is ignored for classification.
    """
    base = _strip_fragment(location.strip())
    return any(pattern.match(base) for pattern in _GIT_URL_PATTERNS)


def normalize_git_url(url: str) -> str:
    """Strip any branch fragment and add ``.git`` to bare hosted URLs.

    Different spellings of one repository converge on the same string, and
    normalizing twice is the same as normalizing once.
    """
    normalized = _strip_fragment(url.strip())
    if _BARE_HOSTED_URL.match(normalized) and not normalized.endswith(".git"):
        normalized += ".git"
    return normalized


def extract_branch(url: str) -> str | None:
    """Return the branch or tag after ``#``, or None if not specified."""
    _, sep, fragment = url.partition("#")
    if not sep or not fragment:
        return None
    return fragment


def parse_git_url(url: str) -> RepoInfo:
    """Extract host/owner/name from an HTTPS or SSH repository URL.

    Never raises: unrecognized shapes return ``UNKNOWN_REPO``.
    """
    normalized = normalize_git_url(url)
    for pattern in _REPO_PATTERNS:
        match = pattern.match(normalized)
        if match:
            return RepoInfo(host=match[1], owner=match[2], name=match[3])
    return UNKNOWN_REPO


def validate_git_url(url: str) -> bool:
    """Check a git URL is well-formed enough to hand to ``git clone``.

    Rejects path-traversal segments, doubled slashes after the scheme and
    implausibly short input.
    """
    if not is_git_url(url):
        return False
    if ".." in url:
        return False
    _, sep, rest = url.partition("://")
    if "//" in (rest if sep else url):
        return False
    return len(url) >= MIN_URL_LENGTH


def classify(location: str) -> LocalLocation | RemoteLocation:
    """Classify a template location as local path or remote repository."""
    if is_git_url(location):
        return RemoteLocation(
            raw=location,
            url=normalize_git_url(location),
            branch=extract_branch(location),
        )
    return LocalLocation(raw=location, path=Path(location).expanduser())


def generate_cache_key(url: str) -> str:
    """Generate a filesystem-safe cache key: readable slug plus short hash."""
    normalized = normalize_git_url(url)
    digest = hashlib.md5(normalized.encode(), usedforsecurity=False).hexdigest()[:8]

    readable = re.sub(r"^https?://", "", normalized)
    readable = re.sub(r"^ssh://git@", "", readable)
    readable = re.sub(r"^git@", "", readable)
    readable = readable.replace(":", "-").replace("/", "-")
    readable = re.sub(r"\.git$", "", readable)
    readable = re.sub(r"[^a-zA-Z0-9-]", "", readable)

    return f"{readable}-{digest}"


def get_cache_path(url: str, cache_root: Path) -> Path:
    """Get the cache directory for a repository URL."""
    return cache_root / generate_cache_key(url)
