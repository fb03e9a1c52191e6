"""Glob matching over relative POSIX paths.

Supports ``*``, ``?``, ``[...]``, ``{a,b}`` and ``**`` (any number of
directories). A leading ``!`` negates a pattern where callers allow it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase
from pathlib import Path

GLOB_CHARS = frozenset("*?[{")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives; patterns without braces pass through."""
    depth = 0
    start = -1
    for i, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0:
                options = _split_top_level(pattern[start + 1 : i])
                if len(options) < 2:
                    continue
                prefix, suffix = pattern[:start], pattern[i + 1 :]
                expanded: list[str] = []
                for option in options:
                    expanded.extend(expand_braces(prefix + option + suffix))
                return expanded
    return [pattern]


def _split_top_level(body: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current += char
    parts.append(current)
    return parts


def _match_segments(parts: Sequence[str], pats: Sequence[str], dot: bool) -> bool:
    if not pats:
        return not parts

    pat = pats[0]
    if pat == "**":
        for i in range(len(parts) + 1):
            if i > 0 and not dot and parts[i - 1].startswith("."):
                break
            if _match_segments(parts[i:], pats[1:], dot):
                return True
        return False

    if not parts:
        return False
    segment = parts[0]
    if segment.startswith(".") and not dot and not pat.startswith("."):
        return False
    if not fnmatchcase(segment, pat):
        return False
    return _match_segments(parts[1:], pats[1:], dot)


def match_path(path: str, pattern: str, dot: bool = False) -> bool:
    """Match a relative POSIX path against one glob pattern.

    Without ``dot``, wildcards skip path segments starting with ``.``
    unless the pattern names them explicitly.
    """
    parts = [p for p in path.split("/") if p and p != "."]
    for expanded in expand_braces(pattern):
        pats = [p for p in expanded.split("/") if p and p != "."]
        if _match_segments(parts, pats, dot):
            return True
    return False


def match_any(path: str, patterns: Iterable[str], dot: bool = False) -> bool:
    return any(match_path(path, p, dot=dot) for p in patterns)


def is_glob(pattern: str) -> bool:
    return any(char in GLOB_CHARS for char in pattern)


def normalize_exclude_pattern(pattern: str) -> list[str]:
    """Turn one exclude entry into the globs it stands for.

    A bare name (``node_modules``, ``.git``) matches that file or directory
    anywhere in the tree, never a longer name like ``.gitignore``. A plain
    path matches itself and everything below it. A glob without a slash
    (``*.log``) also matches at any depth, like a bare name. A glob with a
    slash is rooted, and also matches with its first ``/**`` removed, so
    ``dist/**`` excludes ``dist`` itself.
    """
    cleaned = pattern.strip().removeprefix("./").rstrip("/")
    if not cleaned:
        return []
    if "/" not in cleaned:
        return [f"**/{cleaned}", f"**/{cleaned}/**"]
    if not is_glob(cleaned):
        return [cleaned, f"{cleaned}/**"]
    globs = [cleaned]
    if "/**" in cleaned:
        globs.append(cleaned.replace("/**", "", 1))
    return globs


def is_excluded(path: str, patterns: Iterable[str]) -> bool:
    """Check a path against exclude patterns (negations are ignored)."""
    for pattern in patterns:
        if pattern.startswith("!"):
            continue
        if match_any(path, normalize_exclude_pattern(pattern), dot=True):
            return True
    return False


def select_paths(candidates: Iterable[str], patterns: Iterable[str]) -> list[str]:
    """Select candidates matching any positive pattern and no ``!`` pattern.

    Order follows the candidates; each path appears once.
    """
    positive: list[str] = []
    negative: list[str] = []
    for pattern in patterns:
        if pattern.startswith("!"):
            negative.append(pattern[1:])
        else:
            positive.append(pattern)

    selected: dict[str, None] = {}
    for path in candidates:
        if path in selected:
            continue
        if match_any(path, positive) and not match_any(path, negative, dot=True):
            selected[path] = None
    return list(selected)


def list_files(root: Path) -> list[str]:
    """All files under root (dotfiles included) as sorted relative POSIX paths."""
    if not root.is_dir():
        return []
    return sorted(
        p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
    )
