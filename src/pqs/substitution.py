"""Placeholder substitution for template files.

Syntax::

    {{PQS:name}}                  value of ``name``
    {{PQS:KEBAB(name)}}           transformed value
    {{PQS:DATE(YYYY-MM-DD)}}      current date
    {{PQS:UUID()}}                new uuid4 on every occurrence
    {{PQS:UUID_FIXED(api)}}       one uuid4 per name for the whole run
    {{#PQS:flag}}...{{/PQS:flag}} kept only if ``flag`` is truthy
    {{^PQS:flag}}...{{/PQS:flag}} kept only if ``flag`` is falsy

Anything that cannot be resolved is left untouched.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pqs.templates.conditions import is_truthy

logger = logging.getLogger(__name__)

NAMESPACE = "PQS"

_TOKEN_RE = re.compile(r"\{\{" + NAMESPACE + r":([^}]+)\}\}")
_CALL_RE = re.compile(r"^(\w+)\(([^)]*)\)$")
_BLOCK_RE = re.compile(
    r"\{\{([#^])" + NAMESPACE + r":([^}]+?)\}\}(.*?)\{\{/" + NAMESPACE + r":\2\}\}",
    re.DOTALL,
)

_SEPARATOR_RUN = re.compile(r"[-_\s]+(.)?")
_FIRST_RUN = re.compile(r"[^-_\s]*")


def _camel(text: str) -> str:
    head = _FIRST_RUN.match(text).group(0)  # type: ignore[union-attr]
    rest = text[len(head) :]
    return head.lower() + _SEPARATOR_RUN.sub(
        lambda m: (m.group(1) or "").upper(), rest
    )


def _pascal(text: str) -> str:
    camel = _camel(text)
    return camel[:1].upper() + camel[1:]


def _kebab(text: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", re.sub(r"[_\s]+", "-", text.lower()))


def _snake(text: str) -> str:
    return re.sub(r"[^a-z0-9_]", "", re.sub(r"[-\s]+", "_", text.lower()))


def _title(text: str) -> str:
    return re.sub(
        r"\w\S*", lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text
    )


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


TRANSFORMS: dict[str, Callable[[str], str]] = {
    "UPPER": str.upper,
    "LOWER": str.lower,
    "CAMEL": _camel,
    "KEBAB": _kebab,
    "SNAKE": _snake,
    "PASCAL": _pascal,
    "TITLE": _title,
    "SLUG": _slug,
}


def transform(text: str, name: str) -> str:
    """Apply a named transform (case-insensitive).

    Raises:
        KeyError: If the transform is unknown.
    """
    return TRANSFORMS[name.upper()](text)


# Legacy date tokens and their strftime equivalents
_LEGACY_DATE_TOKENS = {
    "YYYY": "%Y",
    "MM": "%m",
    "DD": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_LEGACY_DATE_RE = re.compile("|".join(_LEGACY_DATE_TOKENS))
_STRFTIME_DIRECTIVE_RE = re.compile(r"%[aAwdbBmyYHIpMSfzZjUWcxXGuV%]")


def format_date(pattern: str, now: datetime) -> str:
    """Format now with legacy tokens (YYYY, MM, DD, HH, mm, ss) or strftime.

    Never raises: an invalid pattern falls back to replacing just the
    legacy tokens.
    """
    converted = _LEGACY_DATE_RE.sub(lambda m: _LEGACY_DATE_TOKENS[m.group(0)], pattern)
    if "%" not in _STRFTIME_DIRECTIVE_RE.sub("", converted):
        try:
            return now.strftime(converted)
        except ValueError:
            pass

    logger.warning("Invalid date format pattern '%s', using fallback", pattern)
    return _LEGACY_DATE_RE.sub(
        lambda m: now.strftime(_LEGACY_DATE_TOKENS[m.group(0)]), pattern
    )


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ",".join(_stringify(v) for v in value)
    return str(value)


class Substituter:
    """Resolves placeholders for one materialization run.

    Fixed UUIDs are remembered for the lifetime of the instance.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        uuid_factory: Callable[[], uuid.UUID] | None = None,
    ) -> None:
        self._clock = clock or datetime.now
        self._uuid_factory = uuid_factory or uuid.uuid4
        self._fixed_uuids: dict[str, str] = {}

    @property
    def fixed_uuids(self) -> dict[str, str]:
        return dict(self._fixed_uuids)

    def fixed_uuid(self, name: str) -> str:
        if name not in self._fixed_uuids:
            self._fixed_uuids[name] = str(self._uuid_factory())
        return self._fixed_uuids[name]

    def render_blocks(self, text: str, values: Mapping[str, Any]) -> str:
        """Resolve conditional blocks until none are left.

        Blocks with different names may nest; each pass resolves the
        outermost ones.
        """

        def _resolve(match: re.Match[str]) -> str:
            kind, name, body = match.group(1), match.group(2).strip(), match.group(3)
            truthy = is_truthy(values.get(name))
            keep = truthy if kind == "#" else not truthy
            return body if keep else ""

        previous = None
        while previous != text:
            previous = text
            text = _BLOCK_RE.sub(_resolve, text)
        return text

    def _resolve_token(self, match: re.Match[str], values: Mapping[str, Any]) -> str:
        expr = match.group(1).strip()

        call = _CALL_RE.match(expr)
        if call:
            func, arg = call.group(1).upper(), call.group(2).strip()
            if func == "DATE":
                return format_date(arg, self._clock())
            if func == "UUID":
                return str(self._uuid_factory())
            if func == "UUID_FIXED":
                return self.fixed_uuid(arg)
            if func in TRANSFORMS and values.get(arg) is not None:
                return TRANSFORMS[func](_stringify(values[arg]))
            return match.group(0)

        value = values.get(expr)
        if value is None:
            return match.group(0)
        return _stringify(value)

    def substitute(self, text: str, values: Mapping[str, Any]) -> str:
        """Render conditional blocks, then replace every token."""
        text = self.render_blocks(text, values)
        return _TOKEN_RE.sub(lambda m: self._resolve_token(m, values), text)


def substitute(text: str, values: Mapping[str, Any]) -> str:
    """Substitute with a fresh Substituter (fixed UUIDs are not shared)."""
    return Substituter().substitute(text, values)
