"""Declarative conditions and validators for template definitions.

Conditions decide whether a question is asked or a step runs. They are
plain data parsed from YAML:

    condition: useDocker             # truthy
    condition: "!useDocker"          # falsy
    condition: {field: license, operator: eq, value: MIT}
    condition: {all: [useDocker, {field: db, operator: in, value: [pg, mysql]}]}
    condition: {any: [...]}
    condition: {not: useDocker}
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pqs.errors import TemplateDefinitionError

FALSY_STRINGS = frozenset({"", "false", "no", "off", "0"})

OPERATORS = ("truthy", "falsy", "eq", "ne", "in", "not_in", "contains", "matches")


def is_truthy(value: Any) -> bool:
    """Truthiness shared by conditions and conditional blocks.

    Strings like "false", "no", "off" and "0" count as false so that
    answers supplied as CLI flags behave like their boolean form.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    if isinstance(value, bool | int | float):
        return bool(value)
    try:
        return len(value) > 0
    except TypeError:
        return True


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class Condition(Protocol):
    def evaluate(self, answers: Mapping[str, Any]) -> bool: ...


@dataclass(frozen=True)
class FieldCondition:
    """Compare one answer against a literal."""

    field: str
    operator: str = "truthy"
    value: Any = None

    def evaluate(self, answers: Mapping[str, Any]) -> bool:
        actual = answers.get(self.field)
        op = self.operator
        if op == "truthy":
            return is_truthy(actual)
        if op == "falsy":
            return not is_truthy(actual)
        if actual is None:
            return op in ("ne", "not_in")
        if op == "eq":
            return _normalize(actual) == _normalize(self.value)
        if op == "ne":
            return _normalize(actual) != _normalize(self.value)
        if op in ("in", "not_in"):
            options = self.value if isinstance(self.value, list | tuple) else [self.value]
            found = _normalize(actual) in {_normalize(v) for v in options}
            return found if op == "in" else not found
        if op == "contains":
            if isinstance(actual, list | tuple | set):
                return _normalize(self.value) in {_normalize(v) for v in actual}
            return _normalize(self.value) in _normalize(actual)
        if op == "matches":
            return re.search(str(self.value), _normalize(actual)) is not None
        raise TemplateDefinitionError(f"Unknown condition operator: {op}")


@dataclass(frozen=True)
class AllOf:
    conditions: tuple[Condition, ...]

    def evaluate(self, answers: Mapping[str, Any]) -> bool:
        return all(c.evaluate(answers) for c in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    conditions: tuple[Condition, ...]

    def evaluate(self, answers: Mapping[str, Any]) -> bool:
        return any(c.evaluate(answers) for c in self.conditions)


@dataclass(frozen=True)
class Not:
    condition: Condition

    def evaluate(self, answers: Mapping[str, Any]) -> bool:
        return not self.condition.evaluate(answers)


def _parse_list(raw: Any, key: str) -> tuple[Condition, ...]:
    if not isinstance(raw, list) or not raw:
        raise TemplateDefinitionError(f"Condition '{key}' expects a non-empty list")
    return tuple(parse_condition(item) for item in raw)


def parse_condition(raw: Any) -> Condition:
    """Parse a condition from its YAML form.

    Raises:
        TemplateDefinitionError: On unknown operators, bad regexes or
            unrecognized shapes.
    """
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("!"):
            return FieldCondition(field=text[1:].strip(), operator="falsy")
        if not text:
            raise TemplateDefinitionError("Condition field name is empty")
        return FieldCondition(field=text)

    if not isinstance(raw, dict):
        raise TemplateDefinitionError(f"Invalid condition: {raw!r}")

    if "all" in raw:
        return AllOf(_parse_list(raw["all"], "all"))
    if "any" in raw:
        return AnyOf(_parse_list(raw["any"], "any"))
    if "not" in raw:
        return Not(parse_condition(raw["not"]))

    field = raw.get("field")
    if not field:
        raise TemplateDefinitionError(f"Condition is missing 'field': {raw!r}")
    operator = str(raw.get("operator", "truthy"))
    if operator not in OPERATORS:
        raise TemplateDefinitionError(f"Unknown condition operator: {operator}")
    value = raw.get("value")
    if operator == "matches":
        try:
            re.compile(str(value))
        except re.error as e:
            raise TemplateDefinitionError(
                f"Invalid regex in condition on '{field}': {e}"
            ) from e
    return FieldCondition(field=str(field), operator=operator, value=value)


@dataclass(frozen=True)
class Validator:
    """Declarative validation for input answers."""

    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    message: str | None = None

    def check(self, value: str) -> str | None:
        """Return an error message, or None if the value is acceptable."""
        text = value or ""
        if self.required and not text.strip():
            return self.message or "A value is required."
        if self.min_length is not None and len(text) < self.min_length:
            return self.message or f"Must be at least {self.min_length} characters."
        if self.max_length is not None and len(text) > self.max_length:
            return self.message or f"Must be at most {self.max_length} characters."
        if self.pattern is not None and text and not re.fullmatch(self.pattern, text):
            return self.message or f"Must match pattern {self.pattern}."
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Validator:
        """Create from the ``validate`` mapping of a question."""

        def _int(key: str) -> int | None:
            raw = data.get(key, data.get(key.replace("_l", "L")))
            if raw is None:
                return None
            try:
                return int(raw)
            except (TypeError, ValueError) as e:
                raise TemplateDefinitionError(
                    f"Validator '{key}' must be an integer"
                ) from e

        pattern = data.get("pattern")
        if pattern is not None:
            try:
                re.compile(str(pattern))
            except re.error as e:
                raise TemplateDefinitionError(f"Invalid validator pattern: {e}") from e

        message = data.get("message")
        return cls(
            required=bool(data.get("required", False)),
            min_length=_int("min_length"),
            max_length=_int("max_length"),
            pattern=str(pattern) if pattern is not None else None,
            message=str(message) if message is not None else None,
        )
