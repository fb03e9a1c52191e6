"""Template definition data model."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from pqs.errors import TemplateDefinitionError, UnknownQuestionTypeError
from pqs.templates.conditions import Condition, Validator, parse_condition

QUESTION_TYPES = ("input", "confirm", "select", "checkbox")
SEPARATOR = "---"

Answers = dict[str, Any]


def _optional_condition(data: Mapping[str, Any]) -> Condition | None:
    raw = data.get("condition", data.get("when"))
    if raw is None:
        return None
    return parse_condition(raw)


def _string_tuple(raw: Any, what: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (raw,)
    if isinstance(raw, list):
        return tuple(str(item) for item in raw)
    raise TemplateDefinitionError(f"'{what}' must be a string or a list of strings")


@dataclass(frozen=True)
class Choice:
    """One option of a select or checkbox question."""

    name: str
    value: Any
    description: str = ""
    disabled: bool = False
    checked: bool = False
    separator: bool = False

    @property
    def selectable(self) -> bool:
        return not (self.separator or self.disabled)

    @classmethod
    def from_raw(cls, raw: Any) -> Choice:
        """Create from a bare label, the separator literal or a mapping."""
        if isinstance(raw, dict):
            if "name" not in raw and "value" not in raw:
                raise TemplateDefinitionError(f"Choice needs a name or value: {raw!r}")
            name = str(raw.get("name", raw.get("value")))
            return cls(
                name=name,
                value=raw.get("value", name),
                description=str(raw.get("description", "")),
                disabled=bool(raw.get("disabled", False)),
                checked=bool(raw.get("checked", False)),
            )
        label = str(raw)
        if label == SEPARATOR:
            return cls(name=label, value=None, separator=True)
        return cls(name=label, value=label)


@dataclass(frozen=True)
class Question:
    """A question asked before materialization."""

    type: str
    name: str
    message: str
    argument: str | None = None
    short_argument: str | None = None
    default: Any = None
    validate: Validator | None = None
    condition: Condition | None = None
    choices: tuple[Choice, ...] = ()

    def applies(self, answers: Mapping[str, Any]) -> bool:
        return self.condition is None or self.condition.evaluate(answers)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        """Create a Question from a mapping in the template definition.

        Raises:
            UnknownQuestionTypeError: If ``type`` is not supported.
            TemplateDefinitionError: If the mapping is otherwise invalid.
        """
        name = data.get("name")
        if not name:
            raise TemplateDefinitionError(f"Question is missing 'name': {data!r}")
        name = str(name)

        qtype = str(data.get("type", "input"))
        if qtype not in QUESTION_TYPES:
            raise UnknownQuestionTypeError(qtype, name)

        choices: tuple[Choice, ...] = ()
        if qtype in ("select", "checkbox"):
            choices_raw = data.get("choices")
            if not isinstance(choices_raw, list) or not choices_raw:
                raise TemplateDefinitionError(
                    f"Question '{name}' of type {qtype} needs a list of choices"
                )
            choices = tuple(Choice.from_raw(c) for c in choices_raw)

        validate_raw = data.get("validate")
        validator: Validator | None = None
        if isinstance(validate_raw, dict):
            validator = Validator.from_dict(validate_raw)
        elif validate_raw is not None:
            raise TemplateDefinitionError(
                f"Question '{name}': 'validate' must be a mapping"
            )

        argument = data.get("argument")
        short_argument = data.get("short_argument", data.get("shortArgument"))
        return cls(
            type=qtype,
            name=name,
            message=str(data.get("message", name)),
            argument=str(argument) if argument else None,
            short_argument=str(short_argument) if short_argument else None,
            default=data.get("default"),
            validate=validator,
            condition=_optional_condition(data),
            choices=choices,
        )


@dataclass(frozen=True)
class Step:
    """Base class for setup steps run after the copy phase."""

    type: ClassVar[str] = ""

    description: str = ""
    condition: Condition | None = None

    def applies(self, answers: Mapping[str, Any]) -> bool:
        return self.condition is None or self.condition.evaluate(answers)


@dataclass(frozen=True)
class ReplaceStep(Step):
    """Substitute placeholders in output files matching ``files``."""

    type: ClassVar[str] = "replace"

    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class CommandStep(Step):
    """Run a shell command inside the output directory."""

    type: ClassVar[str] = "command"

    command: str = ""


@dataclass(frozen=True)
class CopyStep(Step):
    """Copy a file or directory from the template root into the output."""

    type: ClassVar[str] = "copy"

    source: str = ""
    destination: str | None = None
    exclude: tuple[str, ...] = ()

    @property
    def target(self) -> str:
        return self.destination or self.source


def step_from_dict(data: Any) -> Step:
    """Create the matching Step subclass from a mapping.

    Raises:
        TemplateDefinitionError: On unknown step types or missing fields.
    """
    if not isinstance(data, dict):
        raise TemplateDefinitionError(f"Step must be a mapping: {data!r}")

    step_type = data.get("type")
    description = str(data.get("description", ""))
    condition = _optional_condition(data)

    if step_type == "replace":
        files = _string_tuple(data.get("files"), "files")
        if not files:
            raise TemplateDefinitionError("Replace step needs 'files'")
        return ReplaceStep(description=description, condition=condition, files=files)

    if step_type == "command":
        command = data.get("command")
        if not command:
            raise TemplateDefinitionError("Command step needs 'command'")
        return CommandStep(
            description=description, condition=condition, command=str(command)
        )

    if step_type == "copy":
        source = data.get("source")
        if not source:
            raise TemplateDefinitionError("Copy step needs 'source'")
        destination = data.get("destination")
        return CopyStep(
            description=description,
            condition=condition,
            source=str(source),
            destination=str(destination) if destination else None,
            exclude=_string_tuple(data.get("exclude"), "exclude"),
        )

    raise TemplateDefinitionError(f"Unknown step type: {step_type}")


@dataclass(frozen=True)
class TemplateSpec:
    """A parsed template definition.

    ``path``, ``source`` and ``is_remote`` are assigned at discovery and
    are not part of the definition file.
    """

    name: str
    description: str = ""
    values: Mapping[str, Any] = field(default_factory=dict)
    questions: tuple[Question, ...] = ()
    exclude: tuple[str, ...] = ()
    steps: tuple[Step, ...] = ()
    path: Path | None = None
    source: str = ""
    is_remote: bool = False

    def question_defaults(self) -> Answers:
        """Defaults declared on questions, keyed by question name."""
        return {q.name: q.default for q in self.questions if q.default is not None}

    def substitution_context(self, answers: Mapping[str, Any]) -> Answers:
        """Build the placeholder context.

        Precedence (lowest to highest): question defaults, template values,
        answers.
        """
        context = self.question_defaults()
        context.update(self.values)
        context.update(answers)
        return context

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        path: Path | None = None,
        source: str = "",
        is_remote: bool = False,
    ) -> TemplateSpec:
        """Create a TemplateSpec from a parsed definition file.

        Raises:
            TemplateDefinitionError: If the definition is invalid.
        """
        name = data.get("name")
        if not name or not str(name).strip():
            raise TemplateDefinitionError("Template definition is missing 'name'")

        values_raw = data.get("values") or {}
        if not isinstance(values_raw, dict):
            raise TemplateDefinitionError("'values' must be a mapping")

        questions_raw = data.get("questions") or []
        if not isinstance(questions_raw, list):
            raise TemplateDefinitionError("'questions' must be a list")
        questions: list[Question] = []
        for item in questions_raw:
            if not isinstance(item, dict):
                raise TemplateDefinitionError(f"Question must be a mapping: {item!r}")
            questions.append(Question.from_dict(item))

        seen: set[str] = set()
        for q in questions:
            if q.name in seen:
                raise TemplateDefinitionError(f"Duplicate question name: {q.name}")
            seen.add(q.name)

        steps_raw = data.get("steps") or []
        if not isinstance(steps_raw, list):
            raise TemplateDefinitionError("'steps' must be a list")

        return cls(
            name=str(name).strip(),
            description=str(data.get("description") or ""),
            values={str(k): v for k, v in values_raw.items()},
            questions=tuple(questions),
            exclude=_string_tuple(data.get("exclude"), "exclude"),
            steps=tuple(step_from_dict(s) for s in steps_raw),
            path=path,
            source=source,
            is_remote=is_remote,
        )
