"""Collecting answers to template questions from flags and prompts."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import click

from pqs.console import console
from pqs.errors import PromptCancelledError
from pqs.templates.base import Answers, Choice, Question, TemplateSpec
from pqs.templates.conditions import is_truthy

logger = logging.getLogger(__name__)

# Flags owned by `pqs create` itself
RESERVED_FLAGS = frozenset(
    {"output", "o", "force", "f", "dry-run", "d", "refresh"}
)

TRUE_WORDS = frozenset({"true", "yes", "y", "on", "1"})
FALSE_WORDS = frozenset({"false", "no", "n", "off", "0"})
BOOL_WORDS = TRUE_WORDS | FALSE_WORDS


class Prompter(Protocol):
    """Asks one question interactively."""

    def ask(self, question: Question, default: Any) -> Any: ...


class ClickPrompter:
    """Prompter backed by click prompts and the shared console."""

    def ask(self, question: Question, default: Any) -> Any:
        try:
            if question.type == "confirm":
                return self._confirm(question, default)
            if question.type == "select":
                return self._select(question, default)
            if question.type == "checkbox":
                return self._checkbox(question, default)
            return self._input(question, default)
        except click.Abort:
            raise PromptCancelledError() from None

    def _input(self, question: Question, default: Any) -> str:
        while True:
            value: str = click.prompt(
                question.message,
                default="" if default is None else str(default),
                show_default=default is not None and default != "",
            )
            error = question.validate.check(value) if question.validate else None
            if error is None:
                return value
            console.print(f"[red]{error}[/red]")

    def _confirm(self, question: Question, default: Any) -> bool:
        return click.confirm(
            question.message,
            default=True if default is None else is_truthy(default),
        )

    def _menu(self, question: Question) -> list[Choice]:
        """Print a numbered menu and return the selectable choices in order."""
        console.print(f"[bold]{question.message}[/bold]")
        selectable: list[Choice] = []
        for choice in question.choices:
            if choice.separator:
                console.print("  [dim]──────────[/dim]")
                continue
            if choice.disabled:
                console.print(f"  [dim]-  {choice.name} (disabled)[/dim]")
                continue
            selectable.append(choice)
            line = f"  {len(selectable)}. {choice.name}"
            if choice.description:
                line += f" [dim]- {choice.description}[/dim]"
            console.print(line)
        return selectable

    def _select(self, question: Question, default: Any) -> Any:
        selectable = self._menu(question)
        default_index = 1
        for i, choice in enumerate(selectable, 1):
            if default is not None and choice.value == default:
                default_index = i
                break
        index: int = click.prompt(
            "Select",
            type=click.IntRange(1, len(selectable)),
            default=default_index,
        )
        return selectable[index - 1].value

    def _checkbox(self, question: Question, default: Any) -> list[Any]:
        selectable = self._menu(question)
        defaults = default if isinstance(default, list | tuple) else []
        preselected = [
            str(i)
            for i, choice in enumerate(selectable, 1)
            if choice.checked or choice.value in defaults
        ]
        while True:
            raw: str = click.prompt(
                "Select (comma-separated numbers, blank for none)",
                default=",".join(preselected),
                show_default=bool(preselected),
            )
            try:
                picked = [int(part) for part in raw.split(",") if part.strip()]
            except ValueError:
                console.print("[red]Enter numbers separated by commas.[/red]")
                continue
            if all(1 <= n <= len(selectable) for n in picked):
                return [selectable[n - 1].value for n in dict.fromkeys(picked)]
            console.print(f"[red]Choose numbers between 1 and {len(selectable)}.[/red]")


def prompt_default(template: TemplateSpec, question: Question) -> Any:
    """Template values win over the question's own default."""
    if question.name in template.values:
        return template.values[question.name]
    return question.default


def coerce_flag_value(question: Question, raw: Any) -> Any:
    """Convert a flag-supplied answer to the question's answer type.

    Confirm answers become booleans when they spell yes/no; checkbox
    answers are split on commas. Everything else is kept verbatim.
    """
    if not isinstance(raw, str):
        return raw
    if question.type == "confirm":
        word = raw.strip().lower()
        if word in TRUE_WORDS:
            return True
        if word in FALSE_WORDS:
            return False
        return raw
    if question.type == "checkbox":
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw


def _flag_value(question: Question, cli_args: Mapping[str, Any]) -> Any:
    # cli_args is keyed by question name, see parse_template_args
    return cli_args.get(question.name)


def ask_questions(
    template: TemplateSpec,
    cli_args: Mapping[str, Any] | None = None,
    prompter: Prompter | None = None,
) -> Answers:
    """Collect answers in declaration order.

    A question whose condition is false for the answers so far is skipped
    and left out of the result. A flag value, looked up by the question's
    argument and then its name, replaces the prompt.

    Raises:
        PromptCancelledError: If the user aborts a prompt.
    """
    cli_args = cli_args or {}
    prompter = prompter or ClickPrompter()
    answers: Answers = {}

    for question in template.questions:
        if not question.applies(answers):
            logger.debug("Skipping question %s: condition is false", question.name)
            continue

        raw = _flag_value(question, cli_args)
        if raw is not None:
            answers[question.name] = coerce_flag_value(question, raw)
            continue

        answers[question.name] = prompter.ask(
            question, prompt_default(template, question)
        )

    return answers


def reserved_flag_conflicts(template: TemplateSpec) -> list[str]:
    """Describe questions that declare a flag reserved by pqs itself."""
    conflicts: list[str] = []
    for question in template.questions:
        for flag in (question.argument, question.short_argument):
            if flag and flag in RESERVED_FLAGS:
                conflicts.append(
                    f"Question '{question.name}' uses reserved flag '{flag}'; "
                    "it can only be answered interactively"
                )
    return conflicts


def parse_template_args(args: Sequence[str], template: TemplateSpec) -> dict[str, str]:
    """Map extra command-line tokens to answers keyed by question name.

    Accepts ``--arg value``, ``--arg=value``, ``-s value``, a bare
    ``--flag`` / ``--no-flag`` for confirm questions.

    Raises:
        click.UsageError: On unknown flags, missing values or stray
            positional arguments.
    """
    long_flags: dict[str, Question] = {}
    short_flags: dict[str, Question] = {}
    for question in template.questions:
        if question.argument and question.argument not in RESERVED_FLAGS:
            long_flags[question.argument] = question
        if question.short_argument and question.short_argument not in RESERVED_FLAGS:
            short_flags[question.short_argument] = question

    result: dict[str, str] = {}
    tokens = list(args)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1

        if token.startswith("--"):
            key, sep, value = token[2:].partition("=")
            question = long_flags.get(key)
            if question is None and key.startswith("no-"):
                negated = long_flags.get(key[3:])
                if negated is not None and negated.type == "confirm" and not sep:
                    result[negated.name] = "false"
                    continue
        elif token.startswith("-") and len(token) > 1:
            key, sep, value = token[1:].partition("=")
            question = short_flags.get(key)
        else:
            raise click.UsageError(f"Unexpected argument: {token}")

        if question is None:
            raise click.UsageError(
                f"No such option for template '{template.name}': {token}"
            )

        if not sep:
            following = tokens[i] if i < len(tokens) else None
            if question.type == "confirm":
                if following is not None and following.lower() in BOOL_WORDS:
                    value = following
                    i += 1
                else:
                    value = "true"
            elif following is None or (following.startswith("-") and following != "-"):
                raise click.UsageError(f"Option {token} requires a value")
            else:
                value = following
                i += 1

        result[question.name] = value

    return result
