"""Exception hierarchy for pqs."""

from __future__ import annotations

from collections.abc import Iterable


class PqsError(Exception):
    """Base exception for pqs operations."""


class InvalidReferenceError(PqsError):
    """Raised when a template location is not a usable repository reference."""

    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__(f"Invalid git URL: {location}")


class SourceNotFoundError(PqsError):
    """Raised when a local template directory does not exist."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(f"Local template directory does not exist: {path}")


class GitUnavailableError(PqsError):
    """Raised when no usable git client is on PATH."""

    def __init__(self) -> None:
        super().__init__("Git is not installed or not available in PATH")


class CloneFailedError(PqsError):
    """Raised when cloning a remote template repository fails."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to clone repository {url}: {reason}")


class NoTemplatesFoundError(PqsError):
    """Raised when a cloned repository contains no template definitions."""

    def __init__(self, repository: str) -> None:
        self.repository = repository
        super().__init__(
            f"Repository {repository} does not contain any valid templates "
            "(no pqs.yaml files found)"
        )


class SourceNotCachedError(PqsError):
    """Raised when updating a remote source that was never cached."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Repository is not cached: {url}")


class DestinationNotEmptyError(PqsError):
    """Raised when the output directory already has content."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(
            f"Output directory {path} is not empty. Use --force to override."
        )


class TemplateNotFoundError(PqsError):
    """Raised when no discovered template has the requested name."""

    def __init__(self, name: str, available: Iterable[str] = ()) -> None:
        self.name = name
        self.available = tuple(available)
        super().__init__(f'Template "{name}" not found.')


class TemplateDefinitionError(PqsError):
    """Raised when a template definition file is malformed."""


class UnknownQuestionTypeError(TemplateDefinitionError):
    """Raised when a question declares an unsupported type."""

    def __init__(self, question_type: str, question_name: str = "") -> None:
        self.question_type = question_type
        self.question_name = question_name
        label = f" for question '{question_name}'" if question_name else ""
        super().__init__(f"Unknown question type{label}: {question_type}")


class PromptCancelledError(PqsError):
    """Raised when the user cancels an interactive prompt."""

    def __init__(self) -> None:
        super().__init__("Operation cancelled.")
