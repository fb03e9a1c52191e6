"""Project materialization: copy template files, then run setup steps."""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pqs.errors import DestinationNotEmptyError, PqsError
from pqs.globbing import is_excluded, list_files, select_paths
from pqs.substitution import Substituter, transform
from pqs.templates.base import CommandStep, CopyStep, ReplaceStep, Step, TemplateSpec

logger = logging.getLogger(__name__)

PROJECT_NAME_KEYS = ("projectName", "name", "project")
DEFAULT_PROJECT_NAME = "new-project"

StepStatus = Literal["done", "skipped", "failed", "planned"]

CommandRunner = Callable[[str, Path], "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class StepResult:
    """Outcome of one setup step."""

    index: int
    type: str
    status: StepStatus
    description: str = ""
    detail: str = ""
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class MaterializationReport:
    """Everything a materialization run did (or would do in a dry run)."""

    template: str
    output_path: Path
    dry_run: bool
    files: tuple[str, ...] = ()
    steps: tuple[StepResult, ...] = field(default_factory=tuple)

    @property
    def warnings(self) -> list[str]:
        return [w for step in self.steps for w in step.warnings]

    @property
    def succeeded(self) -> bool:
        return all(step.status != "failed" for step in self.steps)


def resolve_output_path(
    answers: Mapping[str, Any],
    output: str | Path | None = None,
    cwd: Path | None = None,
) -> Path:
    """Decide where the project goes.

    An explicit output wins. Otherwise the first non-empty answer among
    PROJECT_NAME_KEYS is slugified; DEFAULT_PROJECT_NAME if that is empty.
    """
    base = cwd or Path.cwd()
    if output:
        path = Path(output).expanduser()
        return path if path.is_absolute() else base / path

    name = ""
    for key in PROJECT_NAME_KEYS:
        value = answers.get(key)
        if value is not None and str(value).strip():
            name = transform(str(value), "SLUG")
            break
    return base / (name or DEFAULT_PROJECT_NAME)


def check_destination(path: Path, force: bool = False) -> None:
    """Refuse to materialize into a non-empty directory unless forced.

    Raises:
        DestinationNotEmptyError: If path has content and force is False.
        PqsError: If path exists but is not a directory.
    """
    if not path.exists():
        return
    if not path.is_dir():
        raise PqsError(f"Output path {path} exists and is not a directory")
    if not force and any(path.iterdir()):
        raise DestinationNotEmptyError(path)


def run_shell_command(command: str, cwd: Path) -> subprocess.CompletedProcess[str]:
    """Run a template command through the shell."""
    return subprocess.run(
        command,
        shell=True,
        cwd=cwd,
        capture_output=True,
        text=True,
    )


class Materializer:
    """Turns a template plus answers into a project directory.

    Runs strictly in order: resolve output path, guard, copy phase, steps.
    A dry run goes through the same decisions without touching the disk.
    """

    def __init__(
        self,
        template: TemplateSpec,
        answers: Mapping[str, Any],
        output: str | Path | None = None,
        force: bool = False,
        dry_run: bool = False,
        cwd: Path | None = None,
        runner: CommandRunner | None = None,
        substituter: Substituter | None = None,
        on_step: Callable[[int, Step], None] | None = None,
    ) -> None:
        if template.path is None:
            raise PqsError(f"Template {template.name} has no root directory")
        self.template = template
        self.template_root: Path = template.path
        self.answers = dict(answers)
        self.output = output
        self.force = force
        self.dry_run = dry_run
        self.cwd = cwd
        self.runner = runner or run_shell_command
        self.substituter = substituter or Substituter()
        self.on_step = on_step

    def run(self) -> MaterializationReport:
        """Materialize the project.

        Raises:
            DestinationNotEmptyError: From the guard, also in dry runs.
            OSError: If the copy phase cannot write the output.
        """
        output_path = resolve_output_path(self.answers, self.output, self.cwd)
        check_destination(output_path, self.force)

        # Files known to be in the output, used by replace steps in dry runs
        planned: dict[str, None] = dict.fromkeys(list_files(output_path))

        files = self._copy_template(output_path)
        planned.update(dict.fromkeys(files))

        context = self.template.substitution_context(self.answers)
        results: list[StepResult] = []
        for index, step in enumerate(self.template.steps):
            if not step.applies(self.answers):
                logger.debug("Skipping step %d: condition is false", index)
                results.append(_result(index, step, "skipped", "condition not met"))
                continue

            if self.on_step is not None:
                self.on_step(index, step)

            if isinstance(step, ReplaceStep):
                result = self._replace(index, step, output_path, context, list(planned))
            elif isinstance(step, CommandStep):
                result = self._command(index, step, output_path)
            elif isinstance(step, CopyStep):
                result, copied = self._copy_step(index, step, output_path)
                planned.update(dict.fromkeys(copied))
            else:
                raise PqsError(f"Unsupported step type: {step.type}")

            for warning in result.warnings:
                logger.info("Step %d (%s): %s", index, step.type, warning)
            results.append(result)

        return MaterializationReport(
            template=self.template.name,
            output_path=output_path,
            dry_run=self.dry_run,
            files=tuple(files),
            steps=tuple(results),
        )

    def _copy_template(self, output_path: Path) -> list[str]:
        files = [
            rel
            for rel in list_files(self.template_root)
            if not is_excluded(rel, self.template.exclude)
        ]
        if self.dry_run:
            return files

        output_path.mkdir(parents=True, exist_ok=True)
        for rel in files:
            dest = output_path / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.template_root / rel, dest)
        logger.debug("Copied %d files to %s", len(files), output_path)
        return files

    def _replace(
        self,
        index: int,
        step: ReplaceStep,
        output_path: Path,
        context: Mapping[str, Any],
        planned: list[str],
    ) -> StepResult:
        candidates = planned if self.dry_run else list_files(output_path)
        targets = select_paths(candidates, step.files)

        if self.dry_run:
            return _result(
                index, step, "planned", f"would process files: {', '.join(targets)}"
            )

        warnings: list[str] = []
        changed = 0
        for rel in targets:
            path = output_path / rel
            try:
                raw = path.read_bytes()
            except OSError as e:
                warnings.append(f"Skipped {rel}: {e}")
                continue
            if b"\0" in raw:
                warnings.append(f"Skipped binary file {rel}")
                continue
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                warnings.append(f"Skipped non-UTF-8 file {rel}")
                continue

            rendered = self.substituter.substitute(text, context)
            if rendered == text:
                continue
            try:
                path.write_bytes(rendered.encode("utf-8"))
            except OSError as e:
                warnings.append(f"Could not write {rel}: {e}")
                continue
            changed += 1

        detail = f"processed {len(targets)} files, {changed} changed"
        return _result(index, step, "done", detail, *warnings)

    def _command(
        self, index: int, step: CommandStep, output_path: Path
    ) -> StepResult:
        if self.dry_run:
            return _result(index, step, "planned", f"would run: {step.command}")

        try:
            completed = self.runner(step.command, output_path)
        except OSError as e:
            return _result(
                index, step, "failed", str(e), f"Command failed: {step.command}: {e}"
            )

        output = "\n".join(
            part.strip()
            for part in (completed.stdout, completed.stderr)
            if part and part.strip()
        )
        if completed.returncode != 0:
            return _result(
                index,
                step,
                "failed",
                output,
                f"Command failed with exit code {completed.returncode}: "
                f"{step.command}",
            )
        return _result(index, step, "done", output)

    def _copy_step(
        self, index: int, step: CopyStep, output_path: Path
    ) -> tuple[StepResult, list[str]]:
        root = self.template_root.resolve()
        source = (root / step.source).resolve()
        if not source.is_relative_to(root):
            warning = f"Refusing to copy {step.source}: outside the template directory"
            return _result(index, step, "failed", "", warning), []

        out_root = output_path.resolve()
        destination = (out_root / step.target).resolve()
        if not destination.is_relative_to(out_root):
            warning = f"Refusing to copy to {step.target}: outside the output directory"
            return _result(index, step, "failed", "", warning), []

        if not source.exists():
            warning = f"Copy source not found: {step.source}"
            return _result(index, step, "skipped", "", warning), []

        pairs: list[tuple[Path, Path]] = []
        if source.is_dir():
            for rel in list_files(source):
                if not is_excluded(rel, step.exclude):
                    pairs.append((source / rel, destination / rel))
        else:
            pairs.append((source, destination))

        copied = [dest.relative_to(out_root).as_posix() for _, dest in pairs]
        if self.dry_run:
            detail = f"would copy {len(copied)} files to {step.target}"
            return _result(index, step, "planned", detail), copied

        try:
            for src, dest in pairs:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)
        except OSError as e:
            return _result(index, step, "failed", "", f"Copy failed: {e}"), []

        detail = f"copied {len(copied)} files to {step.target}"
        return _result(index, step, "done", detail), copied


def _result(
    index: int, step: Step, status: StepStatus, detail: str = "", *warnings: str
) -> StepResult:
    return StepResult(index, step.type, status, step.description, detail, warnings)
