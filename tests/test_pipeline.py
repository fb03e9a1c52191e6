"""Tests for project materialization."""

import subprocess
from pathlib import Path

import pytest

from pqs.errors import DestinationNotEmptyError, PqsError
from pqs.pipeline import (
    DEFAULT_PROJECT_NAME,
    Materializer,
    check_destination,
    resolve_output_path,
)
from pqs.prompts import ask_questions, parse_template_args
from pqs.templates.base import TemplateSpec


class FakeRunner:
    """Records commands instead of running them."""

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = failing
        self.calls: list[tuple[str, Path]] = []

    def __call__(self, command: str, cwd: Path) -> subprocess.CompletedProcess[str]:
        self.calls.append((command, cwd))
        code = 1 if command in self.failing else 0
        return subprocess.CompletedProcess(command, code, stdout="out\n", stderr="")


@pytest.fixture
def template_root(tmp_path: Path) -> Path:
    """A template directory with text, dot, binary and VCS files."""
    root = tmp_path / "template"
    (root / "src").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / "extras" / "cache").mkdir(parents=True)

    (root / "pqs.yaml").write_text("name: app\n")
    (root / "README.md").write_text(
        "# {{PQS:TITLE(projectName)}}\n"
        "{{#PQS:useDocker}}Run with docker.\n{{/PQS:useDocker}}"
        "id={{PQS:UUID_FIXED(app)}}\n"
    )
    (root / "src" / "main.py").write_text('NAME = "{{PQS:SNAKE(projectName)}}"\n')
    (root / "src" / "logo.bin").write_bytes(b"{{PQS:projectName}}\0\x01")
    (root / ".gitignore").write_text("dist/\n")
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / "node_modules" / "dep" / "index.js").write_text("")
    (root / "extras" / "CONTRIBUTING.md").write_text("Contribute to {{PQS:projectName}}\n")
    (root / "extras" / "cache" / "junk.txt").write_text("")
    return root


def _template(root: Path, steps: list[dict] | None = None, **extra) -> TemplateSpec:
    data = {
        "name": "app",
        "exclude": [".git", "node_modules", "extras"],
        "steps": steps or [],
        **extra,
    }
    return TemplateSpec.from_dict(data, path=root)


class TestResolveOutputPath:
    """Tests for choosing the output directory."""

    def test_explicit_output(self, tmp_path: Path) -> None:
        """Test an explicit output is used relative to cwd."""
        assert resolve_output_path({}, "out/dir", cwd=tmp_path) == tmp_path / "out/dir"
        assert resolve_output_path({}, tmp_path / "abs") == tmp_path / "abs"

    def test_project_name_is_slugified(self, tmp_path: Path) -> None:
        """Test the project name answer becomes a slug."""
        answers = {"projectName": "My Cool App!"}
        assert resolve_output_path(answers, cwd=tmp_path) == tmp_path / "my-cool-app"

    def test_name_key_order(self, tmp_path: Path) -> None:
        """Test projectName is preferred over name and project."""
        answers = {"project": "c", "name": "b", "projectName": "a"}
        assert resolve_output_path(answers, cwd=tmp_path) == tmp_path / "a"
        assert resolve_output_path({"name": "foo"}, cwd=tmp_path) == tmp_path / "foo"

    def test_fallback(self, tmp_path: Path) -> None:
        """Test the default name when nothing usable was answered."""
        assert resolve_output_path({}, cwd=tmp_path) == tmp_path / DEFAULT_PROJECT_NAME
        assert resolve_output_path({"projectName": "!!!"}, cwd=tmp_path) == (
            tmp_path / DEFAULT_PROJECT_NAME
        )

    def test_flag_answer_beats_values(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test a flag-supplied name decides the output path, not template values."""
        template = _template(
            template_root,
            values={"name": "x"},
            questions=[{"name": "projectName", "argument": "name"}],
        )
        answers = ask_questions(
            template, parse_template_args(["--name", "foo"], template)
        )
        work = tmp_path / "work"

        report = Materializer(template, answers, cwd=work, dry_run=True).run()

        assert report.output_path == work / "foo"


class TestCheckDestination:
    """Tests for the non-empty destination guard."""

    def test_missing_and_empty(self, tmp_path: Path) -> None:
        """Test missing or empty directories are fine."""
        check_destination(tmp_path / "missing")
        (tmp_path / "empty").mkdir()
        check_destination(tmp_path / "empty")

    def test_non_empty(self, tmp_path: Path) -> None:
        """Test non-empty directories need force."""
        (tmp_path / "file.txt").write_text("x")
        with pytest.raises(DestinationNotEmptyError, match="--force"):
            check_destination(tmp_path)
        check_destination(tmp_path, force=True)

    def test_not_a_directory(self, tmp_path: Path) -> None:
        """Test a file at the output path is rejected even with force."""
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(PqsError):
            check_destination(target, force=True)


class TestMaterializer:
    """Tests for the copy phase and setup steps."""

    def test_copy_phase(self, template_root: Path, tmp_path: Path) -> None:
        """Test everything but excluded paths is copied verbatim."""
        out = tmp_path / "out"
        report = Materializer(_template(template_root), {}, output=out).run()

        assert report.files == (
            ".gitignore",
            "README.md",
            "pqs.yaml",
            "src/logo.bin",
            "src/main.py",
        )
        assert (out / ".gitignore").read_text() == "dist/\n"
        assert not (out / ".git").exists()
        assert not (out / "node_modules").exists()
        assert "{{PQS:TITLE(projectName)}}" in (out / "README.md").read_text()

    def test_copy_is_byte_for_byte(self, tmp_path: Path) -> None:
        """Test a template without excludes is reproduced exactly, minus excludes."""
        root = tmp_path / "plain"
        (root / "nested" / "deeper").mkdir(parents=True)
        (root / "a.txt").write_text("alpha")
        (root / "secret.txt").write_text("hush")
        (root / "nested" / "deeper" / "data.bin").write_bytes(bytes(range(256)))

        full = TemplateSpec.from_dict({"name": "plain"}, path=root)
        Materializer(full, {}, output=tmp_path / "full").run()
        for rel in ("a.txt", "secret.txt", "nested/deeper/data.bin"):
            assert (tmp_path / "full" / rel).read_bytes() == (root / rel).read_bytes()

        trimmed = TemplateSpec.from_dict(
            {"name": "plain", "exclude": ["secret.txt"]}, path=root
        )
        Materializer(trimmed, {}, output=tmp_path / "trimmed").run()
        assert not (tmp_path / "trimmed" / "secret.txt").exists()
        assert (tmp_path / "trimmed" / "a.txt").exists()

    def test_replace_step(self, template_root: Path, tmp_path: Path) -> None:
        """Test placeholders are substituted in selected files only."""
        out = tmp_path / "out"
        template = _template(
            template_root,
            steps=[{"type": "replace", "files": ["**/*.md", "**/*.py", "**/*.bin"]}],
        )

        report = Materializer(
            template, {"projectName": "my app", "useDocker": True}, output=out
        ).run()

        readme = (out / "README.md").read_text()
        assert readme.startswith("# My App\nRun with docker.\nid=")
        assert (out / "src" / "main.py").read_text() == 'NAME = "my_app"\n'
        assert (out / "src" / "logo.bin").read_bytes() == (
            b"{{PQS:projectName}}\0\x01"
        )

        (step,) = report.steps
        assert step.status == "done"
        assert step.detail == "processed 3 files, 2 changed"
        assert step.warnings == ("Skipped binary file src/logo.bin",)
        assert report.warnings == ["Skipped binary file src/logo.bin"]

    def test_fixed_uuid_shared_across_files(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test one run uses one value per fixed UUID name, runs differ."""
        (template_root / "src" / "id.txt").write_text("{{PQS:UUID_FIXED(app)}}")
        template = _template(
            template_root, steps=[{"type": "replace", "files": ["**/*.{md,txt}"]}]
        )

        Materializer(template, {}, output=tmp_path / "one").run()
        Materializer(template, {}, output=tmp_path / "two").run()

        first = (tmp_path / "one" / "src" / "id.txt").read_text()
        assert f"id={first}\n" in (tmp_path / "one" / "README.md").read_text()
        assert first != (tmp_path / "two" / "src" / "id.txt").read_text()

    def test_values_and_defaults_fill_placeholders(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test template values and question defaults reach substitution."""
        (template_root / "LICENSE").write_text("{{PQS:license}} {{PQS:year}}")
        template = _template(
            template_root,
            steps=[{"type": "replace", "files": "LICENSE"}],
            values={"license": "MIT"},
            questions=[{"name": "year", "default": "2024"}],
        )

        Materializer(template, {}, output=tmp_path / "out").run()

        assert (tmp_path / "out" / "LICENSE").read_text() == "MIT 2024"

    def test_command_failure_does_not_stop_later_steps(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test a failing command is reported and the next step still runs."""
        out = tmp_path / "out"
        runner = FakeRunner(failing=("npm install",))
        template = _template(
            template_root,
            steps=[
                {"type": "command", "command": "npm install"},
                {"type": "command", "command": "git init"},
            ],
        )

        report = Materializer(template, {}, output=out, runner=runner).run()

        assert runner.calls == [("npm install", out), ("git init", out)]
        first, second = report.steps
        assert first.status == "failed"
        assert first.warnings == ("Command failed with exit code 1: npm install",)
        assert second.status == "done"
        assert second.detail == "out"
        assert not report.succeeded

    def test_command_oserror(self, template_root: Path, tmp_path: Path) -> None:
        """Test a runner error becomes a failed step."""

        def broken(command: str, cwd: Path) -> subprocess.CompletedProcess[str]:
            raise OSError("no shell")

        template = _template(template_root, steps=[{"type": "command", "command": "x"}])
        report = Materializer(
            template, {}, output=tmp_path / "out", runner=broken
        ).run()

        assert report.steps[0].status == "failed"

    def test_conditional_step_skipped(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test steps whose condition is false are skipped."""
        runner = FakeRunner()
        template = _template(
            template_root,
            steps=[
                {"type": "command", "command": "docker build .", "condition": "useDocker"}
            ],
        )

        report = Materializer(
            template, {"useDocker": False}, output=tmp_path / "out", runner=runner
        ).run()

        assert runner.calls == []
        assert report.steps[0].status == "skipped"
        assert report.steps[0].detail == "condition not met"

    def test_copy_step(self, template_root: Path, tmp_path: Path) -> None:
        """Test copy steps honour their own excludes and feed replace steps."""
        out = tmp_path / "out"
        template = _template(
            template_root,
            steps=[
                {
                    "type": "copy",
                    "source": "extras",
                    "destination": "docs",
                    "exclude": ["cache"],
                },
                {"type": "replace", "files": "docs/*.md"},
            ],
        )

        report = Materializer(template, {"projectName": "demo"}, output=out).run()

        assert (out / "docs" / "CONTRIBUTING.md").read_text() == "Contribute to demo\n"
        assert not (out / "docs" / "cache").exists()
        assert report.steps[0].detail == "copied 1 files to docs"

    def test_copy_step_missing_source(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test a missing copy source is a warning, not an error."""
        template = _template(
            template_root, steps=[{"type": "copy", "source": "nowhere"}]
        )

        report = Materializer(template, {}, output=tmp_path / "out").run()

        assert report.steps[0].status == "skipped"
        assert report.warnings == ["Copy source not found: nowhere"]

    def test_copy_step_outside_template(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test copy sources may not escape the template directory."""
        (tmp_path / "secret.txt").write_text("secret")
        template = _template(
            template_root, steps=[{"type": "copy", "source": "../secret.txt"}]
        )

        report = Materializer(template, {}, output=tmp_path / "out").run()

        assert report.steps[0].status == "failed"
        assert not (tmp_path / "out" / "secret.txt").exists()

    def test_on_step_callback(self, template_root: Path, tmp_path: Path) -> None:
        """Test the callback sees each applicable step before it runs."""
        seen: list[int] = []
        template = _template(
            template_root,
            steps=[
                {"type": "command", "command": "a", "condition": "never"},
                {"type": "command", "command": "b"},
            ],
        )

        Materializer(
            template,
            {},
            output=tmp_path / "out",
            runner=FakeRunner(),
            on_step=lambda index, step: seen.append(index),
        ).run()

        assert seen == [1]

    def test_template_without_root(self) -> None:
        """Test a template must know its directory."""
        with pytest.raises(PqsError):
            Materializer(TemplateSpec(name="x"), {})


class TestDryRun:
    """Tests for dry runs."""

    def test_no_side_effects(self, template_root: Path, tmp_path: Path) -> None:
        """Test nothing is written or executed in a dry run."""
        out = tmp_path / "out"
        runner = FakeRunner()
        template = _template(
            template_root,
            steps=[
                {"type": "copy", "source": "extras", "destination": "docs"},
                {"type": "replace", "files": ["**/*.md"]},
                {"type": "command", "command": "git init"},
            ],
        )

        report = Materializer(
            template, {"projectName": "demo"}, output=out, dry_run=True, runner=runner
        ).run()

        assert not out.exists()
        assert runner.calls == []
        assert report.dry_run
        assert [s.status for s in report.steps] == ["planned", "planned", "planned"]
        assert report.steps[1].detail == (
            "would process files: README.md, docs/CONTRIBUTING.md"
        )
        assert report.steps[2].detail == "would run: git init"

    def test_guard_still_applies(self, template_root: Path, tmp_path: Path) -> None:
        """Test a dry run into a non-empty directory fails like a real one."""
        out = tmp_path / "out"
        out.mkdir()
        (out / "existing.txt").write_text("x")

        with pytest.raises(DestinationNotEmptyError):
            Materializer(_template(template_root), {}, output=out, dry_run=True).run()

    def test_forced_dry_run_sees_existing_files(
        self, template_root: Path, tmp_path: Path
    ) -> None:
        """Test existing output files are part of the planned replace set."""
        out = tmp_path / "out"
        out.mkdir()
        (out / "NOTES.md").write_text("x")
        template = _template(
            template_root, steps=[{"type": "replace", "files": "*.md"}]
        )

        report = Materializer(
            template, {}, output=out, force=True, dry_run=True
        ).run()

        assert report.steps[0].detail == "would process files: NOTES.md, README.md"
