"""Tests for the CLI."""

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pqs import __version__
from pqs.cli import main
from pqs.errors import PromptCancelledError
from pqs.git.cache import CacheIndex

TEMPLATE_YAML = """\
name: web
description: Web starter
questions:
  - name: projectName
    message: Project name?
    argument: name
    short_argument: n
  - type: confirm
    name: useDocker
    message: Use Docker?
    argument: docker
    default: false
steps:
  - type: replace
    files: "**/*.md"
"""


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """A working directory with a config pointing at one local template."""
    templates = tmp_path / "templates"
    (templates / "web").mkdir(parents=True)
    (templates / "web" / "pqs.yaml").write_text(TEMPLATE_YAML)
    (templates / "web" / "README.md").write_text(
        "# {{PQS:projectName}}\n{{#PQS:useDocker}}docker{{/PQS:useDocker}}"
    )

    work = tmp_path / "work"
    work.mkdir()
    (work / "pqs.config.yaml").write_text(f"template_locations:\n  - {templates}\n")

    monkeypatch.chdir(work)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("PQS_CACHE_DIR", str(tmp_path / "cache"))
    return work


def test_cli_help() -> None:
    """Test that --help exits cleanly."""
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "pqs" in result.output.lower()


def test_cli_version() -> None:
    """Test that --version shows the version."""
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list(workspace: Path) -> None:
    """Test templates from configured locations are listed."""
    runner = CliRunner()
    result = runner.invoke(main, ["list"])
    assert result.exit_code == 0
    assert "web" in result.output
    assert "(local)" in result.output


def test_list_alias(workspace: Path) -> None:
    """Test the short alias for list."""
    runner = CliRunner()
    result = runner.invoke(main, ["l"])
    assert result.exit_code == 0
    assert "web" in result.output


def test_list_reports_missing_location(workspace: Path, tmp_path: Path) -> None:
    """Test a missing location is a warning, not a failure."""
    (workspace / "pqs.config.yaml").write_text(
        f"template_locations:\n  - {tmp_path / 'templates'}\n  - {tmp_path / 'gone'}\n"
    )
    runner = CliRunner()
    result = runner.invoke(main, ["list"])
    assert result.exit_code == 0
    assert "Warning" in result.output
    assert "web" in result.output


def test_create(workspace: Path) -> None:
    """Test a project is created from flags without prompting."""
    runner = CliRunner()
    result = runner.invoke(main, ["create", "web", "--name", "Demo App", "--docker"])

    assert result.exit_code == 0, result.output
    assert "Project created successfully!" in result.output
    readme = workspace / "demo-app" / "README.md"
    assert readme.read_text() == "# Demo App\ndocker"


def test_create_alias_with_output(workspace: Path) -> None:
    """Test the create alias and an explicit output directory."""
    runner = CliRunner()
    result = runner.invoke(
        main, ["c", "web", "-n", "x", "--no-docker", "-o", "custom"]
    )

    assert result.exit_code == 0, result.output
    assert (workspace / "custom" / "README.md").read_text() == "# x\n"


def test_create_dry_run(workspace: Path) -> None:
    """Test a dry run reports the plan and writes nothing."""
    runner = CliRunner()
    result = runner.invoke(
        main, ["create", "web", "--name", "demo", "--no-docker", "--dry-run"]
    )

    assert result.exit_code == 0, result.output
    assert "--- DRY RUN ---" in result.output
    assert "--- END DRY RUN ---" in result.output
    assert "README.md" in result.output
    assert not (workspace / "demo").exists()


def test_create_unknown_template(workspace: Path) -> None:
    """Test an unknown name fails and lists the available templates."""
    runner = CliRunner()
    result = runner.invoke(main, ["create", "mobile"])

    assert result.exit_code == 1
    assert "not found" in result.output
    assert "web" in result.output


def test_create_non_empty_destination(workspace: Path) -> None:
    """Test an existing non-empty directory needs --force."""
    target = workspace / "demo"
    target.mkdir()
    (target / "keep.txt").write_text("x")
    runner = CliRunner()

    result = runner.invoke(main, ["create", "web", "--name", "demo", "--no-docker"])
    assert result.exit_code == 1
    assert "--force" in result.output

    result = runner.invoke(
        main, ["create", "web", "--name", "demo", "--no-docker", "--force"]
    )
    assert result.exit_code == 0, result.output
    assert (target / "keep.txt").exists()
    assert (target / "README.md").exists()


def test_create_unknown_template_flag(workspace: Path) -> None:
    """Test a flag the template does not declare is a usage error."""
    runner = CliRunner()
    result = runner.invoke(main, ["create", "web", "--colour", "red"])
    assert result.exit_code == 2
    assert "No such option" in result.output


def test_create_cancelled(workspace: Path) -> None:
    """Test cancelling a prompt exits cleanly without creating anything."""
    with patch("pqs.cli.ask_questions", side_effect=PromptCancelledError()):
        runner = CliRunner()
        result = runner.invoke(main, ["create", "web"])

    assert result.exit_code == 0
    assert "Operation cancelled." in result.output
    assert list(workspace.iterdir()) == [workspace / "pqs.config.yaml"]


def test_cache_list_empty(workspace: Path) -> None:
    """Test listing an empty cache."""
    runner = CliRunner()
    result = runner.invoke(main, ["cache", "list"])
    assert result.exit_code == 0
    assert "No cached repositories." in result.output


def test_cache_list_and_stats(workspace: Path, tmp_path: Path) -> None:
    """Test cached entries show in list and stats."""
    index = CacheIndex(tmp_path / "cache")
    url = "https://github.com/acme/starter"
    path = index.path_for(url)
    path.mkdir(parents=True)
    (path / "pqs.yaml").write_text("name: starter\n")
    index.upsert(url)

    runner = CliRunner()
    result = runner.invoke(main, ["cache", "list"])
    assert result.exit_code == 0
    assert "acme/starter" in result.output
    assert "valid" in result.output

    result = runner.invoke(main, ["cache", "stats"])
    assert result.exit_code == 0
    assert "Total entries: 1" in result.output
    assert "Cached files: 1" in result.output


def test_cache_clean(workspace: Path, tmp_path: Path) -> None:
    """Test clean removes orphaned directories and honours --dry-run."""
    orphan = tmp_path / "cache" / "orphan-12345678"
    orphan.mkdir(parents=True)
    runner = CliRunner()

    result = runner.invoke(main, ["cache", "clean", "--dry-run"])
    assert result.exit_code == 0
    assert "Would remove 1" in result.output
    assert orphan.exists()

    result = runner.invoke(main, ["cache", "clean"])
    assert result.exit_code == 0
    assert "Removed 1" in result.output
    assert not orphan.exists()

    result = runner.invoke(main, ["cache", "clean"])
    assert "Cache is clean." in result.output


def test_cache_clear(workspace: Path, tmp_path: Path) -> None:
    """Test clear asks for confirmation unless --yes is given."""
    leftover = tmp_path / "cache" / "some-entry"
    leftover.mkdir(parents=True)
    runner = CliRunner()

    result = runner.invoke(main, ["cache", "clear"], input="n\n")
    assert "Cache not cleared." in result.output
    assert leftover.exists()

    result = runner.invoke(main, ["cache", "clear", "--yes"])
    assert result.exit_code == 0
    assert not leftover.exists()


def test_cache_update_rejects_local_path(workspace: Path) -> None:
    """Test cache commands require a remote reference."""
    runner = CliRunner()
    result = runner.invoke(main, ["cache", "update", "~/templates"])
    assert result.exit_code == 1
    assert "Not a git repository URL" in result.output


def test_cache_update_not_cached(workspace: Path) -> None:
    """Test updating an uncached repository fails."""
    runner = CliRunner()
    result = runner.invoke(main, ["cache", "update", "https://github.com/acme/none"])
    assert result.exit_code == 1
    assert "not cached" in result.output


def test_cache_remove(workspace: Path, tmp_path: Path) -> None:
    """Test removing a cached repository."""
    index = CacheIndex(tmp_path / "cache")
    url = "https://github.com/acme/starter"
    index.path_for(url).mkdir(parents=True)
    index.upsert(url)
    runner = CliRunner()

    result = runner.invoke(main, ["cache", "remove", url])
    assert result.exit_code == 0
    assert not index.path_for(url).exists()

    result = runner.invoke(main, ["cache", "remove", url])
    assert "is not cached" in result.output


def test_config(workspace: Path) -> None:
    """Test the effective configuration is shown with its source."""
    runner = CliRunner()
    result = runner.invoke(main, ["config"])
    assert result.exit_code == 0
    assert "Loaded from" in result.output
    assert "template_locations" in result.output
