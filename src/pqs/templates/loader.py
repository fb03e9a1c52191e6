"""Template definition discovery and loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from pqs.errors import TemplateDefinitionError
from pqs.templates.base import TemplateSpec

logger = logging.getLogger(__name__)

# Constants
TEMPLATE_FILENAME = "pqs.yaml"
TEMPLATE_FILENAMES = (TEMPLATE_FILENAME, "pqs.yml")


def _definition_in(directory: Path) -> Path | None:
    for filename in TEMPLATE_FILENAMES:
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def find_template_files(root: Path) -> list[Path]:
    """Find template definition files in root and its immediate subdirectories.

    Returns sorted paths; at most one definition per directory.
    """
    if not root.is_dir():
        return []

    found: list[Path] = []
    top = _definition_in(root)
    if top is not None:
        found.append(top)

    for item in sorted(root.iterdir()):
        if item.is_dir():
            definition = _definition_in(item)
            if definition is not None:
                found.append(definition)

    return sorted(found)


def load_template_file(
    path: Path, source: str = "", is_remote: bool = False
) -> TemplateSpec:
    """Load a TemplateSpec from a definition file.

    The file is read on every call; nothing is cached in-process.

    Raises:
        TemplateDefinitionError: If the file cannot be read or parsed.
    """
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateDefinitionError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise TemplateDefinitionError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise TemplateDefinitionError(f"{path} must contain a mapping")

    return TemplateSpec.from_dict(
        data,
        path=path.parent.resolve(),
        source=source or str(path.parent),
        is_remote=is_remote,
    )


@dataclass(frozen=True)
class DiscoveryResult:
    """Templates found in one location plus anything that went wrong."""

    templates: tuple[TemplateSpec, ...] = ()
    warnings: tuple[str, ...] = ()


def find_templates(
    root: Path, source: str = "", is_remote: bool = False
) -> DiscoveryResult:
    """Load every template definition under root.

    Broken definitions are skipped and reported as warnings.
    """
    templates: list[TemplateSpec] = []
    warnings: list[str] = []

    for definition in find_template_files(root):
        try:
            templates.append(load_template_file(definition, source, is_remote))
        except TemplateDefinitionError as e:
            message = f"Failed to load template config at {definition}: {e}"
            logger.info(message)
            warnings.append(message)

    return DiscoveryResult(templates=tuple(templates), warnings=tuple(warnings))
