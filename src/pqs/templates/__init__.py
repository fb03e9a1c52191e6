"""Template definitions, sources and discovery."""

from pqs.templates.base import (
    Choice,
    CommandStep,
    CopyStep,
    Question,
    ReplaceStep,
    Step,
    TemplateSpec,
)
from pqs.templates.catalog import TemplateCatalog, discover_templates
from pqs.templates.loader import (
    TEMPLATE_FILENAME,
    DiscoveryResult,
    find_template_files,
    find_templates,
    load_template_file,
)
from pqs.templates.source import TemplateSource

__all__ = [
    "TEMPLATE_FILENAME",
    "Choice",
    "CommandStep",
    "CopyStep",
    "DiscoveryResult",
    "Question",
    "ReplaceStep",
    "Step",
    "TemplateCatalog",
    "TemplateSource",
    "TemplateSpec",
    "discover_templates",
    "find_template_files",
    "find_templates",
    "load_template_file",
]
