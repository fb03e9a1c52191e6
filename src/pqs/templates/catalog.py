"""Template discovery across all configured locations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from pqs.errors import TemplateNotFoundError
from pqs.git.cache import DEFAULT_MAX_AGE_DAYS
from pqs.git.fetcher import RepositoryFetcher
from pqs.templates.base import TemplateSpec
from pqs.templates.source import TemplateSource


@dataclass(frozen=True)
class TemplateCatalog:
    """Immutable result of a discovery pass."""

    templates: Mapping[str, TemplateSpec] = field(
        default_factory=lambda: MappingProxyType({})
    )
    warnings: tuple[str, ...] = ()

    def __contains__(self, name: object) -> bool:
        return name in self.templates

    def __len__(self) -> int:
        return len(self.templates)

    def names(self) -> list[str]:
        return sorted(self.templates)

    def get(self, name: str) -> TemplateSpec | None:
        return self.templates.get(name)

    def require(self, name: str) -> TemplateSpec:
        """Get a template by name.

        Raises:
            TemplateNotFoundError: Listing the available names.
        """
        template = self.templates.get(name)
        if template is None:
            raise TemplateNotFoundError(name, self.names())
        return template


def discover_templates(
    locations: Iterable[str],
    fetcher: RepositoryFetcher | None = None,
    force: bool = False,
    quiet: bool = True,
    refresh_stale: bool = False,
    max_age_days: float = DEFAULT_MAX_AGE_DAYS,
) -> TemplateCatalog:
    """Discover templates in every location.

    Resolution order (later wins for same name): locations are scanned in
    the order given.
    """
    fetcher = fetcher or RepositoryFetcher()
    templates: dict[str, TemplateSpec] = {}
    warnings: list[str] = []

    for source in TemplateSource.from_locations(locations, fetcher=fetcher):
        result = source.discover_templates(
            force=force,
            quiet=quiet,
            refresh_stale=refresh_stale,
            max_age_days=max_age_days,
        )
        warnings.extend(result.warnings)
        for template in result.templates:
            templates[template.name] = template

    return TemplateCatalog(
        templates=MappingProxyType(templates), warnings=tuple(warnings)
    )
