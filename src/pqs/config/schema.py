"""Configuration schema for pqs."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

DEFAULT_TEMPLATE_LOCATION = "~/templates"


def _as_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class PqsConfig:
    """Global pqs configuration.

    None values indicate "not set" and are inherited when merging.
    """

    template_locations: tuple[str, ...] | None = None

    # Cache settings
    cache_dir: str | None = None
    cache_max_age_days: float | None = None
    cache_cleanup_days: float | None = None

    # Git settings
    clone_timeout: float | None = None

    def merge(self, other: PqsConfig) -> PqsConfig:
        """Merge another config into this one.

        Values from `other` take precedence when they are not None.
        Returns a new PqsConfig instance.
        """
        return PqsConfig(
            **{
                f.name: (
                    getattr(other, f.name)
                    if getattr(other, f.name) is not None
                    else getattr(self, f.name)
                )
                for f in fields(self)
            }
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary, excluding None values."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = list(value) if isinstance(value, tuple) else value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PqsConfig:
        """Create a PqsConfig from a dictionary.

        Unknown keys are ignored. ``templateLocations`` is accepted as an
        alias of ``template_locations``; a single string counts as a
        one-element list.
        """
        locations_raw = data.get("template_locations", data.get("templateLocations"))
        locations: tuple[str, ...] | None = None
        if isinstance(locations_raw, str):
            locations = (locations_raw,)
        elif isinstance(locations_raw, list):
            locations = tuple(str(item) for item in locations_raw if item)

        cache_dir_raw = data.get("cache_dir")
        cache_dir = str(cache_dir_raw) if cache_dir_raw else None

        return cls(
            template_locations=locations,
            cache_dir=cache_dir,
            cache_max_age_days=_as_float(data.get("cache_max_age_days")),
            cache_cleanup_days=_as_float(data.get("cache_cleanup_days")),
            clone_timeout=_as_float(data.get("clone_timeout")),
        )


# Default configuration values (used when not specified anywhere)
DEFAULT_CONFIG = PqsConfig(
    template_locations=(DEFAULT_TEMPLATE_LOCATION,),
    cache_max_age_days=7,
    cache_cleanup_days=30,
    clone_timeout=60,
)
