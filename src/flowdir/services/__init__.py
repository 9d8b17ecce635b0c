"""Service layer helpers (settings persistence, document overrides)."""

from .overrides import (
    DocumentMetadataStore,
    FrontMatterMetadataStore,
    InMemoryMetadataStore,
    OverrideChange,
    OverrideStore,
)
from .settings import DEFAULT_KIND_DIRECTIONS, DirectionSettings, SettingsStore

__all__ = [
    "DEFAULT_KIND_DIRECTIONS",
    "DirectionSettings",
    "DocumentMetadataStore",
    "FrontMatterMetadataStore",
    "InMemoryMetadataStore",
    "OverrideChange",
    "OverrideStore",
    "SettingsStore",
]
