"""Exception hierarchy for direction management."""

from __future__ import annotations

from typing import Any


class FlowdirError(Exception):
    """Base class for errors raised by flowdir."""


class RegionVanishedError(FlowdirError):
    """Raised when a region disappears from the render tree mid-pass."""

    def __init__(self, handle: Any) -> None:
        super().__init__(f"Region {handle!r} is no longer present in the render tree")
        self.handle = handle


class RegistryLockedError(FlowdirError):
    """Raised when the region registry is mutated outside a reconciliation pass."""


class NoActiveDocumentError(FlowdirError):
    """Raised when an override is changed while no eligible document is active."""


class FrontMatterError(FlowdirError):
    """Raised when a note's front matter cannot be updated without losing data."""


__all__ = [
    "FlowdirError",
    "FrontMatterError",
    "NoActiveDocumentError",
    "RegionVanishedError",
    "RegistryLockedError",
]
