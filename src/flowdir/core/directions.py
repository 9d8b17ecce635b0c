"""Direction vocabulary shared by the classifier, settings, and engine."""

from __future__ import annotations

from enum import Enum
from typing import Any


class Direction(str, Enum):
    """Concrete text-flow direction applied to a rendered region."""

    LTR = "ltr"
    RTL = "rtl"


class DirectionSetting(str, Enum):
    """User-facing direction choice; ``AUTO`` defers to content detection."""

    LTR = "ltr"
    RTL = "rtl"
    AUTO = "auto"

    @property
    def concrete(self) -> Direction | None:
        if self is DirectionSetting.AUTO:
            return None
        return Direction(self.value)

    @classmethod
    def coerce(cls, value: Any, default: "DirectionSetting | None" = None) -> "DirectionSetting | None":
        """Return the member matching ``value`` or ``default`` when it is not recognised."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return default
        return default


class OverrideState(str, Enum):
    """Document-scoped override; ``NONE`` means region defaults apply."""

    LTR = "ltr"
    RTL = "rtl"
    AUTO = "auto"
    NONE = "none"

    @property
    def setting(self) -> DirectionSetting | None:
        if self is OverrideState.NONE:
            return None
        return DirectionSetting(self.value)

    @classmethod
    def parse(cls, value: Any) -> "OverrideState":
        """Parse a persisted value; anything other than ltr/rtl/auto means no override."""

        if isinstance(value, cls):
            return value
        if isinstance(value, DirectionSetting):
            return cls(value.value)
        if isinstance(value, str) and value in _PERSISTED_OVERRIDES:
            return cls(value)
        return cls.NONE

    def next(self) -> "OverrideState":
        """Return the next state in the status-indicator cycle."""

        return _OVERRIDE_CYCLE[self]


_PERSISTED_OVERRIDES = frozenset({"ltr", "rtl", "auto"})
_OVERRIDE_CYCLE: dict[OverrideState, OverrideState] = {
    OverrideState.NONE: OverrideState.LTR,
    OverrideState.LTR: OverrideState.RTL,
    OverrideState.RTL: OverrideState.AUTO,
    OverrideState.AUTO: OverrideState.NONE,
}


class RegionKind(str, Enum):
    """Class of UI area whose direction is configured independently."""

    PRIMARY_EDITOR = "primary-editor"
    LEFT_PANEL = "left-panel"
    RIGHT_PANEL = "right-panel"
    FILE_BROWSER = "file-browser"
    SEARCH_RESULTS = "search-results"
    TAG_BROWSER = "tag-browser"
    CANVAS_CARD = "canvas-card"

    @property
    def label(self) -> str:
        return self.value.replace("-", " ").title()


class WatchCategory(str, Enum):
    """Observation mechanisms maintained by the change watcher."""

    CONTENT = "content"
    CARDS = "cards"


__all__ = [
    "Direction",
    "DirectionSetting",
    "OverrideState",
    "RegionKind",
    "WatchCategory",
]
