"""Core direction types and the text-direction classifier."""

from .classifier import ClassifierConfig, classify, is_rtl_char
from .directions import Direction, DirectionSetting, OverrideState, RegionKind, WatchCategory

__all__ = [
    "ClassifierConfig",
    "Direction",
    "DirectionSetting",
    "OverrideState",
    "RegionKind",
    "WatchCategory",
    "classify",
    "is_rtl_char",
]
