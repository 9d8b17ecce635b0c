"""Layered direction resolution for a single region."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..core.classifier import ClassifierConfig, classify
from ..core.directions import Direction, DirectionSetting, OverrideState, RegionKind
from ..services.settings import DirectionSettings
from .registry import Region

__all__ = ["DirectionResolver", "Resolution"]

LOGGER = logging.getLogger(__name__)

TextSupplier = Callable[[], str]
Classifier = Callable[[str, ClassifierConfig | None], Direction]


@dataclass(frozen=True, slots=True)
class Resolution:
    """Resolved setting plus the effective direction to apply.

    ``classified`` is ``True`` when the direction came from content
    detection, which is also the condition for watching the region.
    """

    setting: DirectionSetting
    direction: Direction
    classified: bool = False


class DirectionResolver:
    """Combines settings, the document override, and content detection.

    Precedence: a document override (primary editor only), then the kind's
    configured setting. A concrete setting wins without reading any text;
    ``auto`` classifies the region text when detection is enabled and falls
    back to the global default otherwise.
    """

    def __init__(self, classifier: Classifier | None = None) -> None:
        self._classifier = classifier or classify

    def effective_setting(
        self,
        kind: RegionKind,
        settings: DirectionSettings,
        override: OverrideState = OverrideState.NONE,
    ) -> DirectionSetting:
        if kind is RegionKind.PRIMARY_EDITOR and override is not OverrideState.NONE:
            setting = override.setting
            if setting is not None:
                return setting
        return settings.direction_for(kind)

    def resolve(
        self,
        kind: "RegionKind | Region",
        settings: DirectionSettings,
        override: OverrideState,
        text_supplier: TextSupplier,
    ) -> Resolution:
        kind = getattr(kind, "kind", kind)
        setting = self.effective_setting(kind, settings, override)
        concrete = setting.concrete
        if concrete is not None:
            return Resolution(setting=setting, direction=concrete)
        if settings.detection_enabled:
            direction = self._classifier(text_supplier(), settings.classifier_config)
            return Resolution(setting=setting, direction=direction, classified=True)
        return Resolution(setting=setting, direction=settings.global_default.concrete or Direction.LTR)

    @staticmethod
    def watches(setting: DirectionSetting, settings: DirectionSettings) -> bool:
        """Return ``True`` when a region resolved to ``setting`` must be watched for edits."""

        return setting is DirectionSetting.AUTO and settings.detection_enabled
