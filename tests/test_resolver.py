"""Tests for layered direction resolution."""

from __future__ import annotations

import pytest

from flowdir.core.directions import Direction, DirectionSetting, OverrideState, RegionKind
from flowdir.engine.registry import Region
from flowdir.engine.resolver import DirectionResolver
from flowdir.services.settings import DirectionSettings


def _supplier(text: str, reads: list[str]):
    def _read() -> str:
        reads.append(text)
        return text

    return _read


@pytest.mark.parametrize("override", [OverrideState.LTR, OverrideState.RTL, OverrideState.AUTO])
@pytest.mark.parametrize("editor_default", list(DirectionSetting))
def test_override_wins_for_primary_editor(override: OverrideState, editor_default: DirectionSetting) -> None:
    settings = DirectionSettings().with_kind(RegionKind.PRIMARY_EDITOR, editor_default)

    resolution = DirectionResolver().resolve(RegionKind.PRIMARY_EDITOR, settings, override, lambda: "שלום")

    assert resolution.setting.value == override.value


def test_override_ignored_for_other_kinds() -> None:
    settings = DirectionSettings()

    resolution = DirectionResolver().resolve(RegionKind.LEFT_PANEL, settings, OverrideState.RTL, lambda: "")

    assert resolution.setting is DirectionSetting.LTR
    assert resolution.direction is Direction.LTR


def test_concrete_setting_never_reads_text() -> None:
    reads: list[str] = []
    settings = DirectionSettings().with_kind(RegionKind.SEARCH_RESULTS, DirectionSetting.RTL)

    resolution = DirectionResolver().resolve(
        RegionKind.SEARCH_RESULTS, settings, OverrideState.NONE, _supplier("hello", reads)
    )

    assert resolution.direction is Direction.RTL
    assert resolution.classified is False
    assert reads == []


def test_auto_classifies_text_when_detection_enabled() -> None:
    reads: list[str] = []

    resolution = DirectionResolver().resolve(
        RegionKind.PRIMARY_EDITOR, DirectionSettings(), OverrideState.NONE, _supplier("# שלום", reads)
    )

    assert resolution.setting is DirectionSetting.AUTO
    assert resolution.direction is Direction.RTL
    assert resolution.classified is True
    assert reads == ["# שלום"]


@pytest.mark.parametrize(
    ("global_default", "expected"),
    [
        (DirectionSetting.RTL, Direction.RTL),
        (DirectionSetting.LTR, Direction.LTR),
        (DirectionSetting.AUTO, Direction.LTR),
    ],
)
def test_auto_without_detection_uses_global_default(global_default: DirectionSetting, expected: Direction) -> None:
    reads: list[str] = []
    settings = DirectionSettings(global_default=global_default, detection_enabled=False)

    resolution = DirectionResolver().resolve(
        RegionKind.TAG_BROWSER, settings, OverrideState.NONE, _supplier("שלום", reads)
    )

    assert resolution.direction is expected
    assert resolution.classified is False
    assert reads == []


def test_resolve_accepts_region_and_custom_classifier() -> None:
    calls: list[tuple[str, object]] = []

    def fake_classifier(text: str, config: object) -> Direction:
        calls.append((text, config))
        return Direction.RTL

    resolver = DirectionResolver(classifier=fake_classifier)
    settings = DirectionSettings(scan_limit=7)
    region = Region(handle="card-1", kind=RegionKind.CANVAS_CARD)

    resolution = resolver.resolve(region, settings, OverrideState.NONE, lambda: "text")

    assert resolution.direction is Direction.RTL
    assert calls == [("text", settings.classifier_config)]


def test_watches_only_auto_with_detection() -> None:
    enabled = DirectionSettings()
    disabled = DirectionSettings(detection_enabled=False)

    assert DirectionResolver.watches(DirectionSetting.AUTO, enabled)
    assert not DirectionResolver.watches(DirectionSetting.AUTO, disabled)
    assert not DirectionResolver.watches(DirectionSetting.RTL, enabled)
