"""Direction settings dataclass and JSON persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping

from ..core.classifier import ClassifierConfig
from ..core.directions import DirectionSetting, RegionKind

__all__ = [
    "DEFAULT_KIND_DIRECTIONS",
    "DirectionSettings",
    "SettingsStore",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".flowdir"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 2
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_ENV_OVERRIDES: Mapping[str, str] = {
    "FLOWDIR_GLOBAL_DIRECTION": "global_default",
    "FLOWDIR_DETECTION": "detection_enabled",
    "FLOWDIR_QUIESCENCE_MS": "quiescence_ms",
}
_KIND_PREFIX = "per_kind."
# Keys used by the settings layout shipped before per-kind settings were flattened.
_LEGACY_CONTAINER_KEYS: Mapping[str, RegionKind] = {
    "editor": RegionKind.PRIMARY_EDITOR,
    "leftSidebar": RegionKind.LEFT_PANEL,
    "rightSidebar": RegionKind.RIGHT_PANEL,
    "fileExplorer": RegionKind.FILE_BROWSER,
    "searchResults": RegionKind.SEARCH_RESULTS,
    "tagPane": RegionKind.TAG_BROWSER,
    "canvasCard": RegionKind.CANVAS_CARD,
}
_LEGACY_SCALAR_KEYS: Mapping[str, str] = {
    "globalDefaultDirection": "global_default",
    "enableAdvancedTextDetection": "detection_enabled",
}

DEFAULT_KIND_DIRECTIONS: Mapping[RegionKind, DirectionSetting] = MappingProxyType(
    {
        RegionKind.PRIMARY_EDITOR: DirectionSetting.AUTO,
        RegionKind.LEFT_PANEL: DirectionSetting.LTR,
        RegionKind.RIGHT_PANEL: DirectionSetting.LTR,
        RegionKind.FILE_BROWSER: DirectionSetting.LTR,
        RegionKind.SEARCH_RESULTS: DirectionSetting.AUTO,
        RegionKind.TAG_BROWSER: DirectionSetting.AUTO,
        RegionKind.CANVAS_CARD: DirectionSetting.AUTO,
    }
)


def _default_kind_directions() -> Mapping[RegionKind, DirectionSetting]:
    return MappingProxyType(dict(DEFAULT_KIND_DIRECTIONS))


@dataclass(frozen=True, slots=True)
class DirectionSettings:
    """User-configurable direction settings persisted between sessions.

    Instances are immutable and hashable: ``per_kind`` is copied into a
    read-only mapping, so derive changed settings with :meth:`with_kind` or
    :func:`dataclasses.replace`.
    """

    global_default: DirectionSetting = DirectionSetting.AUTO
    detection_enabled: bool = True
    per_kind: Mapping[RegionKind, DirectionSetting] = field(default_factory=_default_kind_directions)
    quiescence_ms: int = 500
    scan_limit: int = 200
    rtl_threshold: float = 0.4

    def __post_init__(self) -> None:
        object.__setattr__(self, "per_kind", MappingProxyType(dict(self.per_kind)))

    def __hash__(self) -> int:
        return hash(
            (
                self.global_default,
                self.detection_enabled,
                frozenset(self.per_kind.items()),
                self.quiescence_ms,
                self.scan_limit,
                self.rtl_threshold,
            )
        )

    def direction_for(self, kind: RegionKind) -> DirectionSetting:
        """Return the configured default for ``kind``, falling back to the shipped default."""

        setting = self.per_kind.get(kind)
        if setting is None:
            return DEFAULT_KIND_DIRECTIONS[kind]
        return setting

    def with_kind(self, kind: RegionKind, setting: DirectionSetting) -> "DirectionSettings":
        per_kind = dict(self.per_kind)
        per_kind[kind] = setting
        return replace(self, per_kind=per_kind)

    @property
    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(scan_limit=self.scan_limit, rtl_threshold=self.rtl_threshold)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "global_default": self.global_default.value,
            "detection_enabled": self.detection_enabled,
            "per_kind": {kind.value: self.direction_for(kind).value for kind in RegionKind},
            "quiescence_ms": self.quiescence_ms,
            "scan_limit": self.scan_limit,
            "rtl_threshold": self.rtl_threshold,
        }


class SettingsStore:
    """Persistence adapter for :class:`DirectionSettings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> DirectionSettings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = DirectionSettings()
        needs_migration = False

        if payload:
            payload, migrated = _migrate_legacy_payload(payload)
            needs_migration = migrated
            settings = self._validate(payload)

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - depends on filesystem
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self.apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: DirectionSettings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = settings.to_payload()
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def apply_overrides(
        self,
        settings: DirectionSettings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> DirectionSettings:
        """Return ``settings`` with validated ``overrides`` applied; invalid entries are logged and skipped."""

        allowed = {item.name for item in fields(DirectionSettings)} - {"per_kind"}
        per_kind = dict(settings.per_kind)
        updates: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key.startswith(_KIND_PREFIX):
                kind = _coerce_kind(key[len(_KIND_PREFIX):])
                setting = DirectionSetting.coerce(value)
                if kind is None or setting is None:
                    LOGGER.warning("Ignoring %s override %s=%r", source, key, value)
                    continue
                per_kind[kind] = setting
                continue
            if key not in allowed:
                LOGGER.warning("Ignoring unknown %s override %s", source, key)
                continue
            coerced = _coerce_field(key, value)
            if coerced is None:
                LOGGER.warning("Ignoring %s override %s=%r", source, key, value)
                continue
            updates[key] = coerced
        if per_kind != settings.per_kind:
            updates["per_kind"] = per_kind
        if updates:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(updates))
            settings = replace(settings, **updates)
        return settings

    def _validate(self, payload: Mapping[str, Any]) -> DirectionSettings:
        defaults = DirectionSettings()
        data: Dict[str, Any] = {}
        for item in fields(DirectionSettings):
            if item.name == "per_kind" or item.name not in payload:
                continue
            coerced = _coerce_field(item.name, payload[item.name])
            if coerced is None:
                LOGGER.warning(
                    "Settings field %s has invalid value %r; using default %r",
                    item.name,
                    payload[item.name],
                    getattr(defaults, item.name),
                )
                continue
            data[item.name] = coerced
        data["per_kind"] = _validate_kind_payload(payload.get("per_kind"))
        return DirectionSettings(**data)

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object; ignoring it", self._path)
            return {}
        return payload

    def _apply_env_overrides(self, settings: DirectionSettings) -> DirectionSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        if overrides:
            settings = self.apply_overrides(settings, overrides, source="environment")
        return settings


def _migrate_legacy_payload(payload: Mapping[str, Any]) -> tuple[Dict[str, Any], bool]:
    data = dict(payload)
    migrated = False
    per_kind = dict(data.get("per_kind") or {}) if isinstance(data.get("per_kind"), Mapping) else {}
    for legacy_key, kind in _LEGACY_CONTAINER_KEYS.items():
        container = data.pop(legacy_key, None)
        if container is None:
            continue
        migrated = True
        if isinstance(container, Mapping):
            per_kind.setdefault(kind.value, container.get("direction"))
    for legacy_key, field_name in _LEGACY_SCALAR_KEYS.items():
        if legacy_key in data:
            migrated = True
            data.setdefault(field_name, data.pop(legacy_key))
    if data.pop("mySetting", None) is not None:
        migrated = True
    if migrated:
        LOGGER.info("Migrating legacy direction settings layout")
        data["per_kind"] = per_kind
    return data, migrated


def _validate_kind_payload(payload: Any) -> dict[RegionKind, DirectionSetting]:
    per_kind = dict(DEFAULT_KIND_DIRECTIONS)
    if not isinstance(payload, Mapping):
        if payload is not None:
            LOGGER.warning("Ignoring non-mapping per_kind payload of type %s", type(payload))
        return per_kind
    for raw_kind, raw_setting in payload.items():
        kind = _coerce_kind(raw_kind)
        if kind is None:
            LOGGER.warning("Ignoring unknown region kind %r in settings", raw_kind)
            continue
        setting = DirectionSetting.coerce(raw_setting)
        if setting is None:
            LOGGER.warning(
                "Region kind %s has invalid direction %r; using default %s",
                kind.value,
                raw_setting,
                per_kind[kind].value,
            )
            continue
        per_kind[kind] = setting
    return per_kind


def _coerce_kind(value: Any) -> RegionKind | None:
    try:
        return RegionKind(str(value).strip().lower())
    except ValueError:
        return None


def _coerce_field(name: str, value: Any) -> Any:
    if name == "global_default":
        return DirectionSetting.coerce(value)
    if name == "detection_enabled":
        return _coerce_bool(value)
    if name in ("quiescence_ms", "scan_limit"):
        number = _coerce_int(value)
        if number is None or number < 0:
            return None
        return number
    if name == "rtl_threshold":
        try:
            threshold = float(value)
        except (TypeError, ValueError):
            return None
        if not 0.0 <= threshold <= 1.0:
            return None
        return threshold
    return None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            return None
    return None
