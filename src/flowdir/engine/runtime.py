"""Explicitly constructed direction engine and its event-bus wiring."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from ..core.directions import OverrideState
from ..core.errors import FlowdirError
from ..services.overrides import DocumentMetadataStore, InMemoryMetadataStore, OverrideChange, OverrideStore
from ..services.settings import DirectionSettings, SettingsStore
from .reconciler import PassReport, Reconciler
from .render_tree import RenderTreeAdapter
from .resolver import DirectionResolver
from .scheduler import Scheduler, TimerFactory

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..ui.events import EventBus, Subscription

__all__ = ["DirectionEngine"]

LOGGER = logging.getLogger(__name__)


class DirectionEngine:
    """Owns the settings, override store, scheduler, and reconciler for one host.

    The engine does nothing until :meth:`start` runs the initial pass and
    releases every observation in :meth:`shutdown`. Hosts either call the
    ``*_document``/``layout_changed`` methods directly or :meth:`bind` the
    engine to an :class:`~flowdir.ui.events.EventBus`.
    """

    def __init__(
        self,
        adapter: RenderTreeAdapter,
        settings: DirectionSettings | None = None,
        metadata: DocumentMetadataStore | None = None,
        *,
        timer_factory: TimerFactory | None = None,
        bus: "EventBus | None" = None,
        resolver: DirectionResolver | None = None,
        settings_store: SettingsStore | None = None,
    ) -> None:
        self._settings = settings or DirectionSettings()
        self._settings_store = settings_store or SettingsStore()
        self.overrides = OverrideStore(metadata or InMemoryMetadataStore())
        self.scheduler = Scheduler(timer_factory, quiescence_ms=self._settings.quiescence_ms)
        self.reconciler = Reconciler(
            adapter,
            self._settings,
            self.overrides,
            self.scheduler,
            resolver=resolver,
        )
        self._bus: EventBus | None = None
        self._subscriptions: list[Subscription] = []
        self._started = False
        self._closed = False
        if bus is not None:
            self.bind(bus)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def settings(self) -> DirectionSettings:
        return self._settings

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> PassReport:
        """Run the initial full pass."""

        self._ensure_open()
        self._started = True
        LOGGER.info("Direction engine started")
        return self.reconciler.full_pass()

    def shutdown(self) -> None:
        """Detach all watchers, clear registries, and cancel pending drains."""

        if self._closed:
            return
        self.unbind()
        self.reconciler.shutdown()
        self.scheduler.close()
        self.overrides.deactivate()
        self._closed = True
        self._started = False
        LOGGER.info("Direction engine shut down")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def update_settings(self, settings: DirectionSettings) -> PassReport:
        """Replace the settings and run a full pass."""

        self._ensure_open()
        self._settings = settings
        self.reconciler.settings = settings
        self.scheduler.set_quiescence(settings.quiescence_ms)
        return self.reconciler.full_pass()

    def apply_setting_overrides(self, overrides: Mapping[str, Any]) -> PassReport:
        """Apply ``--set`` style key/value overrides to the current settings."""

        updated = self._settings_store.apply_overrides(self._settings, overrides, source="runtime")
        return self.update_settings(updated)

    def layout_changed(self) -> PassReport:
        self._ensure_open()
        return self.reconciler.full_pass()

    def activate_document(self, document_id: str | None) -> OverrideState:
        """Make ``document_id`` active, load its override, and refresh the editors."""

        self._ensure_open()
        self.reconciler.active_document = document_id
        state = self.overrides.activate(document_id)
        self.reconciler.refresh_primary_editors()
        self._publish_override()
        return state

    def deactivate_document(self) -> None:
        self._ensure_open()
        self.reconciler.active_document = None
        had_override = self.overrides.deactivate()
        if had_override:
            LOGGER.debug("Cleared in-memory override on deactivation")
        self.reconciler.refresh_primary_editors()
        self._publish_override()

    def set_override(self, state: OverrideState) -> OverrideChange:
        """Persist ``state`` for the active document; raises ``NoActiveDocumentError`` without one."""

        self._ensure_open()
        change = self.overrides.set(state)
        self._after_override_change(change)
        return change

    def cycle_override(self) -> OverrideChange:
        self._ensure_open()
        change = self.overrides.cycle()
        self._after_override_change(change)
        return change

    def clear_override(self) -> OverrideChange:
        self._ensure_open()
        change = self.overrides.clear()
        self._after_override_change(change)
        return change

    # ------------------------------------------------------------------
    # Event bus wiring
    # ------------------------------------------------------------------
    def bind(self, bus: "EventBus") -> None:
        from ..ui import events

        self.unbind()
        self._subscriptions = [
            bus.subscribe(events.DocumentActivated, self._on_document_activated),
            bus.subscribe(events.DocumentDeactivated, self._on_document_deactivated),
            bus.subscribe(events.SettingsChanged, self._on_settings_changed),
            bus.subscribe(events.LayoutChanged, self._on_layout_changed),
        ]
        self._bus = bus

    def unbind(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self._bus = None

    @property
    def bus(self) -> "EventBus | None":
        return self._bus

    def _on_document_activated(self, event: Any) -> None:
        self.activate_document(event.document_id)

    def _on_document_deactivated(self, event: Any) -> None:
        active = self.reconciler.active_document
        if event.document_id is not None and active is not None and event.document_id != active:
            LOGGER.debug("Ignoring deactivation of background document %s", event.document_id)
            return
        self.deactivate_document()

    def _on_settings_changed(self, event: Any) -> None:
        self.apply_setting_overrides(event.settings)

    def _on_layout_changed(self, event: Any) -> None:
        if event.reason:
            LOGGER.debug("Layout changed: %s", event.reason)
        self.layout_changed()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _after_override_change(self, change: OverrideChange) -> None:
        if change.changed:
            LOGGER.info(
                "Direction override for %s: %s -> %s",
                change.document_id,
                change.previous.value,
                change.current.value,
            )
        self.reconciler.refresh_primary_editors()
        self._publish_override(persisted=change.persisted)

    def _publish_override(self, *, persisted: bool = True) -> None:
        if self._bus is None:
            return
        from ..ui.events import OverrideChanged

        self._bus.publish(
            OverrideChanged(
                document_id=self.overrides.active_document,
                override=self.overrides.current().value,
                persisted=persisted,
            )
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise FlowdirError("Direction engine has been shut down")
