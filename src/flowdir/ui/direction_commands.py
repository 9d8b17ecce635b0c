"""Status indicator text and user commands for the note direction override."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from ..core.directions import OverrideState, RegionKind
from ..core.errors import NoActiveDocumentError
from ..engine.runtime import DirectionEngine
from ..services.overrides import OverrideChange
from .events import EventBus, NoticePosted, OverrideChanged, StatusMessage, Subscription
from .models.actions import WindowAction

__all__ = ["DirectionCommands", "DirectionStatus"]

LOGGER = logging.getLogger(__name__)

_NOT_APPLICABLE_TEXT = "Dir: N/A"
_NOT_APPLICABLE_LABEL = "Note text direction: Not applicable"
_OPEN_NOTE_NOTICE = "Open a markdown note to change its direction."
_UNSUPPORTED_NOTICE = "Direction can only be set for Markdown files."
_NO_FILE_NOTICE = "No active file."
_WRITE_FAILED_NOTICE = "Error updating note direction in frontmatter."


@dataclass(frozen=True, slots=True)
class DirectionStatus:
    """Text and accessible label shown by the status indicator."""

    text: str
    aria_label: str
    applicable: bool = True


@dataclass(frozen=True, slots=True)
class _CommandDefinition:
    name: str
    text: str
    state: OverrideState | None
    shortcut: str | None = None


_COMMAND_DEFINITIONS: tuple[_CommandDefinition, ...] = (
    _CommandDefinition(
        name="set-note-direction-rtl",
        text="Set current note to RTL",
        state=OverrideState.RTL,
    ),
    _CommandDefinition(
        name="set-note-direction-ltr",
        text="Set current note to LTR",
        state=OverrideState.LTR,
    ),
    _CommandDefinition(
        name="set-note-direction-auto",
        text="Set current note to Auto-Detect direction",
        state=OverrideState.AUTO,
    ),
    _CommandDefinition(
        name="clear-note-direction-override",
        text="Clear current note direction override",
        state=OverrideState.NONE,
    ),
    _CommandDefinition(
        name="cycle-note-direction",
        text="Cycle current note direction",
        state=None,
    ),
)


class DirectionCommands:
    """Thin command surface over :class:`DirectionEngine`.

    The cycle command is the status indicator's click handler; the direct
    commands back the command palette. Outcomes are reported as
    :class:`NoticePosted` events and the indicator text is republished as a
    :class:`StatusMessage` whenever the override changes.
    """

    def __init__(self, engine: DirectionEngine, bus: EventBus | None = None) -> None:
        self._engine = engine
        self._bus = bus if bus is not None else engine.bus
        self.last_notice: str | None = None
        self._subscription: Subscription | None = None
        if self._bus is not None:
            self._subscription = self._bus.subscribe(OverrideChanged, self._on_override_changed)

    @property
    def engine(self) -> DirectionEngine:
        return self._engine

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    # ------------------------------------------------------------------
    # Status indicator
    # ------------------------------------------------------------------
    def status(self) -> DirectionStatus:
        overrides = self._engine.overrides
        if not overrides.has_active_document():
            return DirectionStatus(_NOT_APPLICABLE_TEXT, _NOT_APPLICABLE_LABEL, applicable=False)
        override = overrides.current()
        if override is OverrideState.NONE:
            current = self._engine.settings.direction_for(RegionKind.PRIMARY_EDITOR).value
            source = "Default"
        else:
            current = override.value
            source = "Note"
        description = f"{current.upper()} ({source})"
        return DirectionStatus(text=f"Dir: {description}", aria_label=f"Note text direction: {description}")

    def cycle(self) -> OverrideChange | None:
        """Advance none -> ltr -> rtl -> auto -> none for the active note."""

        if not self._engine.overrides.has_active_document():
            self._notify(_OPEN_NOTE_NOTICE)
            return None
        return self._apply(self._engine.cycle_override)

    # ------------------------------------------------------------------
    # Direct commands
    # ------------------------------------------------------------------
    def force_ltr(self) -> OverrideChange | None:
        return self.set_direction(OverrideState.LTR)

    def force_rtl(self) -> OverrideChange | None:
        return self.set_direction(OverrideState.RTL)

    def force_auto(self) -> OverrideChange | None:
        return self.set_direction(OverrideState.AUTO)

    def clear(self) -> OverrideChange | None:
        return self.set_direction(OverrideState.NONE)

    def set_direction(self, state: OverrideState) -> OverrideChange | None:
        if not self._engine.overrides.has_active_document():
            if self._engine.reconciler.active_document is not None:
                self._notify(_UNSUPPORTED_NOTICE)
            else:
                self._notify(_NO_FILE_NOTICE)
            return None
        return self._apply(lambda: self._engine.set_override(state))

    def actions(self) -> dict[str, WindowAction]:
        """Return the commands keyed by their stable identifiers."""

        actions: dict[str, WindowAction] = {}
        for definition in _COMMAND_DEFINITIONS:
            actions[definition.name] = WindowAction(
                name=definition.name,
                text=definition.text,
                shortcut=definition.shortcut,
                status_tip=definition.text,
                callback=self._callback_for(definition.state),
            )
        return actions

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _callback_for(self, state: OverrideState | None) -> Callable[[], object]:
        if state is None:
            return self.cycle
        return lambda: self.set_direction(state)

    def _apply(self, operation: Callable[[], OverrideChange]) -> OverrideChange | None:
        try:
            change = operation()
        except NoActiveDocumentError:
            self._notify(_OPEN_NOTE_NOTICE)
            return None
        if not change.persisted:
            self._notify(_WRITE_FAILED_NOTICE)
            return change
        if change.current is OverrideState.NONE:
            self._notify("Note direction override cleared.")
        else:
            self._notify(f"Note direction set to {change.current.value.upper()}.")
        return change

    def _notify(self, message: str) -> None:
        self.last_notice = message
        LOGGER.debug("Notice: %s", message)
        if self._bus is not None:
            self._bus.publish(NoticePosted(message=message))

    def _on_override_changed(self, event: OverrideChanged) -> None:
        status = self.status()
        if self._bus is not None:
            self._bus.publish(StatusMessage(message=status.text, tooltip=status.aria_label))
