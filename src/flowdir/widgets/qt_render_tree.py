"""PySide6 render-tree adapter and timer backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable

from ..core.directions import Direction, RegionKind, WatchCategory
from ..core.errors import RegionVanishedError
from ..engine.channel import CHILD_LIST, CONTENT_CHANGE, ChangeChannel, MutationRecord
from ..engine.render_tree import DirectionMarking
from ..engine.scheduler import TimerFactory, TimerHandle

try:  # pragma: no cover - Qt imports are optional during tests
    from PySide6.QtCore import Qt, QTimer
except Exception:  # pragma: no cover - PySide6 not available
    Qt = None  # type: ignore[assignment]
    QTimer = None  # type: ignore[assignment]

__all__ = ["QtRenderTree", "qt_timer_factory"]

LOGGER = logging.getLogger(__name__)

DIRECTION_PROPERTY = "flowdirDirection"
EFFECTIVE_DIRECTION_PROPERTY = "flowdirEffectiveDirection"
CLASSES_PROPERTY = "flowdirClasses"


class _QtTimerHandle:
    __slots__ = ("_timer", "_done")

    def __init__(self, timer: Any) -> None:
        self._timer = timer
        self._done = False

    def finish(self) -> None:
        self._done = True
        self._timer.deleteLater()

    def cancel(self) -> None:
        if self._done:
            return
        self._done = True
        try:
            self._timer.stop()
            self._timer.deleteLater()
        except RuntimeError:  # pragma: no cover - timer already destroyed by Qt
            pass


def qt_timer_factory(parent: Any | None = None) -> TimerFactory:
    """Return a timer factory backed by single-shot ``QTimer`` instances."""

    if QTimer is None:
        raise RuntimeError("Qt timers require the 'PySide6' dependency.")

    def _schedule(delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = QTimer(parent)
        timer.setSingleShot(True)
        handle = _QtTimerHandle(timer)

        def _on_timeout() -> None:
            handle.finish()
            callback()

        timer.timeout.connect(_on_timeout)
        timer.start(max(0, int(round(delay * 1000))))
        return handle

    return _schedule


@dataclass(slots=True)
class _Entry:
    widget: Any
    kind: RegionKind | None
    document_id: str | None = None
    host: Any | None = None
    card_channels: list[ChangeChannel] = field(default_factory=list)


class _SignalSubscription:
    __slots__ = ("_signal", "_slot", "_active")

    def __init__(self, signal: Any, slot: Callable[..., None]) -> None:
        self._signal = signal
        self._slot = slot
        self._active = True
        signal.connect(slot)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            self._signal.disconnect(self._slot)
        except (RuntimeError, TypeError):  # pragma: no cover - widget already destroyed
            LOGGER.debug("Signal already disconnected", exc_info=True)


class _CardSubscription:
    __slots__ = ("_entry", "_channel")

    def __init__(self, entry: _Entry, channel: ChangeChannel) -> None:
        self._entry = entry
        self._channel = channel
        entry.card_channels.append(channel)

    def cancel(self) -> None:
        try:
            self._entry.card_channels.remove(self._channel)
        except ValueError:
            pass


class QtRenderTree:
    """Render tree over registered Qt widgets.

    Hosts register the widgets that make up each region kind. Text regions
    are observed through their ``textChanged`` signal; card hosts report
    inserted cards through :meth:`add_card`. Markings set the widget layout
    direction and dynamic properties so stylesheets can select on them.
    """

    def __init__(self) -> None:
        self._entries: dict[int, _Entry] = {}

    # ------------------------------------------------------------------
    # Host registration
    # ------------------------------------------------------------------
    def register(self, widget: Any, kind: RegionKind, *, document_id: str | None = None) -> Any:
        entry = _Entry(widget=widget, kind=kind, document_id=document_id)
        self._track(entry)
        return widget

    def register_card_host(self, widget: Any, *, document_id: str | None = None) -> Any:
        entry = _Entry(widget=widget, kind=None, document_id=document_id)
        self._track(entry)
        return widget

    def add_card(self, host: Any, card: Any) -> Any:
        """Register ``card`` under ``host`` and notify card observers."""

        host_entry = self._require(host)
        entry = _Entry(widget=card, kind=RegionKind.CANVAS_CARD, document_id=host_entry.document_id, host=host)
        self._track(entry)
        record = MutationRecord(target=host, type=CHILD_LIST, added=(card,))
        for channel in list(host_entry.card_channels):
            channel.put((record,))
        return card

    def set_document(self, widget: Any, document_id: str | None) -> None:
        self._require(widget).document_id = document_id

    def unregister(self, widget: Any) -> None:
        entry = self._entries.pop(id(widget), None)
        if entry is None:
            return
        for child_key in [key for key, item in self._entries.items() if item.host is widget]:
            self._entries.pop(child_key, None)

    # ------------------------------------------------------------------
    # RenderTreeAdapter
    # ------------------------------------------------------------------
    def list_regions(self, kind: RegionKind) -> list[Any]:
        return [entry.widget for entry in self._entries.values() if entry.kind is kind]

    def list_card_hosts(self) -> list[Any]:
        return [entry.widget for entry in self._entries.values() if entry.kind is None]

    def contains(self, handle: Hashable) -> bool:
        entry = self._entries.get(id(handle))
        return entry is not None and entry.widget is handle

    def owner_document(self, handle: Hashable) -> str | None:
        return self._require(handle).document_id

    def read_text(self, handle: Hashable) -> str:
        widget = self._require(handle).widget
        for accessor in ("toPlainText", "text"):
            reader = getattr(widget, accessor, None)
            if callable(reader):
                return str(reader() or "")
        return ""

    def apply_marking(self, handle: Hashable, marking: DirectionMarking) -> None:
        widget = self._require(handle).widget
        if Qt is not None:
            rtl = marking.direction is Direction.RTL
            widget.setLayoutDirection(Qt.LayoutDirection.RightToLeft if rtl else Qt.LayoutDirection.LeftToRight)
        widget.setProperty(DIRECTION_PROPERTY, marking.setting.value)
        widget.setProperty(EFFECTIVE_DIRECTION_PROPERTY, marking.direction.value)
        widget.setProperty(CLASSES_PROPERTY, " ".join(sorted(marking.classes)))
        style = widget.style() if hasattr(widget, "style") else None
        if style is not None:
            # Property selectors in stylesheets only re-evaluate after a repolish.
            style.unpolish(widget)
            style.polish(widget)

    def observe(self, handle: Hashable, category: WatchCategory, channel: ChangeChannel) -> Any:
        entry = self._require(handle)
        if category is WatchCategory.CARDS:
            return _CardSubscription(entry, channel)
        signal = getattr(entry.widget, "textChanged", None)
        if signal is None:
            raise TypeError(f"{type(entry.widget).__name__} does not emit textChanged")
        widget = entry.widget

        def _on_text_changed(*_args: Any) -> None:
            channel.put((MutationRecord(target=widget, type=CONTENT_CHANGE),))

        return _SignalSubscription(signal, _on_text_changed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _track(self, entry: _Entry) -> None:
        key = id(entry.widget)
        self._entries[key] = entry
        destroyed = getattr(entry.widget, "destroyed", None)
        if destroyed is not None:
            destroyed.connect(lambda *_args, _key=key: self._entries.pop(_key, None))

    def _require(self, handle: Any) -> _Entry:
        entry = self._entries.get(id(handle))
        if entry is None or entry.widget is not handle:
            raise RegionVanishedError(handle)
        return entry
