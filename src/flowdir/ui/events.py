"""Event bus connecting hosts, commands, and the direction engine.

Hosts publish document and layout events; the engine reacts by running
reconciliation passes and publishes override changes back so status
indicators can refresh without holding a reference to the engine.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the :class:`EventBus`.

    Example::

        @dataclass(slots=True)
        class DocumentActivated(Event):
            document_id: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Document Events
# =============================================================================


@dataclass(slots=True)
class DocumentActivated(Event):
    """Emitted when a document becomes the active one.

    Attributes:
        document_id: Identifier of the document, a note path for file-backed hosts.
    """

    document_id: str


@dataclass(slots=True)
class DocumentDeactivated(Event):
    """Emitted when no document is active anymore.

    Attributes:
        document_id: The document that stopped being active, when known.
    """

    document_id: str | None = None


@dataclass(slots=True)
class OverrideChanged(Event):
    """Emitted after the active document's direction override changed or was loaded.

    Attributes:
        document_id: The active document, or ``None`` when no document is active.
        override: The override value (``ltr``, ``rtl``, ``auto`` or ``none``).
        persisted: ``False`` when writing the value to document metadata failed.
    """

    document_id: str | None
    override: str
    persisted: bool = True


# =============================================================================
# Layout Events
# =============================================================================


@dataclass(slots=True)
class LayoutChanged(Event):
    """Emitted when panes, views, or canvases were opened, closed, or rearranged.

    Attributes:
        reason: Free-form description used for logging.
    """

    reason: str = ""


_QUIET_EVENT_TYPES.add(LayoutChanged)


# =============================================================================
# UI Events
# =============================================================================


@dataclass(slots=True)
class StatusMessage(Event):
    """Emitted to display a message in the status indicator.

    Attributes:
        message: The text to display.
        timeout_ms: Duration in milliseconds; 0 keeps the message until replaced.
        tooltip: Accessible description of the message.
    """

    message: str
    timeout_ms: int = 0
    tooltip: str | None = None


@dataclass(slots=True)
class NoticePosted(Event):
    """Emitted when a short notice should be shown to the user.

    Attributes:
        message: The notice text to display to the user.
    """

    message: str


# =============================================================================
# Infrastructure Events
# =============================================================================


@dataclass(slots=True)
class SettingsChanged(Event):
    """Emitted when direction settings are modified.

    Attributes:
        settings: Mapping of changed fields, using the same keys as
                  ``--set`` overrides (``global_default``, ``per_kind.<kind>``, ...).
    """

    settings: dict[str, Any] = field(default_factory=dict)




class Subscription:
    """Registration of one handler for one event type.

    Returned by :meth:`EventBus.subscribe`. Bound methods are held weakly,
    so a subscriber that is garbage collected stops receiving events even if
    it never cancelled.
    """

    __slots__ = ("event_type", "name", "_target", "_weak", "_cancelled")

    def __init__(self, event_type: type[Event], handler: Handler) -> None:
        self.event_type = event_type
        self.name = _handler_name(handler)
        self._cancelled = False
        self._weak = False
        self._target: Any = handler
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                self._target = WeakMethod(handler)
                self._weak = True
            except TypeError:
                pass

    @property
    def active(self) -> bool:
        return not self._cancelled and self.handler() is not None

    def handler(self) -> Handler | None:
        if self._cancelled:
            return None
        return self._target() if self._weak else self._target

    def cancel(self) -> None:
        """Stop delivering events to the handler; cancelling twice is harmless."""
        self._cancelled = True
        self._target = None
        self._weak = False

    def __repr__(self) -> str:
        state = "active" if self.active else "inactive"
        return f"<Subscription {self.name} -> {self.event_type.__name__} ({state})>"


class EventBus:
    """Synchronous publish-subscribe bus keyed by event type.

    Example::

        bus = EventBus()
        subscription = bus.subscribe(NoticePosted, lambda event: print(event.message))
        bus.publish(NoticePosted(message="Note direction set to RTL."))
        subscription.cancel()

    Only exact event types match; a handler for :class:`Event` does not see
    subclasses. All calls are expected on the host's UI thread.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: defaultdict[type[Event], list[Subscription]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> Subscription:
        """Register ``handler`` for ``event_type`` and return its subscription.

        Subscribing the same handler twice yields two independent
        subscriptions and two invocations per published event.
        """
        subscription = Subscription(event_type, handler)
        self._subscriptions[event_type].append(subscription)
        logger.debug("Subscribed %s to %s", subscription.name, event_type.__name__)
        return subscription

    def subscribers(self, event_type: type[Event]) -> int:
        """Return how many live subscriptions ``event_type`` has."""
        return sum(1 for subscription in self._subscriptions.get(event_type, ()) if subscription.active)

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to its subscribers in subscription order.

        A handler that raises is logged and the remaining handlers still run.
        Subscriptions cancelled or collected during delivery are skipped and
        pruned afterwards.
        """
        event_type = type(event)
        subscriptions = self._subscriptions.get(event_type)
        quiet = event_type in _QUIET_EVENT_TYPES
        if not subscriptions:
            if not quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return
        if not quiet:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(subscriptions))

        for subscription in list(subscriptions):
            handler = subscription.handler()
            if handler is None:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %s raised exception for event %s", subscription.name, event_type.__name__)

        subscriptions[:] = [subscription for subscription in subscriptions if subscription.active]
        if not subscriptions and self._subscriptions.get(event_type) is subscriptions:
            del self._subscriptions[event_type]


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "Subscription",
    # Document events
    "DocumentActivated",
    "DocumentDeactivated",
    "OverrideChanged",
    # Layout events
    "LayoutChanged",
    # UI events
    "StatusMessage",
    "NoticePosted",
    # Infrastructure events
    "SettingsChanged",
]
