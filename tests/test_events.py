"""Unit tests for :mod:`flowdir.ui.events`."""

from __future__ import annotations

import gc
from dataclasses import dataclass

import pytest

from flowdir.ui.events import (
    DocumentActivated,
    DocumentDeactivated,
    Event,
    EventBus,
    LayoutChanged,
    NoticePosted,
    OverrideChanged,
    SettingsChanged,
    StatusMessage,
)


@dataclass(slots=True)
class SampleEvent(Event):
    """A sample event for testing."""

    message: str
    value: int = 0


class TestEventBusSubscription:
    """Subscriptions returned by :meth:`EventBus.subscribe`."""

    def test_subscribe_same_handler_twice(self) -> None:
        """Subscribing the same handler twice yields two independent subscriptions."""
        bus = EventBus()
        received: list[SampleEvent] = []

        first = bus.subscribe(SampleEvent, received.append)
        second = bus.subscribe(SampleEvent, received.append)
        bus.publish(SampleEvent(message="twice"))

        assert first is not second
        assert bus.subscribers(SampleEvent) == 2
        assert len(received) == 2

    def test_cancel_removes_only_that_subscription(self) -> None:
        bus = EventBus()
        received: list[str] = []

        kept = bus.subscribe(SampleEvent, lambda e: received.append("kept"))
        dropped = bus.subscribe(SampleEvent, lambda e: received.append("dropped"))
        dropped.cancel()
        dropped.cancel()
        bus.publish(SampleEvent(message="after cancel"))

        assert received == ["kept"]
        assert kept.active
        assert not dropped.active
        assert bus.subscribers(SampleEvent) == 1

    def test_subscription_repr_names_handler_and_state(self) -> None:
        bus = EventBus()

        def on_notice(event: NoticePosted) -> None:
            pass

        subscription = bus.subscribe(NoticePosted, on_notice)
        assert repr(subscription) == "<Subscription on_notice -> NoticePosted (active)>"

        subscription.cancel()
        assert repr(subscription) == "<Subscription on_notice -> NoticePosted (inactive)>"


class TestEventBusPublish:
    """Delivery order, failure isolation, and cleanup during publish."""

    def test_publish_invokes_handlers_in_order(self) -> None:
        bus = EventBus()
        order: list[int] = []

        bus.subscribe(SampleEvent, lambda e: order.append(1))
        bus.subscribe(SampleEvent, lambda e: order.append(2))
        bus.publish(SampleEvent(message="test"))

        assert order == [1, 2]

    def test_publish_matches_exact_event_type(self) -> None:
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(Event, received.append)

        bus.publish(SampleEvent(message="subclass"))

        assert received == []

    def test_publish_continues_after_handler_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing handler is logged and the remaining handlers still run."""
        bus = EventBus()
        received: list[int] = []

        def failing(event: SampleEvent) -> None:
            raise ValueError("boom")

        bus.subscribe(SampleEvent, failing)
        bus.subscribe(SampleEvent, lambda e: received.append(3))
        bus.publish(SampleEvent(message="test"))

        assert received == [3]
        assert "Handler failing raised exception" in caplog.text

    def test_handler_may_cancel_itself_while_publishing(self) -> None:
        """A handler can cancel its own subscription without skipping others."""
        bus = EventBus()
        received: list[str] = []
        subscriptions = []

        def once(event: SampleEvent) -> None:
            received.append("once")
            subscriptions[0].cancel()

        subscriptions.append(bus.subscribe(SampleEvent, once))
        bus.subscribe(SampleEvent, lambda e: received.append("always"))

        bus.publish(SampleEvent(message="first"))
        bus.publish(SampleEvent(message="second"))

        assert received == ["once", "always", "always"]
        assert bus.subscribers(SampleEvent) == 1

    def test_cancel_during_publish_skips_later_handler(self) -> None:
        bus = EventBus()
        received: list[str] = []
        later = []

        bus.subscribe(SampleEvent, lambda e: later[0].cancel())
        later.append(bus.subscribe(SampleEvent, lambda e: received.append("later")))

        bus.publish(SampleEvent(message="cancelled first"))

        assert received == []

    def test_bound_method_handler_cleaned_up_on_gc(self) -> None:
        """Bound method handlers are dropped once their owner is collected."""
        bus = EventBus()
        received: list[SampleEvent] = []

        class Subscriber:
            def handle(self, event: SampleEvent) -> None:
                received.append(event)

        subscriber = Subscriber()
        subscription = bus.subscribe(SampleEvent, subscriber.handle)
        bus.publish(SampleEvent(message="before gc"))

        del subscriber
        gc.collect()
        bus.publish(SampleEvent(message="after gc"))

        assert len(received) == 1
        assert not subscription.active
        assert bus.subscribers(SampleEvent) == 0


class TestDirectionEvents:
    """Field defaults of the direction events."""

    def test_document_events(self) -> None:
        assert DocumentActivated(document_id="notes/a.md").document_id == "notes/a.md"
        assert DocumentDeactivated().document_id is None

    def test_override_changed_defaults_to_persisted(self) -> None:
        event = OverrideChanged(document_id="a.md", override="rtl")
        assert event.persisted is True

    def test_status_message_defaults(self) -> None:
        event = StatusMessage(message="Dir: RTL (Note)")
        assert event.timeout_ms == 0
        assert event.tooltip is None

    def test_settings_changed_mapping_is_not_shared(self) -> None:
        first = SettingsChanged()
        first.settings["global_default"] = "rtl"
        assert SettingsChanged().settings == {}

    def test_layout_changed_is_published_quietly(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = EventBus()
        received: list[LayoutChanged] = []
        bus.subscribe(LayoutChanged, received.append)

        with caplog.at_level("DEBUG", logger="flowdir.ui.events"):
            bus.publish(LayoutChanged(reason="split"))

        assert [event.reason for event in received] == ["split"]
        assert "Publishing LayoutChanged" not in caplog.text
