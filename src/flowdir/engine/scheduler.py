"""Deferred drain scheduling with per-category debounce."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from ..core.directions import WatchCategory

__all__ = ["Scheduler", "TimerFactory", "TimerHandle", "asyncio_timer_factory"]

LOGGER = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]
"""Schedules a callback after ``delay`` seconds and returns a cancellable handle."""


def asyncio_timer_factory(loop: asyncio.AbstractEventLoop | None = None) -> TimerFactory:
    """Return a timer factory backed by ``loop.call_later``.

    Without an explicit loop the running loop is looked up when a timer is
    scheduled, so the factory can be built before the loop starts. Scheduling
    while no loop runs raises ``RuntimeError``; :class:`Scheduler` then drains
    immediately instead of deferring.
    """

    def _schedule(delay: float, callback: Callable[[], None]) -> TimerHandle:
        target = loop or asyncio.get_running_loop()
        return target.call_later(max(0.0, delay), callback)

    return _schedule


@dataclass(slots=True)
class _Lane:
    drain: Callable[[], None]
    coalesce: bool
    pending: TimerHandle | None = None
    fired: int = 0


class Scheduler:
    """Plans channel drains.

    Coalescing lanes keep at most one pending drain: every notification
    cancels the pending timer and re-arms it for the quiescence window.
    Non-coalescing lanes drain on the next tick and never postpone a drain
    that is already planned.
    """

    def __init__(self, timer_factory: TimerFactory | None = None, *, quiescence_ms: int = 500) -> None:
        self._timer_factory = timer_factory or asyncio_timer_factory()
        self._quiescence_ms = max(0, int(quiescence_ms))
        self._lanes: dict[WatchCategory, _Lane] = {}
        self._closed = False
        self._timerless_warned = False

    @property
    def quiescence_ms(self) -> int:
        return self._quiescence_ms

    def set_quiescence(self, quiescence_ms: int) -> None:
        self._quiescence_ms = max(0, int(quiescence_ms))

    def register(self, category: WatchCategory, drain: Callable[[], None], *, coalesce: bool) -> None:
        self.unregister(category)
        self._lanes[category] = _Lane(drain=drain, coalesce=coalesce)

    def unregister(self, category: WatchCategory) -> None:
        lane = self._lanes.pop(category, None)
        if lane is not None:
            self._cancel_lane(lane)

    def is_registered(self, category: WatchCategory) -> bool:
        return category in self._lanes

    def is_pending(self, category: WatchCategory) -> bool:
        lane = self._lanes.get(category)
        return lane is not None and lane.pending is not None

    def drain_count(self, category: WatchCategory) -> int:
        lane = self._lanes.get(category)
        return lane.fired if lane is not None else 0

    def notify(self, category: WatchCategory) -> None:
        """Plan a drain for ``category`` after new batches were queued."""

        if self._closed:
            return
        lane = self._lanes.get(category)
        if lane is None:
            LOGGER.debug("Dropping notification for unregistered %s lane", category.value)
            return
        if lane.coalesce:
            self._cancel_lane(lane)
            delay = self._quiescence_ms / 1000.0
        elif lane.pending is not None:
            return
        else:
            delay = 0.0
        try:
            lane.pending = self._timer_factory(delay, lambda: self._fire(category, lane))
        except RuntimeError:
            # No loop to defer onto (asyncio factory outside a running loop).
            if not self._timerless_warned:
                self._timerless_warned = True
                LOGGER.warning(
                    "No running event loop for deferred drains; draining %s changes immediately",
                    category.value,
                    exc_info=True,
                )
            self._fire(category, lane)

    def flush(self, category: WatchCategory | None = None) -> None:
        """Run pending drains immediately instead of waiting for their timers."""

        targets = [category] if category is not None else list(self._lanes)
        for target in targets:
            lane = self._lanes.get(target)
            if lane is None or lane.pending is None:
                continue
            self._cancel_lane(lane)
            self._fire(target, lane)

    def close(self) -> None:
        self._closed = True
        for lane in self._lanes.values():
            self._cancel_lane(lane)
        self._lanes.clear()

    def _fire(self, category: WatchCategory, lane: _Lane) -> None:
        if self._lanes.get(category) is not lane:
            return
        lane.pending = None
        lane.fired += 1
        try:
            lane.drain()
        except Exception:
            LOGGER.exception("Drain for %s changes failed", category.value)

    @staticmethod
    def _cancel_lane(lane: _Lane) -> None:
        if lane.pending is not None:
            lane.pending.cancel()
            lane.pending = None
