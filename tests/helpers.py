"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

from typing import Any, Callable

from flowdir.core.directions import OverrideState
from flowdir.engine.render_tree import MemoryRenderTree
from flowdir.engine.runtime import DirectionEngine
from flowdir.services.overrides import InMemoryMetadataStore
from flowdir.services.settings import DirectionSettings


class _ManualTimer:
    __slots__ = ("deadline_ms", "callback", "cancelled", "fired", "order")

    def __init__(self, deadline_ms: int, callback: Callable[[], None], order: int) -> None:
        self.deadline_ms = deadline_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False
        self.order = order

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Deterministic timer factory: timers only fire when :meth:`advance` passes their deadline.

    Example:
        clock = ManualClock()
        scheduler = Scheduler(clock, quiescence_ms=500)
        ...
        clock.advance(500)
    """

    def __init__(self) -> None:
        self.now_ms = 0
        self._timers: list[_ManualTimer] = []
        self._order = 0

    def __call__(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        self._order += 1
        timer = _ManualTimer(self.now_ms + int(round(delay * 1000)), callback, self._order)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled and not timer.fired)

    def advance(self, ms: int = 0) -> None:
        target = self.now_ms + ms
        while True:
            due = [
                timer
                for timer in self._timers
                if not timer.cancelled and not timer.fired and timer.deadline_ms <= target
            ]
            if not due:
                break
            timer = min(due, key=lambda item: (item.deadline_ms, item.order))
            self.now_ms = max(self.now_ms, timer.deadline_ms)
            timer.fired = True
            timer.callback()
        self.now_ms = target
        self._timers = [timer for timer in self._timers if not timer.cancelled and not timer.fired]


class FailingMetadataStore(InMemoryMetadataStore):
    """Metadata store whose writes always fail."""

    def write_override(self, document_id: str, state: OverrideState) -> None:
        raise OSError("read-only vault")


def make_engine(
    tree: MemoryRenderTree | None = None,
    *,
    settings: DirectionSettings | None = None,
    metadata: Any | None = None,
    clock: ManualClock | None = None,
    **kwargs: Any,
) -> tuple[DirectionEngine, MemoryRenderTree, ManualClock]:
    tree = tree if tree is not None else MemoryRenderTree()
    clock = clock if clock is not None else ManualClock()
    engine = DirectionEngine(
        tree,
        settings or DirectionSettings(),
        metadata if metadata is not None else InMemoryMetadataStore(),
        timer_factory=clock,
        **kwargs,
    )
    return engine, tree, clock
