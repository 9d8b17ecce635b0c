"""Observation mechanisms that turn host mutations into reclassification requests."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterable, Iterator, Sequence

from ..core.directions import WatchCategory
from .channel import ChangeChannel, MutationBatch
from .registry import Region, RegionRegistry
from .render_tree import RenderTreeAdapter, Subscription
from .scheduler import Scheduler

__all__ = ["ChangeWatcher"]

LOGGER = logging.getLogger(__name__)

RegionsCallback = Callable[[Sequence[Hashable]], None]
ScopePredicate = Callable[[Hashable], bool]


@dataclass(slots=True)
class _Mechanism:
    category: WatchCategory
    channel: ChangeChannel
    subscriptions: dict[Hashable, Subscription] = field(default_factory=dict)


class ChangeWatcher:
    """Maintains one observation mechanism per :class:`WatchCategory`.

    The content mechanism watches auto-detect regions for text edits and is
    debounced; the card mechanism watches card hosts for inserted cards and
    drains every batch. Callbacks only ask the reconciler to reclassify
    regions that are already registered.
    """

    def __init__(
        self,
        adapter: RenderTreeAdapter,
        registry: RegionRegistry,
        scheduler: Scheduler,
        *,
        on_content_changed: RegionsCallback,
        on_cards_inserted: RegionsCallback,
        in_scope: ScopePredicate | None = None,
    ) -> None:
        self._adapter = adapter
        self._registry = registry
        self._scheduler = scheduler
        self._on_content_changed = on_content_changed
        self._on_cards_inserted = on_cards_inserted
        self._in_scope = in_scope or (lambda _handle: True)
        self._mechanisms: dict[WatchCategory, _Mechanism] = {}
        self._suspended = 0
        self.suppressed_batches = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def is_active(self, category: WatchCategory) -> bool:
        return category in self._mechanisms

    def watched_handles(self, category: WatchCategory = WatchCategory.CONTENT) -> set[Hashable]:
        mechanism = self._mechanisms.get(category)
        if mechanism is None:
            return set()
        return set(mechanism.subscriptions)

    def channel(self, category: WatchCategory) -> ChangeChannel | None:
        mechanism = self._mechanisms.get(category)
        return mechanism.channel if mechanism is not None else None

    # ------------------------------------------------------------------
    # Content regions
    # ------------------------------------------------------------------
    def attach(self, region: Region) -> None:
        """Start watching ``region``'s content; raises if the host refuses."""

        mechanism = self._ensure(WatchCategory.CONTENT)
        if region.handle not in mechanism.subscriptions:
            mechanism.subscriptions[region.handle] = self._adapter.observe(
                region.handle, WatchCategory.CONTENT, mechanism.channel
            )
        region.watched = True

    def detach(self, region: Region) -> None:
        region.watched = False
        self._release(WatchCategory.CONTENT, region.handle)

    def forget(self, handle: Hashable) -> None:
        """Drop a content subscription the registry no longer knows about."""

        self._release(WatchCategory.CONTENT, handle)

    # ------------------------------------------------------------------
    # Card hosts
    # ------------------------------------------------------------------
    def sync_card_hosts(self, hosts: Iterable[Hashable]) -> tuple[int, int]:
        """Observe every host in ``hosts`` and release the others; returns (added, released)."""

        live = list(hosts)
        live_set = set(live)
        current = self.watched_handles(WatchCategory.CARDS)
        released = 0
        for handle in current - live_set:
            self._release(WatchCategory.CARDS, handle)
            released += 1
        added = 0
        for handle in live:
            if handle in current:
                continue
            mechanism = self._ensure(WatchCategory.CARDS)
            try:
                mechanism.subscriptions[handle] = self._adapter.observe(handle, WatchCategory.CARDS, mechanism.channel)
                added += 1
            except Exception:
                LOGGER.warning("Unable to observe card host %r", handle, exc_info=True)
        self.teardown_idle()
        return added, released

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Refuse incoming batches; used while a pass writes to the render tree."""

        self._suspended += 1
        try:
            yield
        finally:
            self._suspended = max(0, self._suspended - 1)

    def teardown_idle(self) -> list[WatchCategory]:
        """Tear down mechanisms that no longer observe anything."""

        idle = [category for category, mechanism in self._mechanisms.items() if not mechanism.subscriptions]
        for category in idle:
            self._teardown(category)
        return idle

    def shutdown(self) -> None:
        for category in list(self._mechanisms):
            mechanism = self._mechanisms[category]
            for handle in list(mechanism.subscriptions):
                self._cancel(mechanism.subscriptions.pop(handle), handle)
            self._teardown(category)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure(self, category: WatchCategory) -> _Mechanism:
        mechanism = self._mechanisms.get(category)
        if mechanism is not None:
            return mechanism
        channel = ChangeChannel(category, accept=self._accept, wakeup=self._scheduler.notify)
        mechanism = _Mechanism(category=category, channel=channel)
        self._mechanisms[category] = mechanism
        if category is WatchCategory.CONTENT:
            self._scheduler.register(category, self._drain_content, coalesce=True)
        else:
            self._scheduler.register(category, self._drain_cards, coalesce=False)
        LOGGER.debug("Started %s observation", category.value)
        return mechanism

    def _teardown(self, category: WatchCategory) -> None:
        mechanism = self._mechanisms.pop(category, None)
        if mechanism is None:
            return
        self._scheduler.unregister(category)
        mechanism.channel.close()
        LOGGER.debug("Stopped %s observation", category.value)

    def _release(self, category: WatchCategory, handle: Hashable) -> None:
        mechanism = self._mechanisms.get(category)
        if mechanism is None:
            return
        subscription = mechanism.subscriptions.pop(handle, None)
        if subscription is not None:
            self._cancel(subscription, handle)
        if not mechanism.subscriptions:
            self._teardown(category)

    @staticmethod
    def _cancel(subscription: Subscription, handle: Hashable) -> None:
        try:
            subscription.cancel()
        except Exception:
            LOGGER.debug("Cancelling observation of %r failed", handle, exc_info=True)

    def _accept(self, batch: MutationBatch) -> bool:
        if self._suspended:
            self.suppressed_batches += 1
            return False
        return True

    def _drain_content(self) -> None:
        mechanism = self._mechanisms.get(WatchCategory.CONTENT)
        if mechanism is None:
            return
        batches = mechanism.channel.drain()
        if not batches:
            return
        latest = batches[-1]
        targets = self._filter(batch_targets(latest), WatchCategory.CONTENT)
        if targets:
            self._on_content_changed(targets)

    def _drain_cards(self) -> None:
        mechanism = self._mechanisms.get(WatchCategory.CARDS)
        if mechanism is None:
            return
        for batch in mechanism.channel.drain():
            hosts = [record.target for record in batch.records if record.added]
            hosts = self._filter(_unique(hosts), WatchCategory.CARDS)
            if hosts:
                self._on_cards_inserted(hosts)

    def _filter(self, handles: Sequence[Hashable], category: WatchCategory) -> list[Hashable]:
        mechanism = self._mechanisms.get(category)
        if mechanism is None:
            return []
        accepted: list[Hashable] = []
        for handle in handles:
            if handle not in mechanism.subscriptions:
                continue
            if category is WatchCategory.CONTENT:
                region = self._registry.get(handle)
                if region is None or not region.watched:
                    continue
            try:
                if not self._adapter.contains(handle) or not self._in_scope(handle):
                    continue
            except Exception:
                LOGGER.debug("Skipping change notification for %r", handle, exc_info=True)
                continue
            accepted.append(handle)
        return accepted


def batch_targets(batch: MutationBatch) -> list[Hashable]:
    return _unique(record.target for record in batch.records)


def _unique(handles: Iterable[Hashable]) -> list[Hashable]:
    seen: set[Hashable] = set()
    ordered: list[Hashable] = []
    for handle in handles:
        if handle in seen:
            continue
        seen.add(handle)
        ordered.append(handle)
    return ordered
