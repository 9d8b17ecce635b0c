"""Reconciliation passes that keep rendered regions in sync with settings."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Sequence

from ..core.directions import OverrideState, RegionKind, WatchCategory
from ..core.errors import RegionVanishedError
from ..services.overrides import OverrideStore
from ..services.settings import DirectionSettings
from ..utils.logging import PASS_LOGGER_NAME
from .registry import Region, RegionRegistry
from .render_tree import DirectionMarking, RenderTreeAdapter
from .resolver import DirectionResolver
from .scheduler import Scheduler
from .watcher import ChangeWatcher

__all__ = ["PassReport", "Reconciler"]

LOGGER = logging.getLogger(__name__)
PASS_LOGGER = logging.getLogger(PASS_LOGGER_NAME)

_PassBody = Callable[["PassReport"], None]


@dataclass(slots=True)
class PassReport:
    """Counters collected while a reconciliation pass runs."""

    label: str
    applied: int = 0
    skipped: int = 0
    attached: int = 0
    detached: int = 0
    removed: int = 0
    failed: int = 0
    deferred: bool = False

    @property
    def touched(self) -> int:
        return self.applied + self.skipped

    def summary(self) -> str:
        return (
            f"{self.label}: applied={self.applied} skipped={self.skipped} attached={self.attached} "
            f"detached={self.detached} removed={self.removed} failed={self.failed}"
        )


class Reconciler:
    """Drives the resolver over the live regions of a render tree.

    Every entry point runs as a pass: the registry is editable, the watcher
    refuses batches produced by the pass's own writes, and a pass requested
    while another one runs is queued and executed once the current pass
    returns.
    """

    def __init__(
        self,
        adapter: RenderTreeAdapter,
        settings: DirectionSettings,
        overrides: OverrideStore,
        scheduler: Scheduler,
        *,
        resolver: DirectionResolver | None = None,
        registry: RegionRegistry | None = None,
    ) -> None:
        self._adapter = adapter
        self.settings = settings
        self._overrides = overrides
        self._resolver = resolver or DirectionResolver()
        self._registry = registry or RegionRegistry()
        self._active_document: str | None = None
        self._running = False
        self._deferred: list[tuple[str | None, str, _PassBody]] = []
        self.history: deque[PassReport] = deque(maxlen=64)
        self.watcher = ChangeWatcher(
            adapter,
            self._registry,
            scheduler,
            on_content_changed=self.reclassify,
            on_cards_inserted=self._handle_cards_inserted,
            in_scope=self._in_scope,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def registry(self) -> RegionRegistry:
        return self._registry

    @property
    def active_document(self) -> str | None:
        return self._active_document

    @active_document.setter
    def active_document(self, document_id: str | None) -> None:
        self._active_document = document_id or None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def full_pass(self) -> PassReport:
        """Resolve and apply every live region, then clean up bookkeeping."""

        return self._run("full", self._full_pass_body, key="full")

    def refresh_primary_editors(self) -> PassReport:
        """Re-resolve editors after the active document or its override changed."""

        def body(report: PassReport) -> None:
            self._sync_kind(RegionKind.PRIMARY_EDITOR, report, force=True)
            self.watcher.teardown_idle()

        return self._run("editors", body, key="editors")

    def reconcile_cards(self) -> PassReport:
        """Pick up inserted canvas cards without touching other regions."""

        def body(report: PassReport) -> None:
            self._sync_kind(RegionKind.CANVAS_CARD, report, force=False)
            self._sync_card_hosts()
            self.watcher.teardown_idle()

        return self._run("cards", body, key="cards")

    def reclassify(self, handles: Sequence[Hashable]) -> PassReport:
        """Re-resolve already registered regions whose content changed."""

        targets = list(handles)

        def body(report: PassReport) -> None:
            for handle in targets:
                region = self._registry.get(handle)
                if region is None:
                    continue
                self._sync_region(handle, region.kind, report, force=False)
            self.watcher.teardown_idle()

        return self._run("reclassify", body)

    def shutdown(self) -> None:
        """Detach every watcher and forget all regions."""

        self._deferred.clear()
        self.watcher.shutdown()
        with self._registry.editing():
            removed = self._registry.clear()
        for region in removed:
            region.watched = False
        LOGGER.debug("Reconciler shut down; released %d region(s)", len(removed))

    # ------------------------------------------------------------------
    # Pass machinery
    # ------------------------------------------------------------------
    def _run(self, label: str, body: _PassBody, *, key: str | None = None) -> PassReport:
        if self._running:
            if key is None or all(pending_key != key for pending_key, _, _ in self._deferred):
                self._deferred.append((key, label, body))
            LOGGER.debug("Deferring %s pass requested during a running pass", label)
            return PassReport(label=label, deferred=True)

        report = PassReport(label=label)
        self._running = True
        try:
            with self._registry.editing(), self.watcher.suspended():
                body(report)
        finally:
            self._running = False
        self.history.append(report)
        if report.failed:
            PASS_LOGGER.warning("%s", report.summary())
        else:
            PASS_LOGGER.debug("%s", report.summary())

        while self._deferred and not self._running:
            pending_key, pending_label, pending_body = self._deferred.pop(0)
            self._run(pending_label, pending_body, key=pending_key)
        return report

    def _full_pass_body(self, report: PassReport) -> None:
        for kind in RegionKind:
            self._sync_kind(kind, report, force=True)
        self._verify_watch_set()
        self._sync_card_hosts()
        self.watcher.teardown_idle()

    def _sync_kind(self, kind: RegionKind, report: PassReport, *, force: bool) -> None:
        try:
            live = list(self._adapter.list_regions(kind))
        except Exception:
            LOGGER.warning("Unable to enumerate %s regions", kind.value, exc_info=True)
            report.failed += 1
            return
        for handle in live:
            self._sync_region(handle, kind, report, force=force)
        for region in self._registry.prune(live, (kind,)):
            self._forget(region)
            report.removed += 1

    def _sync_region(self, handle: Hashable, kind: RegionKind, report: PassReport, *, force: bool) -> None:
        try:
            region = self._registry.track(handle, kind)
            override = self._override_for(handle, kind)
            resolution = self._resolver.resolve(
                kind, self.settings, override, lambda: self._adapter.read_text(handle)
            )
            unchanged = region.applied is resolution.direction and region.setting is resolution.setting
            if force or not unchanged:
                self._adapter.apply_marking(handle, DirectionMarking(resolution.setting, resolution.direction))
                report.applied += 1
            else:
                report.skipped += 1
            region.applied = resolution.direction
            region.setting = resolution.setting

            wants_watch = self._resolver.watches(resolution.setting, self.settings)
            if wants_watch and not region.watched:
                self.watcher.attach(region)
                report.attached += 1
            elif not wants_watch and region.watched:
                self.watcher.detach(region)
                report.detached += 1
        except RegionVanishedError:
            LOGGER.debug("Region %r vanished during reconciliation", handle)
            dropped = self._registry.drop(handle)
            if dropped is not None:
                self._forget(dropped)
                report.removed += 1
        except Exception:
            LOGGER.warning("Failed to reconcile %s region %r", kind.value, handle, exc_info=True)
            report.failed += 1

    def _forget(self, region: Region) -> None:
        region.watched = False
        self.watcher.forget(region.handle)

    def _verify_watch_set(self) -> None:
        watched = self.watcher.watched_handles(WatchCategory.CONTENT)
        for handle in watched:
            region = self._registry.get(handle)
            if region is None or not region.watched:
                LOGGER.debug("Releasing stray content observation of %r", handle)
                self.watcher.forget(handle)
        for region in self._registry.watched():
            if region.handle not in watched:
                LOGGER.warning("Region %r was flagged as watched without an observation", region.handle)
                region.watched = False

    def _sync_card_hosts(self) -> None:
        try:
            hosts = list(self._adapter.list_card_hosts())
        except Exception:
            LOGGER.warning("Unable to enumerate card hosts", exc_info=True)
            return
        added, released = self.watcher.sync_card_hosts(hosts)
        if added or released:
            LOGGER.debug("Card host observation: +%d -%d", added, released)

    def _handle_cards_inserted(self, hosts: Iterable[Hashable]) -> None:
        LOGGER.debug("Cards inserted under %d host(s)", len(list(hosts)))
        self.reconcile_cards()

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------
    def _override_for(self, handle: Hashable, kind: RegionKind) -> OverrideState:
        if kind is not RegionKind.PRIMARY_EDITOR:
            return OverrideState.NONE
        document_id = self._overrides.active_document
        if document_id is None:
            return OverrideState.NONE
        owner = self._adapter.owner_document(handle)
        if owner is not None and owner != document_id:
            return OverrideState.NONE
        return self._overrides.current()

    def _in_scope(self, handle: Hashable) -> bool:
        owner = self._adapter.owner_document(handle)
        return owner is None or owner == self._active_document
