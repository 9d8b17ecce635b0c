"""Render-tree capability interface and an in-memory implementation.

The engine never inspects host structure. Hosts implement
:class:`RenderTreeAdapter` once; :class:`MemoryRenderTree` serves headless
hosts and tests.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Hashable, Protocol, Sequence

from ..core.directions import Direction, DirectionSetting, RegionKind, WatchCategory
from ..core.errors import RegionVanishedError
from .channel import ATTRIBUTES, CHILD_LIST, CONTENT_CHANGE, ChangeChannel, MutationRecord

__all__ = [
    "DirectionMarking",
    "MemoryNode",
    "MemoryRenderTree",
    "RenderTreeAdapter",
    "STYLE_CLASSES",
    "Subscription",
]

LOGGER = logging.getLogger(__name__)

DIRECTION_ATTRIBUTE = "data-direction"
EFFECTIVE_DIRECTION_ATTRIBUTE = "data-effective-direction"
AUTO_CLASS = "auto-detect-direction"
STYLE_CLASSES: tuple[str, ...] = ("ltr-mode", "rtl-mode", "auto-mode", AUTO_CLASS)


@dataclass(frozen=True, slots=True)
class DirectionMarking:
    """Attribute/class pair written onto a region for downstream styling."""

    setting: DirectionSetting
    direction: Direction

    @property
    def attributes(self) -> dict[str, str]:
        return {
            DIRECTION_ATTRIBUTE: self.setting.value,
            EFFECTIVE_DIRECTION_ATTRIBUTE: self.direction.value,
        }

    @property
    def classes(self) -> frozenset[str]:
        classes = {f"{self.direction.value}-mode"}
        if self.setting is DirectionSetting.AUTO:
            classes.add(AUTO_CLASS)
        return frozenset(classes)


class Subscription(Protocol):
    """Handle returned by :meth:`RenderTreeAdapter.observe`."""

    def cancel(self) -> None:
        ...


class RenderTreeAdapter(Protocol):
    """Host capabilities consumed by the reconciler and change watcher."""

    def list_regions(self, kind: RegionKind) -> Sequence[Hashable]:
        """Return the live regions of ``kind`` in render order."""
        ...

    def list_card_hosts(self) -> Sequence[Hashable]:
        """Return containers into which card regions can be inserted."""
        ...

    def contains(self, handle: Hashable) -> bool:
        ...

    def owner_document(self, handle: Hashable) -> str | None:
        """Return the document shown by ``handle`` or ``None`` for document-less areas."""
        ...

    def read_text(self, handle: Hashable) -> str:
        ...

    def apply_marking(self, handle: Hashable, marking: DirectionMarking) -> None:
        ...

    def observe(self, handle: Hashable, category: WatchCategory, channel: ChangeChannel) -> Subscription:
        ...


_NODE_IDS = itertools.count(1)


@dataclass(eq=False, slots=True)
class MemoryNode:
    """Region or card host living in a :class:`MemoryRenderTree`."""

    kind: RegionKind | None
    text: str = ""
    document_id: str | None = None
    host: "MemoryNode | None" = None
    attributes: dict[str, str] = field(default_factory=dict)
    classes: set[str] = field(default_factory=set)
    node_id: int = field(default_factory=lambda: next(_NODE_IDS))

    @property
    def effective_direction(self) -> str | None:
        return self.attributes.get(EFFECTIVE_DIRECTION_ATTRIBUTE)

    def __repr__(self) -> str:
        label = self.kind.value if self.kind is not None else "card-host"
        return f"MemoryNode({label}#{self.node_id})"


class _MemorySubscription:
    __slots__ = ("_tree", "_node", "_category", "_channel", "_active")

    def __init__(self, tree: "MemoryRenderTree", node: MemoryNode, category: WatchCategory, channel: ChangeChannel) -> None:
        self._tree = tree
        self._node = node
        self._category = category
        self._channel = channel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, records: Sequence[MutationRecord]) -> None:
        if self._active:
            self._channel.put(records)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._tree._forget(self._node, self._category, self)


class MemoryRenderTree:
    """In-process render tree used by headless hosts and the test-suite."""

    def __init__(self, *, echo_markings: bool = False) -> None:
        self._nodes: dict[int, MemoryNode] = {}
        self._subscriptions: defaultdict[tuple[int, WatchCategory], list[_MemorySubscription]] = defaultdict(list)
        self._echo_markings = echo_markings
        self.apply_log: list[tuple[MemoryNode, DirectionMarking]] = []
        self.text_reads = 0
        self.failing: set[int] = set()

    # ------------------------------------------------------------------
    # Host-side mutation helpers
    # ------------------------------------------------------------------
    def add_region(self, kind: RegionKind, text: str = "", *, document_id: str | None = None) -> MemoryNode:
        node = MemoryNode(kind=kind, text=text, document_id=document_id)
        self._nodes[node.node_id] = node
        return node

    def add_card_host(self, *, document_id: str | None = None) -> MemoryNode:
        node = MemoryNode(kind=None, document_id=document_id)
        self._nodes[node.node_id] = node
        return node

    def insert_card(self, host: MemoryNode, text: str = "") -> MemoryNode:
        """Insert a canvas card under ``host`` and notify card observers."""

        self._require(host)
        card = MemoryNode(kind=RegionKind.CANVAS_CARD, text=text, document_id=host.document_id, host=host)
        self._nodes[card.node_id] = card
        self._notify(host, WatchCategory.CARDS, (MutationRecord(target=host, type=CHILD_LIST, added=(card,)),))
        return card

    def set_text(self, node: MemoryNode, text: str) -> None:
        """Replace ``node``'s text and notify content observers."""

        self._require(node)
        node.text = text
        self._notify(node, WatchCategory.CONTENT, (MutationRecord(target=node, type=CONTENT_CHANGE),))

    def remove(self, node: MemoryNode) -> None:
        self._nodes.pop(node.node_id, None)
        for child in [item for item in self._nodes.values() if item.host is node]:
            self._nodes.pop(child.node_id, None)

    def fail_on(self, node: MemoryNode) -> None:
        """Make every adapter call touching ``node`` raise, simulating a broken host."""

        self.failing.add(node.node_id)

    # ------------------------------------------------------------------
    # RenderTreeAdapter
    # ------------------------------------------------------------------
    def list_regions(self, kind: RegionKind) -> list[MemoryNode]:
        return [node for node in self._nodes.values() if node.kind is kind]

    def list_card_hosts(self) -> list[MemoryNode]:
        return [node for node in self._nodes.values() if node.kind is None]

    def contains(self, handle: Hashable) -> bool:
        return isinstance(handle, MemoryNode) and self._nodes.get(handle.node_id) is handle

    def owner_document(self, handle: Hashable) -> str | None:
        node = self._require(handle)
        return node.document_id

    def read_text(self, handle: Hashable) -> str:
        node = self._require(handle)
        self.text_reads += 1
        return node.text

    def apply_marking(self, handle: Hashable, marking: DirectionMarking) -> None:
        node = self._require(handle)
        node.attributes.update(marking.attributes)
        node.classes.difference_update(STYLE_CLASSES)
        node.classes.update(marking.classes)
        self.apply_log.append((node, marking))
        if self._echo_markings:
            self._notify(node, WatchCategory.CONTENT, (MutationRecord(target=node, type=ATTRIBUTES),))

    def observe(self, handle: Hashable, category: WatchCategory, channel: ChangeChannel) -> _MemorySubscription:
        node = self._require(handle)
        subscription = _MemorySubscription(self, node, category, channel)
        self._subscriptions[(node.node_id, category)].append(subscription)
        return subscription

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def observer_count(self, category: WatchCategory | None = None) -> int:
        return sum(
            len(subs)
            for (_, sub_category), subs in self._subscriptions.items()
            if category is None or sub_category is category
        )

    def is_observed(self, node: MemoryNode, category: WatchCategory = WatchCategory.CONTENT) -> bool:
        return bool(self._subscriptions.get((node.node_id, category)))

    def applied_to(self, node: MemoryNode) -> list[DirectionMarking]:
        return [marking for target, marking in self.apply_log if target is node]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, handle: Any) -> MemoryNode:
        if not self.contains(handle):
            raise RegionVanishedError(handle)
        if handle.node_id in self.failing:
            raise RuntimeError(f"render tree failure for {handle!r}")
        return handle

    def _notify(self, node: MemoryNode, category: WatchCategory, records: Sequence[MutationRecord]) -> None:
        for subscription in list(self._subscriptions.get((node.node_id, category), ())):
            subscription.deliver(records)

    def _forget(self, node: MemoryNode, category: WatchCategory, subscription: _MemorySubscription) -> None:
        key = (node.node_id, category)
        subs = self._subscriptions.get(key)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            self._subscriptions.pop(key, None)
