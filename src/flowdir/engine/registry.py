"""Bookkeeping for the live regions the engine manages."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Hashable, Iterable, Iterator

from ..core.directions import Direction, DirectionSetting, RegionKind
from ..core.errors import RegistryLockedError

__all__ = ["Region", "RegionRegistry"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Region:
    """One rendered instance of a :class:`RegionKind`.

    ``handle`` is a non-owning reference into the host render tree.
    """

    handle: Hashable
    kind: RegionKind
    setting: DirectionSetting | None = None
    applied: Direction | None = None
    watched: bool = False


class RegionRegistry:
    """Maps render-tree handles to :class:`Region` entries.

    Entries are only inserted or removed while :meth:`editing` is active,
    which the reconciler holds for the duration of a pass.
    """

    __slots__ = ("_regions", "_editing")

    def __init__(self) -> None:
        self._regions: dict[Hashable, Region] = {}
        self._editing = 0

    @contextmanager
    def editing(self) -> Iterator["RegionRegistry"]:
        self._editing += 1
        try:
            yield self
        finally:
            self._editing = max(0, self._editing - 1)

    @property
    def is_editing(self) -> bool:
        return self._editing > 0

    def __contains__(self, handle: object) -> bool:
        return handle in self._regions

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(list(self._regions.values()))

    def get(self, handle: Hashable) -> Region | None:
        return self._regions.get(handle)

    def regions(self, kind: RegionKind | None = None) -> list[Region]:
        return [region for region in self._regions.values() if kind is None or region.kind is kind]

    def watched(self) -> list[Region]:
        return [region for region in self._regions.values() if region.watched]

    def track(self, handle: Hashable, kind: RegionKind) -> Region:
        """Return the entry for ``handle``, creating it when the region is new."""

        region = self._regions.get(handle)
        if region is not None and region.kind is kind:
            return region
        self._check_editable("track")
        if region is not None:
            LOGGER.debug("Region %r changed kind %s -> %s", handle, region.kind.value, kind.value)
            region.kind = kind
            return region
        region = Region(handle=handle, kind=kind)
        self._regions[handle] = region
        return region

    def drop(self, handle: Hashable) -> Region | None:
        self._check_editable("drop")
        return self._regions.pop(handle, None)

    def prune(self, live: Iterable[Hashable], kinds: Iterable[RegionKind]) -> list[Region]:
        """Remove entries of ``kinds`` whose handle is not in ``live``."""

        self._check_editable("prune")
        live_set = set(live)
        kind_set = set(kinds)
        removed = [
            region
            for handle, region in self._regions.items()
            if region.kind in kind_set and handle not in live_set
        ]
        for region in removed:
            self._regions.pop(region.handle, None)
        return removed

    def clear(self) -> list[Region]:
        self._check_editable("clear")
        removed = list(self._regions.values())
        self._regions.clear()
        return removed

    def _check_editable(self, operation: str) -> None:
        if not self._editing:
            raise RegistryLockedError(f"Region registry {operation} attempted outside a reconciliation pass")
