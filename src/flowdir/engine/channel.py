"""Message channel carrying host mutation notifications into the engine."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable

from ..core.directions import WatchCategory

__all__ = ["ChangeChannel", "MutationBatch", "MutationRecord"]

LOGGER = logging.getLogger(__name__)

CONTENT_CHANGE = "characterData"
CHILD_LIST = "childList"
ATTRIBUTES = "attributes"


@dataclass(frozen=True, slots=True)
class MutationRecord:
    """One structural or content change reported by the render tree.

    ``target`` is the observed handle the change originated under; ``added``
    lists child handles inserted by a ``childList`` change.
    """

    target: Hashable
    type: str = CONTENT_CHANGE
    added: tuple[Hashable, ...] = ()


@dataclass(frozen=True, slots=True)
class MutationBatch:
    """A group of records delivered together by one host notification."""

    category: WatchCategory
    records: tuple[MutationRecord, ...]
    sequence: int = 0


class ChangeChannel:
    """Queue fed by host adapters and drained by the scheduler.

    ``put`` never runs engine logic: it asks ``accept`` whether the batch
    should be queued (batches produced by the engine's own writes are
    refused) and then pokes ``wakeup`` so the scheduler can plan a drain.
    """

    __slots__ = ("category", "_queue", "_accept", "_wakeup", "_closed", "_sequence")

    def __init__(
        self,
        category: WatchCategory,
        *,
        accept: Callable[[MutationBatch], bool] | None = None,
        wakeup: Callable[[WatchCategory], None] | None = None,
    ) -> None:
        self.category = category
        self._queue: deque[MutationBatch] = deque()
        self._accept = accept
        self._wakeup = wakeup
        self._closed = False
        self._sequence = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._queue)

    def put(self, records: Iterable[MutationRecord]) -> bool:
        """Queue ``records`` as one batch; returns ``False`` when the batch was dropped."""

        if self._closed:
            return False
        batch_records = tuple(records)
        if not batch_records:
            return False
        self._sequence += 1
        batch = MutationBatch(category=self.category, records=batch_records, sequence=self._sequence)
        if self._accept is not None and not self._accept(batch):
            return False
        self._queue.append(batch)
        if self._wakeup is not None:
            self._wakeup(self.category)
        return True

    def drain(self) -> list[MutationBatch]:
        batches = list(self._queue)
        self._queue.clear()
        return batches

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            LOGGER.debug("Closed %s channel with %d undelivered batch(es)", self.category.value, dropped)
