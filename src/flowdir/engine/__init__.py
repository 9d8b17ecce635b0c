"""Direction synchronization engine.

The reconciler resolves every live region through the resolver and applies
the result via a host's :class:`RenderTreeAdapter`; the watcher and scheduler
turn host mutations into debounced reclassification passes.
"""

from ..core.directions import WatchCategory
from .channel import ChangeChannel, MutationBatch, MutationRecord
from .reconciler import PassReport, Reconciler
from .registry import Region, RegionRegistry
from .render_tree import DirectionMarking, MemoryNode, MemoryRenderTree, RenderTreeAdapter, Subscription
from .resolver import DirectionResolver, Resolution
from .runtime import DirectionEngine
from .scheduler import Scheduler, TimerFactory, TimerHandle, asyncio_timer_factory
from .watcher import ChangeWatcher

__all__ = [
    "ChangeChannel",
    "ChangeWatcher",
    "DirectionEngine",
    "DirectionMarking",
    "DirectionResolver",
    "MemoryNode",
    "MemoryRenderTree",
    "MutationBatch",
    "MutationRecord",
    "PassReport",
    "Reconciler",
    "Region",
    "RegionRegistry",
    "RenderTreeAdapter",
    "Resolution",
    "Scheduler",
    "Subscription",
    "TimerFactory",
    "TimerHandle",
    "WatchCategory",
    "asyncio_timer_factory",
]