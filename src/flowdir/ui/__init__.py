"""Event bus and user command surface for hosts embedding the engine."""

from .direction_commands import DirectionCommands, DirectionStatus
from .events import EventBus
from .models.actions import WindowAction

__all__ = [
    "DirectionCommands",
    "DirectionStatus",
    "EventBus",
    "WindowAction",
]
