"""Plain data models shared by the command surface."""

from .actions import WindowAction

__all__ = ["WindowAction"]
