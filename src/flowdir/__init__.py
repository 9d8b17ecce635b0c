"""Per-region text direction management for document editors."""

__version__ = "0.3.0"
