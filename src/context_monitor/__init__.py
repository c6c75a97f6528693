"""Per-workspace conversation context monitoring."""

__version__ = "0.1.0"
