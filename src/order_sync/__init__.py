"""Multi-shop order synchronization engine."""

__version__ = "1.0.0"
