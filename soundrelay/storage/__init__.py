"""
Storage Layer.

This package handles all data persistence: the configuration file and the
durable counters kept next to the relay's data directory.
"""

from .config_manager import ConfigManager
from .counter_store import DurableCounterStore, PersistentCounter, PersistentSet

__all__ = [
    "ConfigManager",
    "DurableCounterStore",
    "PersistentCounter",
    "PersistentSet",
]
