"""
Marginalia - Persistence

The effect boundary: state documents, storage backends and the save queue.
"""
from persistence.backends import InMemoryBackend, JsonFileBackend, StorageBackend
from persistence.save_queue import SaveCoalescer
from persistence.state import STATE_VERSION, SessionState

__all__ = [
    "StorageBackend",
    "JsonFileBackend",
    "InMemoryBackend",
    "SaveCoalescer",
    "SessionState",
    "STATE_VERSION",
]
