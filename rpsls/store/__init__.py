"""
Store Module - Local persistence of tracked games.

The only persistence in the client. Everything else is either
derived from it or re-read from the ledger.
"""

from .backends import KeyValueBackend, MemoryBackend, JsonFileBackend
from .records import GameRecord, StoreDocument
from .game_store import GameStore, DEFAULT_STORAGE_KEY

__all__ = [
    "KeyValueBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "GameRecord",
    "StoreDocument",
    "GameStore",
    "DEFAULT_STORAGE_KEY",
]
