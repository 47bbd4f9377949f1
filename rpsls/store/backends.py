"""
Storage Backends - Key-value persistence for the game store.

The store serializes everything into one document per storage key;
backends only move strings in and out.

- MemoryBackend: process-local dict, for tests and ephemeral sessions
- JsonFileBackend: one <key>.json file per key, written atomically
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import os
import re
import tempfile
from pathlib import Path


class KeyValueBackend(ABC):
    """Durable string storage. Errors propagate as OSError or ValueError."""

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Stored value, or None if the key was never written."""

    @abstractmethod
    def write(self, key: str, value: str):
        ...

    @abstractmethod
    def delete(self, key: str):
        ...


class MemoryBackend(KeyValueBackend):
    def __init__(self):
        self.data: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self.data.get(key)

    def write(self, key: str, value: str):
        self.data[key] = value

    def delete(self, key: str):
        self.data.pop(key, None)


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileBackend(KeyValueBackend):
    """
    Files under a directory, one per key.

    Usage:
        backend = JsonFileBackend("~/.rpsls")
        backend.write("rps_game_data", document)
    """

    def __init__(self, directory: str | Path | None = None):
        if directory is None:
            directory = Path.home() / ".rpsls"
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsafe storage key: {key!r}")
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str):
        path = self.path_for(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str):
        self.path_for(key).unlink(missing_ok=True)
