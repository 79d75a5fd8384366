"""
Marginalia - Storage Backends

The effect boundary for session state. The engine hands a backend a JSON
document and never cares where it ends up; the vault/file layer of the host
application provides its own backend.
"""
from __future__ import annotations

import asyncio
import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from core.errors import PersistenceError
from observability.logging import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]


@runtime_checkable
class StorageBackend(Protocol):
    """Anything that can read and write one state document."""

    async def read(self) -> Optional[Document]:
        """The stored document, or None when nothing was saved yet."""
        ...

    async def write(self, document: Document) -> None:
        """Replace the stored document. Raises PersistenceError."""
        ...


class JsonFileBackend:
    """
    State document in a JSON file.

    Writes go to a temporary file in the same directory followed by an
    atomic ``os.replace``, so a crash mid-write leaves the previous file
    intact. File I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def read(self) -> Optional[Document]:
        return await asyncio.to_thread(self._read)

    async def write(self, document: Document) -> None:
        text = json.dumps(document, ensure_ascii=False, indent=2, sort_keys=True)
        await asyncio.to_thread(self._write, text)
        logger.debug("State file written", path=str(self.path), bytes=len(text))

    def _read(self) -> Optional[Document]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"Cannot read state file {self.path}", path=str(self.path), cause=e) from e
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"State file {self.path} is not valid JSON (line {e.lineno})",
                path=str(self.path),
                cause=e,
                suggestions=["restore the file from a backup or move it aside"],
            ) from e
        if not isinstance(data, dict):
            raise PersistenceError(f"State file {self.path} does not hold an object", path=str(self.path))
        return data

    def _write(self, text: str) -> None:
        directory = self.path.parent
        temp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, self.path)
            temp_name = None
        except OSError as e:
            raise PersistenceError(f"Cannot write state file {self.path}", path=str(self.path), cause=e) from e
        finally:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)


class InMemoryBackend:
    """
    Backend that keeps documents in memory.

    Records every write in ``history`` and can be told to fail, which makes
    it the backend of choice for tests and throwaway sessions.
    """

    def __init__(self, document: Optional[Document] = None, write_delay: float = 0.0):
        self.document: Optional[Document] = copy.deepcopy(document)
        self.history: List[Document] = []
        self.write_delay = write_delay
        self.fail_writes = False
        self.in_flight = 0
        self.max_in_flight = 0

    async def read(self) -> Optional[Document]:
        return copy.deepcopy(self.document)

    async def write(self, document: Document) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.write_delay:
                await asyncio.sleep(self.write_delay)
            if self.fail_writes:
                raise PersistenceError("In-memory backend is set to fail writes")
            self.document = copy.deepcopy(document)
            self.history.append(self.document)
        finally:
            self.in_flight -= 1
