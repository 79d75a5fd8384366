"""
Tests for storage backends.
"""
import json

import pytest

from core.errors import PersistenceError
from persistence.backends import InMemoryBackend, JsonFileBackend, StorageBackend


class TestJsonFileBackend:

    @pytest.mark.asyncio
    async def test_missing_file_reads_none(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "state.json")
        assert await backend.read() is None

    @pytest.mark.asyncio
    async def test_write_then_read(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "nested" / "state.json")
        document = {"version": 1, "translation": "KJV", "notes": ["Ünïcode"]}
        await backend.write(document)
        assert await backend.read() == document
        assert not [p for p in (tmp_path / "nested").iterdir() if p.name.endswith(".tmp")]

    @pytest.mark.asyncio
    async def test_write_replaces_previous(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "state.json")
        await backend.write({"version": 1})
        await backend.write({"version": 2})
        assert json.loads((tmp_path / "state.json").read_text(encoding="utf-8")) == {"version": 2}

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError) as exc_info:
            await JsonFileBackend(path).read()
        assert exc_info.value.path == str(path)

    @pytest.mark.asyncio
    async def test_non_object_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await JsonFileBackend(path).read()

    @pytest.mark.asyncio
    async def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await JsonFileBackend(blocker / "state.json").write({"version": 1})

    def test_is_a_storage_backend(self, tmp_path):
        assert isinstance(JsonFileBackend(tmp_path / "x.json"), StorageBackend)
        assert isinstance(InMemoryBackend(), StorageBackend)


class TestInMemoryBackend:

    @pytest.mark.asyncio
    async def test_documents_are_copied(self):
        backend = InMemoryBackend()
        document = {"items": [1]}
        await backend.write(document)
        document["items"].append(2)
        assert (await backend.read()) == {"items": [1]}
        assert backend.history == [{"items": [1]}]

    @pytest.mark.asyncio
    async def test_fail_writes(self):
        backend = InMemoryBackend()
        backend.fail_writes = True
        with pytest.raises(PersistenceError):
            await backend.write({})
        assert backend.in_flight == 0
