"""
Tests for the filesystem document store.
"""

import pytest

from exceptions import DocumentStoreError
from importers.document_store import FileSystemDocumentStore


class TestFileSystemDocumentStore:
    """Test FileSystemDocumentStore."""

    @pytest.mark.asyncio
    async def test_read_missing(self, tmp_path):
        store = FileSystemDocumentStore(tmp_path)

        assert await store.read("nope.md") is None
        assert await store.exists("nope.md") is False

    @pytest.mark.asyncio
    async def test_write_creates_parent_directories(self, tmp_path):
        store = FileSystemDocumentStore(tmp_path)

        await store.write("references/2024/note.md", "# Hello\n")

        assert (tmp_path / "references" / "2024" / "note.md").read_text(encoding="utf-8") == "# Hello\n"
        assert await store.exists("references/2024/note.md") is True
        assert await store.read("/references/2024/note.md") == "# Hello\n"

    @pytest.mark.asyncio
    async def test_overwrite(self, tmp_path):
        store = FileSystemDocumentStore(tmp_path)

        await store.write("note.md", "first")
        await store.write("note.md", "second")

        assert await store.read("note.md") == "second"

    @pytest.mark.asyncio
    async def test_refuses_paths_outside_root(self, tmp_path):
        store = FileSystemDocumentStore(tmp_path / "vault")

        with pytest.raises(DocumentStoreError):
            await store.write("../outside.md", "x")
        assert not (tmp_path / "outside.md").exists()

    @pytest.mark.asyncio
    async def test_open_is_harmless(self, tmp_path):
        store = FileSystemDocumentStore(tmp_path)
        await store.open("note.md")
