"""
Vault document store.

Abstract interface over the host note store plus a filesystem-backed
implementation. Paths are vault-relative with forward slashes.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from exceptions import DocumentStoreError

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Abstract base class for note stores."""

    @abstractmethod
    async def read(self, path: str) -> Optional[str]:
        """Return the note text, or None when the note does not exist."""
        pass

    @abstractmethod
    async def write(self, path: str, text: str) -> None:
        """Create or overwrite a note, creating missing parent folders first."""
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    async def open(self, path: str) -> None:
        """Show the note to the user. Stores without a UI do nothing."""
        logger.info(f"Note ready: {path}")


class FileSystemDocumentStore(DocumentStore):
    """Notes stored as UTF-8 files under a vault root directory."""

    def __init__(self, root: Union[str, Path], encoding: str = "utf-8"):
        self.root = Path(root).resolve()
        self.encoding = encoding

    def resolve(self, path: str) -> Path:
        """Absolute path for a vault-relative path; refuses to leave the root."""
        target = (self.root / path.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise DocumentStoreError(path, "path escapes the vault root")
        return target

    def _read(self, target: Path) -> Optional[str]:
        if not target.is_file():
            return None
        return target.read_text(encoding=self.encoding)

    def _write(self, target: Path, text: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding=self.encoding)

    async def read(self, path: str) -> Optional[str]:
        target = self.resolve(path)
        try:
            return await asyncio.to_thread(self._read, target)
        except OSError as e:
            raise DocumentStoreError(path, str(e)) from e

    async def write(self, path: str, text: str) -> None:
        target = self.resolve(path)
        try:
            await asyncio.to_thread(self._write, target, text)
        except OSError as e:
            raise DocumentStoreError(path, str(e)) from e
        logger.info(f"Wrote {target}")

    async def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()
