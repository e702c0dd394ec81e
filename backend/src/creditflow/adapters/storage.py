"""Object storage for job input and output text."""
import asyncio
from pathlib import Path

import structlog

from creditflow.exceptions import StorageError

logger = structlog.get_logger(__name__)


class LocalObjectStorage:
    """
    Filesystem-backed object storage.

    References are paths relative to ``root`` and are treated as opaque by
    callers. File I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, root: str | Path):
        """Initialize storage rooted at ``root``."""
        self.root = Path(root).resolve()

    def _resolve(self, reference: str) -> Path:
        path = (self.root / reference).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Reference escapes storage root: {reference}", context={"reference": reference})
        return path

    async def put(self, path: str, content: str) -> str:
        """
        Store text content.

        Args:
            path: Relative object path (e.g. ``jobs/<id>/input.txt``)
            content: Text to write

        Returns:
            Reference to pass to ``get``

        Raises:
            StorageError: If the path is invalid or the write fails
        """
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", context={"reference": path}) from e

        logger.debug("storage_object_written", reference=path, size=len(content))
        return path

    async def get(self, reference: str) -> str:
        """
        Read text content.

        Raises:
            StorageError: If the reference is invalid or cannot be read
        """
        source = self._resolve(reference)
        try:
            return await asyncio.to_thread(source.read_text, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {reference}: {e}", context={"reference": reference}) from e
