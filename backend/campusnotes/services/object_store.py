"""
CampusNotes Backend: Object Store Adapter
===========================================

What:  Durable blob storage for note PDFs and preview JPEGs, keyed by
       relative object keys such as `notes/uploaded/<id>.pdf`.
How:   Local directory rooted at STATIC_FILE_STORAGE_LOCATION, served by an
       external static file server under STATIC_FILES_URL.
Who:   Called by NoteService during the upload workflow and by the
       reconciliation sweep.

Write protocol:
    Content is written to a sibling temp file and moved into place with
    os.replace, so readers never observe a partially written object. Parent
    directories are created idempotently on every write.
"""

import logging
import uuid
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os

from campusnotes.config import Settings
from campusnotes.exceptions import FileStorageError

logger = logging.getLogger(__name__)

TEMP_MARKER = ".tmp-"


class ObjectStore:
    """
    Key-addressed file storage.

    Directory Structure:
        <storage root>/
        ├── notes/uploaded/<note id>.pdf
        └── previews/uploaded/<note id>.jpg
    """

    def __init__(self, config: Settings):
        self.root = Path(config.static_file_storage_location).resolve()
        self.base_url = config.static_files_url.rstrip("/")
        self.notes_prefix = config.uploaded_notes_path
        self.previews_prefix = config.previews_path
        logger.info("ObjectStore initialized with root=%s", self.root)

    # ── Key Helpers ───────────────────────────────────────────────────────

    def note_key(self, note_id: uuid.UUID) -> str:
        return f"{self.notes_prefix}/{note_id}.pdf"

    def preview_key(self, note_id: uuid.UUID) -> str:
        return f"{self.previews_prefix}/{note_id}.jpg"

    def local_path_for(self, key: str) -> Path:
        """
        Absolute filesystem path of an object.

        Raises:
            FileStorageError if the key escapes the storage root.
        """
        path = (self.root / key.lstrip("/")).resolve()
        if path != self.root and self.root not in path.parents:
            raise FileStorageError(
                message="Invalid object key",
                context={"key": key},
            )
        return path

    def url_for(self, key: str) -> str:
        """Public URL: base URL joined with the key."""
        return f"{self.base_url}/{key.lstrip('/')}"

    # ── Operations ────────────────────────────────────────────────────────

    async def write(self, key: str, content: bytes) -> Path:
        """
        Atomically store `content` under `key`.

        Returns:
            The absolute path of the stored object.

        Raises:
            FileStorageError if directory creation, the write or the rename
            fails. A leftover temp file is removed on a best-effort basis.
        """
        path = self.local_path_for(key)
        tmp_path = path.with_name(f"{path.name}{TEMP_MARKER}{uuid.uuid4().hex}")

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(content)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Failed to store object %s: %s", key, str(e))
            await self._discard(tmp_path)
            raise FileStorageError(
                message="Failed to save file",
                context={"key": key, "os_error": str(e)},
            )

        logger.info("Object stored: %s (%d bytes)", key, len(content))
        return path

    async def delete(self, key: str) -> bool:
        """
        Remove an object. Missing objects are not an error.

        Returns:
            True if a file was removed.
        """
        path = self.local_path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("Delete: object already gone: %s", key)
            return False
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete file",
                context={"key": key, "os_error": str(e)},
            )
        logger.info("Object deleted: %s", key)
        return True

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self.local_path_for(key))

    async def modified_at(self, key: str) -> float:
        """Last modification time of an object as a POSIX timestamp."""
        stat = await aiofiles.os.stat(self.local_path_for(key))
        return stat.st_mtime

    async def list_keys(self, prefix: str) -> List[str]:
        """
        Keys of all committed objects directly under `prefix`.

        In-progress temp files are skipped. A missing prefix directory
        yields an empty list.
        """
        directory = self.local_path_for(prefix)
        try:
            names = await aiofiles.os.listdir(directory)
        except FileNotFoundError:
            return []
        prefix = prefix.strip("/")
        return sorted(
            f"{prefix}/{name}"
            for name in names
            if TEMP_MARKER not in name and (directory / name).is_file()
        )

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to clean up temp file %s: %s", path.name, str(e))

