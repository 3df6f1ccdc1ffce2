"""
Blob Storage

Filesystem-backed storage for raw uploaded files.

Layout
------
- Every file lives under BLOB_ROOT/{user_id}/{document_id}-{file_name}
- Storage paths are relative to the root and are what documents record

Security
--------
- Path components are validated to prevent traversal outside the root
- File names are reduced to a safe character set before use
"""

from __future__ import annotations

import asyncio
import re
import uuid
from pathlib import Path

from ..config import settings


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

USER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_.@|-]{1,128}$")
UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._ -]")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class InvalidBlobPathError(ValueError):
    """Raised when a storage path escapes the root or is malformed."""


class BlobNotFoundError(FileNotFoundError):
    """Raised when a stored file does not exist."""


# ---------------------------------------------------------------------
# Path Utilities
# ---------------------------------------------------------------------

def safe_file_name(file_name: str) -> str:
    """
    Reduce an uploaded file name to a safe, non-empty basename.
    """
    base = Path(file_name or "").name
    cleaned = UNSAFE_NAME_CHARS.sub("_", base).strip(" .")
    return cleaned[:200] or "upload"


def build_storage_path(user_id: str, document_id: uuid.UUID, file_name: str) -> str:
    """
    Build the relative storage path for a new upload.

    Raises
    ------
    InvalidBlobPathError
        If user_id contains characters unsafe for a directory name.
    """
    if not USER_ID_PATTERN.match(user_id or "") or user_id in (".", ".."):
        raise InvalidBlobPathError(f"Invalid user id for storage: '{user_id}'")
    return f"{user_id}/{document_id}-{safe_file_name(file_name)}"


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class BlobStore:
    """
    Async facade over a directory of raw files.

    Disk I/O runs in worker threads so the event loop is never blocked.
    """

    def __init__(self, root: str | None = None) -> None:
        self.root = Path(root or settings.blob_root).resolve()

    def _resolve(self, storage_path: str) -> Path:
        candidate = (self.root / storage_path).resolve()
        if self.root not in candidate.parents:
            raise InvalidBlobPathError(f"Storage path escapes blob root: '{storage_path}'")
        return candidate

    async def save(self, storage_path: str, data: bytes) -> None:
        path = self._resolve(storage_path)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    async def read(self, storage_path: str) -> bytes:
        """
        Return the stored bytes.

        Raises
        ------
        BlobNotFoundError
            If nothing is stored at ``storage_path``.
        """
        path = self._resolve(storage_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"File not found in storage: {storage_path}") from exc

    async def delete(self, storage_path: str) -> bool:
        path = self._resolve(storage_path)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_unlink)
