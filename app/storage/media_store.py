"""Local media storage for uploads and composed outputs."""

import os
import re
import uuid
from dataclasses import dataclass
from typing import Iterator, Optional

from fastapi import UploadFile

from app.errors import NotFoundError, StorageError

# Opaque ids are generated here; anything else is refused before touching disk
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9]{1,8})?$")


class UploadTooLargeError(Exception):
    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"File too large (max {limit_bytes // (1024 * 1024)} MB)")


@dataclass(frozen=True)
class StoredMedia:
    id: str
    size: int
    path: str


class MediaStore:
    """A flat directory of media files addressed by opaque ids."""

    def __init__(self, base_dir: str, kind: str = "file"):
        self._base_dir = os.path.abspath(base_dir)
        self._kind = kind
        os.makedirs(self._base_dir, exist_ok=True)

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def new_id(self, extension: str = "") -> str:
        ext = extension if re.fullmatch(r"\.[A-Za-z0-9]{1,8}", extension or "") else ""
        return f"{uuid.uuid4().hex}{ext.lower()}"

    def path_for(self, file_id: str) -> str:
        if not file_id or not _SAFE_ID.match(file_id):
            raise NotFoundError(self._kind, str(file_id))
        return os.path.join(self._base_dir, file_id)

    def resolve(self, file_id: str) -> str:
        """Resolve an id to an existing local path, or raise NotFoundError."""
        path = self.path_for(file_id)
        if not os.path.isfile(path):
            raise NotFoundError(self._kind, file_id)
        return path

    def exists(self, file_id: str) -> bool:
        try:
            self.resolve(file_id)
        except NotFoundError:
            return False
        return True

    async def save_upload(self, file: UploadFile, max_bytes: int) -> StoredMedia:
        """Stream an upload to disk in 1 MB chunks."""
        ext = os.path.splitext(file.filename or "")[1]
        file_id = self.new_id(ext)
        path = self.path_for(file_id)

        total = 0
        try:
            with open(path, "wb") as dst:
                while True:
                    chunk = await file.read(1024 * 1024)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > max_bytes:
                        raise UploadTooLargeError(max_bytes)
                    dst.write(chunk)
        except BaseException:
            remove_file(path)
            raise
        return StoredMedia(id=file_id, size=total, path=path)

    def iter_expired(self, cutoff_epoch: float) -> Iterator[str]:
        """Yield paths of regular files last modified before cutoff_epoch."""
        try:
            entries = list(os.scandir(self._base_dir))
        except FileNotFoundError:
            return
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False) and entry.stat().st_mtime < cutoff_epoch:
                    yield entry.path
            except FileNotFoundError:
                continue


def remove_file(path: Optional[str]) -> bool:
    """Delete a file. Idempotent: a missing file is not an error.

    Returns True if this call removed the file. Raises StorageError for
    any other filesystem failure.
    """
    if not path:
        return False
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageError(path, e.strerror or str(e)) from e
