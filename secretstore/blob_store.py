"""
Key-value blob persistence.

The credential store and the secondary's snapshot cache only need "save these
bytes under this key" and "give them back". JSONFileBlobStore keeps one file
per key under a directory; MemoryBlobStore is for tests and throwaway runs.
"""

import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Stored bytes for key, or None."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryBlobStore(BlobStore):
    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._blobs[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)


class JSONFileBlobStore(BlobStore):
    """
    One `<key>.json` file per key inside `directory`.

    - If the file already exists, the previous version is copied to
      `<key>.json.bak` before writing.
    - Writes go to a temp file in the same directory and are moved into place
      with os.replace(), so a reader never sees a half-written blob.
    - The directory is created with mode 0o700; secrets live in here.
    """

    def __init__(self, directory: str):
        self.directory = os.path.expanduser(directory)
        os.makedirs(self.directory, mode=0o700, exist_ok=True)

    def _path(self, key: str) -> str:
        if not key or os.sep in key or key.startswith("."):
            raise ValueError(f"invalid blob key {key!r}")
        return os.path.join(self.directory, key + ".json")

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        if os.path.exists(path):
            shutil.copy2(path, path + ".bak")

        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix="." + key, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug("Saved blob %s (%d bytes)", key, len(value))

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.unlink(path)
