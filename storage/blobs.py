"""Blob storage for badge image bytes.

Each badge is written once to a file named by its content hash. Files are
written to a temporary name, fsynced, and renamed into place, so a reader
never observes a partially written badge.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from storage.button_store import StoreError

logger = logging.getLogger(__name__)


class BlobStore:
    """Content-addressed file store.

    Attributes:
        root: Directory holding one file per badge hash.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, sha256_hash: str) -> Path:
        """Return the path a blob is stored at.

        Raises:
            ValueError: If the hash contains anything but hex digits.
        """
        if not sha256_hash or any(c not in "0123456789abcdef" for c in sha256_hash):
            raise ValueError(f"Invalid blob hash: {sha256_hash!r}")
        return self.root / sha256_hash

    def exists(self, sha256_hash: str) -> bool:
        return self.path_for(sha256_hash).is_file()

    def write(self, sha256_hash: str, content: bytes) -> Path:
        """Durably write a blob unless it already exists.

        Args:
            sha256_hash: Content hash naming the blob.
            content: Raw image bytes.

        Returns:
            Path of the stored blob.

        Raises:
            StoreError: If the bytes could not be written and flushed.
        """
        target = self.path_for(sha256_hash)
        if target.is_file():
            return target

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{sha256_hash}.")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to write blob {sha256_hash}: {e}")
            raise StoreError(f"Failed to write blob {sha256_hash}: {e}") from e

        logger.debug(f"Wrote blob {target} ({len(content)} bytes)")
        return target

    def read(self, sha256_hash: str) -> bytes:
        """Read a blob's bytes.

        Raises:
            FileNotFoundError: If no blob exists for the hash.
        """
        return self.path_for(sha256_hash).read_bytes()

    def open(self, sha256_hash: str) -> BinaryIO:
        """Open a blob for streaming reads."""
        return self.path_for(sha256_hash).open("rb")
