"""Blob store — opaque content storage on the local filesystem.

Objects are addressed by a storage key chosen by the caller. Writes go to a
temporary file in the store root and are moved into place once complete, so a
key is either absent or fully written.
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from config import FILES_DIR
from errors import BlobMissing, StorageFailure, TooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB
TMP_PREFIX = ".upload-"


def _iter_chunks(stream: BinaryIO | Iterable[bytes]) -> Iterator[bytes]:
    if hasattr(stream, "read"):
        while chunk := stream.read(CHUNK_SIZE):
            yield chunk
    else:
        for chunk in stream:
            if chunk:
                yield chunk


class LocalBlobStore:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / key

    def put(
        self,
        key: str,
        stream: BinaryIO | Iterable[bytes],
        max_bytes: int | None = None,
    ) -> int:
        """Write the stream under key and return the number of bytes stored.

        Raises TooLarge as soon as more than max_bytes arrive; nothing is left
        behind in that case.
        """
        final_path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=TMP_PREFIX, dir=str(self.root))
        except OSError as e:
            raise StorageFailure(f"Cannot create blob {key}: {e}") from e

        size = 0
        try:
            with os.fdopen(fd, "wb") as tmp:
                for chunk in _iter_chunks(stream):
                    size += len(chunk)
                    if max_bytes is not None and size > max_bytes:
                        raise TooLarge(f"Upload exceeds {max_bytes} bytes")
                    tmp.write(chunk)
            os.replace(tmp_name, final_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageFailure(f"Cannot write blob {key}: {e}") from e
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return size

    def open(self, key: str) -> BinaryIO:
        """Open a read stream. The handle stays valid if the blob is deleted afterwards."""
        try:
            return open(self._path(key), "rb")
        except FileNotFoundError as e:
            raise BlobMissing(f"Blob {key} not found") from e
        except OSError as e:
            raise StorageFailure(f"Cannot read blob {key}: {e}") from e

    def delete(self, key: str) -> bool:
        """Remove the blob. Returns False if it was already gone."""
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageFailure(f"Cannot delete blob {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def _entries(self, older_than: float | None) -> Iterator[Path]:
        cutoff = time.time() - older_than if older_than is not None else None
        for entry in self.root.iterdir():
            if not entry.is_file():
                continue
            if cutoff is not None and entry.stat().st_mtime > cutoff:
                continue
            yield entry

    def keys(self, older_than: float | None = None) -> Iterator[str]:
        """Yield stored keys, optionally only those written more than older_than seconds ago."""
        for entry in self._entries(older_than):
            if not entry.name.startswith(TMP_PREFIX):
                yield entry.name

    def purge_partial(self, older_than: float) -> int:
        """Remove temporary files left behind by interrupted writes."""
        count = 0
        for entry in self._entries(older_than):
            if entry.name.startswith(TMP_PREFIX):
                entry.unlink(missing_ok=True)
                count += 1
        return count


blob_store = LocalBlobStore(FILES_DIR)
