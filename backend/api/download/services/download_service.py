"""Download service — the access gate for public, token-only downloads."""

import logging
from datetime import datetime, timezone
from typing import BinaryIO

from config import DELETE_ON_EXHAUSTION
from api.files.dto.file import FileObject
from api.files.repositories import files_repository
from api.files.services import files_service
from cleanup import reaper
from errors import BlobMissing, Conflict, Expired, LifecycleError, NotFound, QuotaExceeded
from storage import blob_store

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _resolve(token: str) -> FileObject:
    file = files_repository.get_by_token(token)
    if file is None:
        raise NotFound("File not found")
    if file.is_expired(_now()):
        reaper.hint(file.id)
        raise Expired("File has expired")
    return file


def _consume(file: FileObject) -> int:
    """Take one unit of quota and return the new download count.

    Every statement is guarded by the token the caller presented, so a link
    regenerated or deleted mid-request stops granting immediately. A Conflict
    means another writer committed first: re-read and check again. Each retry
    follows someone else's progress, and the quota bounds the loop.
    """
    token = file.download_token
    while True:
        try:
            if file.max_downloads is None:
                return files_repository.increment_download_count(file.id, _now(), token)
            if file.download_count >= file.max_downloads:
                raise QuotaExceeded("Download limit reached")
            return files_repository.compare_and_increment_download_count(
                file.id, file.download_count, _now(), token
            )
        except Conflict:
            file = _resolve(token)


def resolve_and_consume(token: str) -> tuple[FileObject, BinaryIO]:
    """Resolve a public token to an open content stream, consuming one download.

    The count records grants issued, not bytes delivered: a client that aborts
    the stream has still used its download.
    """
    file = _resolve(token)

    # Open before committing: the handle survives a blob removal that follows
    try:
        stream = blob_store.open(file.storage_key)
    except BlobMissing:
        _resolve(token)
        logger.error("Blob %s of live file %s is missing", file.storage_key, file.id)
        raise

    try:
        count = _consume(file)
    except BaseException:
        stream.close()
        raise

    file = file.model_copy(update={"download_count": count})
    logger.info("Granted download %d of file %s", count, file.id)

    if DELETE_ON_EXHAUSTION and file.is_exhausted():
        try:
            files_service.destroy(file)
            logger.info("File %s reached its download limit and was removed", file.id)
        except LifecycleError:
            logger.warning("Could not remove exhausted file %s", file.id, exc_info=True)

    return file, stream
