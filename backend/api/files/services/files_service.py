"""Files service — owner-scoped lifecycle operations and public file info."""

import logging
from datetime import datetime, timezone
from typing import BinaryIO

from config import REGENERATE_MAX_ATTEMPTS
from api.files.dto.file import FileObject, FileResponse, FileStats, PublicFileInfo
from api.files.repositories import files_repository
from api.files.services import token_service
from errors import Conflict, Expired, Forbidden, NotFound, StorageFailure
from storage import blob_store

logger = logging.getLogger(__name__)


def to_response(file: FileObject) -> FileResponse:
    return FileResponse(**file.model_dump(include=set(FileResponse.model_fields)))


def _get_owned(owner_id: str, file_id: str) -> FileObject:
    file = files_repository.get_by_id(file_id)
    if not file:
        raise NotFound(f"File {file_id} not found")
    if file.owner_id != owner_id:
        raise Forbidden(f"File {file_id} belongs to another owner")
    return file


def list_files(owner_id: str) -> list[FileObject]:
    return files_repository.list_by_owner(owner_id)


def get_file(owner_id: str, file_id: str) -> FileObject:
    return _get_owned(owner_id, file_id)


def open_for_owner(owner_id: str, file_id: str) -> tuple[FileObject, BinaryIO]:
    """Owner download. Does not touch the download count.

    The row is checked again once the blob is open, so a delete that lands in
    between never has its content served.
    """
    file = _get_owned(owner_id, file_id)
    stream = blob_store.open(file.storage_key)
    if files_repository.get_by_id(file_id) is None:
        stream.close()
        raise NotFound(f"File {file_id} not found")
    return file, stream


def destroy(file: FileObject) -> None:
    """Tombstone the row, then remove the blob.

    The tombstone must land first so the access gate stops granting before the
    content disappears.
    """
    files_repository.mark_deleted(file.id)
    try:
        blob_store.delete(file.storage_key)
    except StorageFailure:
        logger.warning(
            "File %s deleted but blob %s could not be removed; the reaper will reclaim it",
            file.id,
            file.storage_key,
        )
        raise


def delete_file(owner_id: str, file_id: str) -> None:
    file = _get_owned(owner_id, file_id)
    destroy(file)
    logger.info("Owner %s deleted file %s", owner_id, file_id)


def regenerate_token(owner_id: str, file_id: str) -> FileObject:
    """Replace the download token; the old link stops resolving at once.

    Count and quota are kept. Retries a few times when another regenerate races.
    """
    for attempt in range(1, REGENERATE_MAX_ATTEMPTS + 1):
        file = _get_owned(owner_id, file_id)
        new_token = token_service.issue()
        try:
            files_repository.replace_token(file.id, file.download_token, new_token)
        except Conflict:
            logger.debug("Regenerate of %s lost a race (attempt %d)", file_id, attempt)
            continue
        logger.info("Owner %s regenerated the link of file %s", owner_id, file_id)
        return file.model_copy(update={"download_token": new_token})
    raise Conflict(f"Could not regenerate the link of {file_id}, try again")


def public_info(token: str) -> PublicFileInfo:
    """Landing-page metadata. Read-only; consumes no quota."""
    file = files_repository.get_by_token(token)
    if not file:
        raise NotFound("File not found")
    if file.is_expired(datetime.now(timezone.utc)):
        raise Expired("File has expired")
    return PublicFileInfo(
        original_name=file.original_name,
        size_bytes=file.size_bytes,
        mime_type=file.mime_type,
        download_count=file.download_count,
        expires_at=file.expires_at,
    )


def get_stats(owner_id: str) -> FileStats:
    files = files_repository.list_by_owner(owner_id)
    return FileStats(
        total_files=len(files),
        total_storage=files_repository.get_total_storage(owner_id),
        total_downloads=sum(f.download_count for f in files),
    )
