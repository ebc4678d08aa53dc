"""Upload service — turns an incoming byte stream into a shareable object."""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Iterable

from config import DEFAULT_EXPIRY, MAX_EXPIRY, MAX_UPLOAD_SIZE
from api.files.dto.file import FileObject
from api.files.repositories import files_repository
from api.files.services import token_service
from errors import StorageFailure, TooLarge
from storage import blob_store

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def parse_duration(expiry_str: str) -> timedelta | None:
    """Parse expiry string like '30m', '2h', '3d', '1w' into a timedelta."""
    if not expiry_str:
        return None

    match = re.match(r"^(\d+)([smhdw])$", expiry_str.strip().lower())
    if not match:
        return None

    value = int(match.group(1))
    unit = match.group(2)

    deltas = {
        "s": timedelta(seconds=value),
        "m": timedelta(minutes=value),
        "h": timedelta(hours=value),
        "d": timedelta(days=value),
        "w": timedelta(weeks=value),
    }

    return deltas[unit]


def parse_size(size_str: str) -> int:
    """Parse size string like '100MB', '1GB' into bytes."""
    if not size_str:
        return 0

    match = re.match(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)$", size_str.strip().upper())
    if not match:
        return 0

    value = float(match.group(1))
    unit = match.group(2)

    multipliers = {
        "B": 1,
        "KB": 1024,
        "MB": 1024**2,
        "GB": 1024**3,
        "TB": 1024**4,
    }

    return int(value * multipliers[unit])


def max_upload_bytes() -> int:
    return parse_size(MAX_UPLOAD_SIZE)


def resolve_expiry(
    ttl: timedelta | str | None, now: datetime
) -> datetime | None:
    """Work out expires_at from a requested TTL, the default and the ceiling."""
    if ttl is None:
        ttl = parse_duration(DEFAULT_EXPIRY)
        if ttl is None:
            return None
    elif isinstance(ttl, str):
        parsed = parse_duration(ttl)
        if parsed is None:
            raise ValueError(f"Invalid expiry: {ttl!r}")
        ttl = parsed

    if ttl <= timedelta(0):
        raise ValueError("Expiry must be positive")

    max_ttl = parse_duration(MAX_EXPIRY)
    if max_ttl and ttl > max_ttl:
        ttl = max_ttl

    return now + ttl


def upload(
    owner_id: str,
    stream: BinaryIO | Iterable[bytes],
    original_name: str,
    mime_type: str | None = None,
    size: int | None = None,
    ttl: timedelta | str | None = None,
    max_downloads: int | None = None,
) -> FileObject:
    """Store the blob, then record it in the ledger.

    The blob goes first so a ledger row never points at missing content; if the
    ledger write fails the blob is removed again before the error surfaces.
    """
    if not owner_id:
        raise ValueError("owner_id is required")
    if not original_name:
        raise ValueError("A filename is required")
    if max_downloads is not None and max_downloads < 1:
        raise ValueError("max_downloads must be a positive integer")

    limit = max_upload_bytes() or None
    if size is not None and limit is not None and size > limit:
        raise TooLarge(f"File exceeds max size of {MAX_UPLOAD_SIZE}")

    now = datetime.now(timezone.utc)
    expires_at = resolve_expiry(ttl, now)

    storage_key = uuid.uuid4().hex
    written = blob_store.put(storage_key, stream, max_bytes=limit)

    try:
        if size is not None and written != size:
            raise StorageFailure(f"Expected {size} bytes but received {written}")

        file = files_repository.create(
            owner_id=owner_id,
            storage_key=storage_key,
            original_name=original_name,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size_bytes=written,
            download_token=token_service.issue(),
            max_downloads=max_downloads,
            expires_at=expires_at,
        )
    except Exception:
        logger.warning("Upload of %s failed, removing blob %s", original_name, storage_key)
        try:
            blob_store.delete(storage_key)
        except StorageFailure:
            logger.exception(
                "Could not remove blob %s; the reaper will reclaim it", storage_key
            )
        raise

    logger.info(
        "Owner %s uploaded %s (%d bytes) as file %s", owner_id, original_name, written, file.id
    )
    return file
