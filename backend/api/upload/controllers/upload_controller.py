"""Upload controller — handles file uploads via PUT."""

import tempfile

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from auth import current_owner
from api.upload.dto.upload import UploadResponse
from api.upload.services import upload_service
from errors import TooLarge

router = APIRouter(prefix="/api/files", tags=["Upload"])

SPOOL_MAX_MEMORY = 1024 * 1024  # 1MB


@router.put("/{filename:path}", response_model=UploadResponse, status_code=201)
async def upload_file(
    request: Request,
    filename: str,
    owner_id: str = Depends(current_owner),
):
    """Upload a file via streaming PUT request."""
    expires = request.headers.get("X-Expires") or None
    max_downloads_str = request.headers.get("X-Max-Downloads")
    try:
        max_downloads = int(max_downloads_str) if max_downloads_str else None
    except ValueError:
        raise ValueError("X-Max-Downloads must be an integer")
    length = request.headers.get("Content-Length")
    size = int(length) if length and length.isdigit() else None
    mime_type = request.headers.get("Content-Type") or None

    limit = upload_service.max_upload_bytes()
    if size is not None and limit and size > limit:
        raise TooLarge("File exceeds the maximum upload size")

    # Spool the body so the storage write runs off the event loop
    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY) as spool:
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if limit and received > limit:
                raise TooLarge("File exceeds the maximum upload size")
            spool.write(chunk)
        spool.seek(0)

        file = await run_in_threadpool(
            upload_service.upload,
            owner_id=owner_id,
            stream=spool,
            original_name=filename,
            mime_type=mime_type,
            size=size,
            ttl=expires,
            max_downloads=max_downloads,
        )

    base_url = str(request.base_url).rstrip("/")
    return UploadResponse(
        id=file.id,
        download_token=file.download_token,
        url=f"{base_url}/api/public/{file.download_token}",
        original_name=file.original_name,
        size_bytes=file.size_bytes,
        mime_type=file.mime_type,
        expires_at=file.expires_at,
        max_downloads=file.max_downloads,
    )
