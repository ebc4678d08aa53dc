"""Download controller — public, token-only routes."""

from typing import BinaryIO
from urllib.parse import quote

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from api.download.services import download_service
from api.files.dto.file import FileObject, PublicFileInfo
from api.files.services import files_service

router = APIRouter(prefix="/api/public", tags=["Download"])

CHUNK_SIZE = 1024 * 1024  # 1MB


def stream_response(file: FileObject, stream: BinaryIO) -> StreamingResponse:
    def iterfile():
        with stream:
            while chunk := stream.read(CHUNK_SIZE):
                yield chunk

    return StreamingResponse(
        iterfile(),
        media_type=file.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(file.original_name)}",
            "Content-Length": str(file.size_bytes),
        },
    )


@router.get("/{token}", response_model=PublicFileInfo)
def file_info(token: str):
    return files_service.public_info(token)


@router.get("/{token}/download")
def download_file(token: str) -> StreamingResponse:
    """Stream a file download. Each call uses one download of the quota."""
    file, stream = download_service.resolve_and_consume(token)
    return stream_response(file, stream)
