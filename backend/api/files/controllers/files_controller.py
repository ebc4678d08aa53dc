"""Files controller — owner routes for file management."""

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from auth import current_owner
from api.download.controllers.download_controller import stream_response
from api.files.dto.file import FileResponse, FileStats
from api.files.services import files_service

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get("", response_model=list[FileResponse])
def list_files(owner_id: str = Depends(current_owner)):
    return [files_service.to_response(f) for f in files_service.list_files(owner_id)]


@router.get("/stats", response_model=FileStats)
def get_stats(owner_id: str = Depends(current_owner)):
    return files_service.get_stats(owner_id)


@router.get("/{file_id}", response_model=FileResponse)
def get_file(file_id: str, owner_id: str = Depends(current_owner)):
    return files_service.to_response(files_service.get_file(owner_id, file_id))


@router.get("/{file_id}/download")
def download_own_file(file_id: str, owner_id: str = Depends(current_owner)) -> StreamingResponse:
    file, stream = files_service.open_for_owner(owner_id, file_id)
    return stream_response(file, stream)


@router.post("/{file_id}/regenerate-link", response_model=FileResponse)
def regenerate_link(file_id: str, owner_id: str = Depends(current_owner)):
    return files_service.to_response(files_service.regenerate_token(owner_id, file_id))


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(file_id: str, owner_id: str = Depends(current_owner)):
    files_service.delete_file(owner_id, file_id)
