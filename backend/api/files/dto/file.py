"""File Data Transfer Objects."""

from datetime import datetime

from pydantic import BaseModel


class FileObject(BaseModel):
    """A ledger row as seen by the services."""

    id: str
    owner_id: str
    storage_key: str
    original_name: str
    mime_type: str
    size_bytes: int
    download_token: str
    download_count: int
    max_downloads: int | None = None
    expires_at: datetime | None = None
    created_at: datetime
    deleted: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_exhausted(self) -> bool:
        return self.max_downloads is not None and self.download_count >= self.max_downloads


class FileResponse(BaseModel):
    id: str
    original_name: str
    size_bytes: int
    mime_type: str
    download_token: str
    download_count: int
    max_downloads: int | None = None
    expires_at: datetime | None = None
    created_at: datetime


class PublicFileInfo(BaseModel):
    original_name: str
    size_bytes: int
    mime_type: str
    download_count: int
    expires_at: datetime | None = None


class FileStats(BaseModel):
    total_files: int
    total_storage: int
    total_downloads: int
