"""Upload Data Transfer Objects."""

from datetime import datetime

from pydantic import BaseModel


class UploadResponse(BaseModel):
    id: str
    download_token: str
    url: str
    original_name: str
    size_bytes: int
    mime_type: str
    expires_at: datetime | None = None
    max_downloads: int | None = None
