"""Shared fixtures.

Environment variables are set BEFORE any application import so that
``config`` points the ledger and the blob store at a throwaway directory.
"""

import os
import tempfile

_DATA_DIR = tempfile.mkdtemp(prefix="anonlink-tests-")

os.environ.update({
    "DATA_DIR": _DATA_DIR,
    "DATABASE_URL": f"sqlite:///{_DATA_DIR}/test.db",
    "SECRET_KEY": "test-secret-key",
    "MAX_UPLOAD_SIZE": "1MB",
    "DEFAULT_EXPIRY": "24h",
    "MAX_EXPIRY": "7d",
    "CLEANUP_INTERVAL": "0",
    "ORPHAN_GRACE_SECONDS": "0",
    "DELETE_ON_EXHAUSTION": "false",
    "LOG_LEVEL": "WARNING",
})

import io
import shutil
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Now safe to import application code
import orm  # noqa: F401
from api.files.orm.file_model import FileModel
from api.upload.services import upload_service
from auth import issue_owner_token
from config import FILES_DIR
from database import Base, SessionLocal, engine


@pytest.fixture(autouse=True)
def _fresh_state():
    """Recreate the schema and empty the blob directory around every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    for entry in FILES_DIR.iterdir():
        if entry.is_dir():
            shutil.rmtree(entry)
        else:
            entry.unlink()
    yield


@pytest.fixture
def make_file():
    """Upload a file through the lifecycle service."""

    def _make(
        content: bytes = b"hello world",
        owner_id: str = "alice",
        name: str = "hello.txt",
        mime_type: str = "text/plain",
        **kwargs,
    ):
        return upload_service.upload(
            owner_id=owner_id,
            stream=io.BytesIO(content),
            original_name=name,
            mime_type=mime_type,
            size=len(content),
            **kwargs,
        )

    return _make


@pytest.fixture
def expire():
    """Move a file's expiry into the past without waiting for it."""

    def _expire(file_id: str, ago: timedelta = timedelta(minutes=1)):
        with SessionLocal() as session:
            model = session.get(FileModel, file_id)
            model.expires_at = datetime.now(timezone.utc) - ago
            session.commit()

    return _expire


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def owner_headers():
    def _headers(owner_id: str = "alice") -> dict:
        return {"Authorization": f"Bearer {issue_owner_token(owner_id)}"}

    return _headers
