"""Anonlink — Main application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import log_config
from api.download.controllers.download_controller import router as download_router
from api.files.controllers.files_controller import router as files_router
from api.upload.controllers.upload_controller import router as upload_router
from cleanup import reaper
from config import DATABASE_URL
from errors import (
    Conflict,
    Expired,
    Forbidden,
    LifecycleError,
    NotFound,
    QuotaExceeded,
    StorageFailure,
    TooLarge,
)

log_config.configure()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    Forbidden: 403,
    Expired: 410,
    QuotaExceeded: 410,
    Conflict: 409,
    TooLarge: 413,
    StorageFailure: 503,
}


def run_migrations():
    """Run Alembic migrations on startup."""
    try:
        alembic_ini = Path(__file__).parent / "alembic.ini"
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option(
            "script_location", str(Path(__file__).parent / "db_migrations")
        )
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))
        command.upgrade(alembic_cfg, "head")
    except Exception:
        logger.warning("Migration failed, creating tables directly", exc_info=True)
        from database import init_db

        init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    run_migrations()
    reaper.start()
    yield
    reaper.stop()


app = FastAPI(title="Anonlink", version="0.1.0", lifespan=lifespan)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    status_code = next(
        (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500
    )
    if isinstance(exc, StorageFailure):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        detail = "Storage temporarily unavailable"
    else:
        detail = str(exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/api/health")
async def health():
    return {"status": "ok"}


app.include_router(files_router)
app.include_router(download_router)
# Catch-all PUT /api/files/{filename}
app.include_router(upload_router)
