"""Files repository — the object ledger.

All quota and token mutations are single conditional UPDATE statements, so
concurrent writers (threads or separate processes sharing the database) are
serialized by the database rather than by in-process locks.
"""

from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import SessionLocal
from api.files.orm.file_model import FileModel
from api.files.dto.file import FileObject
from errors import Conflict, NotFound, StorageFailure


@contextmanager
def _get_session():
    session = SessionLocal()
    try:
        yield session
    except IntegrityError as e:
        session.rollback()
        raise Conflict("Download token already in use") from e
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageFailure(f"Ledger operation failed: {e}") from e
    finally:
        session.close()


def _as_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _model_to_dto(model: FileModel) -> FileObject:
    return FileObject(
        id=model.id,
        owner_id=model.owner_id,
        storage_key=model.storage_key,
        original_name=model.original_name,
        mime_type=model.mime_type,
        size_bytes=model.size_bytes or 0,
        download_token=model.download_token,
        download_count=model.download_count or 0,
        max_downloads=model.max_downloads,
        expires_at=_as_utc(model.expires_at),
        created_at=_as_utc(model.created_at),
        deleted=bool(model.deleted),
    )


def _live():
    return FileModel.deleted.is_(False)


def _not_expired(now: datetime):
    return or_(FileModel.expires_at.is_(None), FileModel.expires_at > now)


def create(
    owner_id: str,
    storage_key: str,
    original_name: str,
    mime_type: str,
    size_bytes: int,
    download_token: str,
    max_downloads: int | None = None,
    expires_at: datetime | None = None,
) -> FileObject:
    """Insert a new row. Raises Conflict if a live row already holds the token."""
    with _get_session() as session:
        model = FileModel(
            owner_id=owner_id,
            storage_key=storage_key,
            original_name=original_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            download_token=download_token,
            download_count=0,
            max_downloads=max_downloads,
            expires_at=expires_at,
        )
        session.add(model)
        session.commit()
        session.refresh(model)
        return _model_to_dto(model)


def get_by_id(file_id: str, include_deleted: bool = False) -> FileObject | None:
    with _get_session() as session:
        query = session.query(FileModel).filter(FileModel.id == file_id)
        if not include_deleted:
            query = query.filter(_live())
        model = query.first()
        return _model_to_dto(model) if model else None


def get_by_token(token: str) -> FileObject | None:
    with _get_session() as session:
        model = (
            session.query(FileModel)
            .filter(FileModel.download_token == token, _live())
            .first()
        )
        return _model_to_dto(model) if model else None


def list_by_owner(owner_id: str) -> list[FileObject]:
    with _get_session() as session:
        models = (
            session.query(FileModel)
            .filter(FileModel.owner_id == owner_id, _live())
            .order_by(FileModel.created_at.desc())
            .all()
        )
        return [_model_to_dto(m) for m in models]


def _downloadable(file_id: str, now: datetime, download_token: str | None):
    conditions = [FileModel.id == file_id, _live(), _not_expired(now)]
    if download_token is not None:
        conditions.append(FileModel.download_token == download_token)
    return conditions


def compare_and_increment_download_count(
    file_id: str,
    expected_count: int,
    now: datetime,
    download_token: str | None = None,
) -> int:
    """Increment the count only if it still equals expected_count.

    The same statement re-checks that the row is live, unexpired, below its
    quota and (when given) still reachable through download_token. Raises
    Conflict when any of those no longer hold.
    """
    with _get_session() as session:
        updated = (
            session.query(FileModel)
            .filter(
                *_downloadable(file_id, now, download_token),
                FileModel.download_count == expected_count,
                or_(
                    FileModel.max_downloads.is_(None),
                    FileModel.download_count < FileModel.max_downloads,
                ),
            )
            .update(
                {FileModel.download_count: FileModel.download_count + 1},
                synchronize_session=False,
            )
        )
        session.commit()
        if updated != 1:
            raise Conflict(f"Download count of {file_id} changed concurrently")
        return expected_count + 1


def increment_download_count(
    file_id: str, now: datetime, download_token: str | None = None
) -> int:
    """Unconditional atomic increment for objects without a quota."""
    with _get_session() as session:
        updated = (
            session.query(FileModel)
            .filter(*_downloadable(file_id, now, download_token))
            .update(
                {FileModel.download_count: FileModel.download_count + 1},
                synchronize_session=False,
            )
        )
        if updated != 1:
            session.rollback()
            raise Conflict(f"{file_id} is no longer downloadable")
        count = (
            session.query(FileModel.download_count)
            .filter(FileModel.id == file_id)
            .scalar()
        )
        session.commit()
        return count


def replace_token(file_id: str, old_token: str, new_token: str) -> None:
    """Swap the download token. Raises Conflict if old_token no longer matches."""
    with _get_session() as session:
        updated = (
            session.query(FileModel)
            .filter(
                FileModel.id == file_id,
                FileModel.download_token == old_token,
                _live(),
            )
            .update(
                {FileModel.download_token: new_token},
                synchronize_session=False,
            )
        )
        session.commit()
        if updated != 1:
            raise Conflict(f"Token of {file_id} changed concurrently")


def mark_deleted(file_id: str) -> None:
    """Tombstone the row. Idempotent; raises NotFound only if the row never existed."""
    with _get_session() as session:
        updated = (
            session.query(FileModel)
            .filter(FileModel.id == file_id, _live())
            .update(
                {
                    FileModel.deleted: True,
                    FileModel.deleted_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        session.commit()
        if updated == 1:
            return
        exists = session.query(FileModel.id).filter(FileModel.id == file_id).first()
        if exists is None:
            raise NotFound(f"File {file_id} not found")


def get_expired(now: datetime) -> list[FileObject]:
    with _get_session() as session:
        models = (
            session.query(FileModel)
            .filter(
                _live(),
                FileModel.expires_at.isnot(None),
                FileModel.expires_at <= now,
            )
            .all()
        )
        return [_model_to_dto(m) for m in models]


def get_exhausted() -> list[FileObject]:
    with _get_session() as session:
        models = (
            session.query(FileModel)
            .filter(
                _live(),
                FileModel.max_downloads.isnot(None),
                FileModel.download_count >= FileModel.max_downloads,
            )
            .all()
        )
        return [_model_to_dto(m) for m in models]


def storage_key_in_use(storage_key: str) -> bool:
    with _get_session() as session:
        return (
            session.query(FileModel.id)
            .filter(FileModel.storage_key == storage_key, _live())
            .first()
            is not None
        )


def get_total_storage(owner_id: str) -> int:
    with _get_session() as session:
        total = (
            session.query(func.sum(FileModel.size_bytes))
            .filter(FileModel.owner_id == owner_id, _live())
            .scalar()
        )
        return total or 0
