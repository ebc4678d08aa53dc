"""Tests for token issuance and the upload path of the lifecycle manager."""

import io
import re
from datetime import datetime, timedelta, timezone

import pytest

from api.files.repositories import files_repository
from api.files.services import token_service
from api.upload.services import upload_service
from errors import StorageFailure, TooLarge
from storage import blob_store


class TestTokenIssuer:
    def test_tokens_are_url_safe_and_long(self):
        token = token_service.issue()
        assert re.fullmatch(r"[A-Za-z0-9_-]+", token)
        # 32 random bytes -> 43 base64 characters
        assert len(token) >= 43

    def test_tokens_do_not_repeat(self):
        tokens = {token_service.issue() for _ in range(1000)}
        assert len(tokens) == 1000


class TestParsing:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("30s", timedelta(seconds=30)),
            ("30m", timedelta(minutes=30)),
            ("2h", timedelta(hours=2)),
            ("3D", timedelta(days=3)),
            ("1w", timedelta(weeks=1)),
            ("soon", None),
            ("", None),
        ],
    )
    def test_parse_duration(self, value, expected):
        assert upload_service.parse_duration(value) == expected

    def test_parse_size(self):
        assert upload_service.parse_size("100MB") == 100 * 1024**2
        assert upload_service.parse_size("1.5 KB") == 1536
        assert upload_service.parse_size("lots") == 0


class TestUpload:
    def test_round_trip(self, make_file):
        file = make_file(content=b"0123456789", name="digits.txt", max_downloads=2)
        stored = files_repository.get_by_token(file.download_token)
        assert stored == files_repository.get_by_id(file.id) == file
        assert stored.original_name == "digits.txt"
        assert stored.mime_type == "text/plain"
        assert stored.size_bytes == 10
        assert stored.owner_id == "alice"
        assert stored.download_count == 0
        assert stored.max_downloads == 2
        assert stored.download_token
        with blob_store.open(stored.storage_key) as f:
            assert f.read() == b"0123456789"

    def test_tokens_are_unique_across_uploads(self, make_file):
        tokens = {make_file().download_token for _ in range(5)}
        assert len(tokens) == 5

    def test_default_expiry_applies(self, make_file):
        file = make_file()
        expected = datetime.now(timezone.utc) + timedelta(hours=24)
        assert abs((file.expires_at - expected).total_seconds()) < 5

    def test_ttl_is_clamped_to_max_expiry(self, make_file):
        file = make_file(ttl=timedelta(days=30))
        expected = datetime.now(timezone.utc) + timedelta(days=7)
        assert abs((file.expires_at - expected).total_seconds()) < 5

    def test_ttl_string(self, make_file):
        file = make_file(ttl="2h")
        expected = datetime.now(timezone.utc) + timedelta(hours=2)
        assert abs((file.expires_at - expected).total_seconds()) < 5

    def test_no_default_expiry_means_never(self, make_file, monkeypatch):
        monkeypatch.setattr(upload_service, "DEFAULT_EXPIRY", "")
        assert make_file().expires_at is None

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-5), "later"])
    def test_rejects_bad_ttl(self, make_file, ttl):
        with pytest.raises(ValueError):
            make_file(ttl=ttl)
        assert list(blob_store.keys()) == []

    @pytest.mark.parametrize("max_downloads", [0, -1])
    def test_rejects_non_positive_quota(self, make_file, max_downloads):
        with pytest.raises(ValueError):
            make_file(max_downloads=max_downloads)

    def test_mime_type_defaults_to_octet_stream(self):
        file = upload_service.upload("alice", io.BytesIO(b"x"), "blob.bin")
        assert file.mime_type == "application/octet-stream"
        assert file.size_bytes == 1


class TestUploadFailures:
    def test_declared_size_over_limit_never_touches_storage(self, monkeypatch):
        def fail_put(*args, **kwargs):
            raise AssertionError("blob store must not be called")

        monkeypatch.setattr(blob_store, "put", fail_put)
        with pytest.raises(TooLarge):
            upload_service.upload(
                "alice", io.BytesIO(b""), "big.iso", size=2 * 1024 * 1024
            )

    def test_streamed_size_over_limit(self):
        with pytest.raises(TooLarge):
            upload_service.upload("alice", io.BytesIO(b"x" * (1024 * 1024 + 1)), "big.iso")
        assert list(blob_store.root.iterdir()) == []

    def test_size_mismatch_removes_blob(self):
        with pytest.raises(StorageFailure):
            upload_service.upload("alice", io.BytesIO(b"short"), "short.txt", size=100)
        assert list(blob_store.keys()) == []
        assert files_repository.list_by_owner("alice") == []

    def test_ledger_failure_removes_blob(self, make_file, monkeypatch):
        def broken_create(**kwargs):
            assert blob_store.exists(kwargs["storage_key"])
            raise StorageFailure("database unavailable")

        monkeypatch.setattr(files_repository, "create", broken_create)
        with pytest.raises(StorageFailure):
            make_file()
        assert list(blob_store.keys()) == []

    def test_ledger_error_survives_a_failed_blob_removal(self, make_file, monkeypatch):
        def broken_create(**kwargs):
            raise StorageFailure("database unavailable")

        def broken_delete(key):
            raise StorageFailure("disk offline")

        monkeypatch.setattr(files_repository, "create", broken_create)
        monkeypatch.setattr(blob_store, "delete", broken_delete)
        with pytest.raises(StorageFailure, match="database unavailable"):
            make_file()

    def test_blob_failure_creates_no_row(self, make_file, monkeypatch):
        def broken_put(*args, **kwargs):
            raise StorageFailure("disk full")

        monkeypatch.setattr(blob_store, "put", broken_put)
        with pytest.raises(StorageFailure):
            make_file()
        assert files_repository.list_by_owner("alice") == []
