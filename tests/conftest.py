"""
Shared fixtures: a temporary SQLite database, an in-memory object store and a
TestClient wired to both through the app factory.
"""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

# Ensure the digilib package is importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastapi.testclient import TestClient  # noqa: E402

from digilib.app import create_app  # noqa: E402
from digilib.core import config as core_config  # noqa: E402
from digilib.core.rate_limiter import reset_rate_limits  # noqa: E402
from digilib.core.security import hash_password  # noqa: E402
from digilib.core.tokens import issue_token_pair  # noqa: E402
from digilib.db.session import Database  # noqa: E402
from digilib.repositories.sql_repository import SQLRepository  # noqa: E402
from digilib.services.storage_service import StorageError  # noqa: E402

PASSWORD = "s3cret-pass"


class FakeStorage:
    """In-memory stand-in for ObjectStorage that records every call."""

    def __init__(self) -> None:
        self.bucket_name = "test-bucket"
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple] = []
        self.fail = False

    def _maybe_fail(self, op: str, key: str) -> None:
        if self.fail:
            raise StorageError(f"{op} of {key!r} failed: connection refused by storage.internal:9000")

    def ensure_bucket(self) -> None:
        self.calls.append(("ensure_bucket",))

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        self.calls.append(("put", key, content_type))
        self._maybe_fail("Upload", key)
        self.objects[key] = data
        return key

    def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        self._maybe_fail("Delete", key)
        self.objects.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.objects

    def signed_download_url(self, key: str, *, filename: str, ttl_seconds: int) -> str:
        self.calls.append(("sign", key, filename, ttl_seconds))
        self._maybe_fail("Signing", key)
        return f"https://storage.test/{self.bucket_name}/{key}?X-Amz-Expires={ttl_seconds}&disposition=attachment"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Pin the environment for every test and drop cached settings/rate limits."""
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("JWT_SECRET", "test-secret-with-enough-length-for-hs256")
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "1024")
    monkeypatch.setenv("UPLOAD_ALLOWED_FORMATS", "pdf,doc,docx,epub")
    monkeypatch.setenv("DOWNLOAD_URL_TTL_SECONDS", "3600")
    core_config.get_settings.cache_clear()
    reset_rate_limits()
    yield
    core_config.get_settings.cache_clear()
    reset_rate_limits()


@pytest.fixture()
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_all()
    yield db
    db.drop_all()
    db.dispose()


@pytest.fixture()
def repo(database):
    return SQLRepository(database)


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def client(database, storage):
    app = create_app(database=database, storage=storage)
    with TestClient(app) as test_client:
        yield test_client


# -------------------------------------- factories --------------------------------------
@pytest.fixture()
def make_user(repo):
    def _make(email: str = "reader@example.com", *, role: str = "user", institution_id: Optional[int] = None):
        return repo.create_user(
            name="Reader",
            email=email,
            password_hash=hash_password(PASSWORD),
            role=role,
            institution_id=institution_id,
        )

    return _make


@pytest.fixture()
def make_institution(repo):
    def _make(email: str = "library@uni.example"):
        return repo.create_institution(name="Uni Library", email=email, password_hash=hash_password(PASSWORD))

    return _make


@pytest.fixture()
def make_admin(repo):
    def _make(email: str = "admin@example.com", *, role: str = "admin"):
        return repo.create_admin(fullname="Site Admin", email=email, password_hash=hash_password(PASSWORD), role=role)

    return _make


@pytest.fixture()
def make_resource(repo, storage):
    counter = {"n": 0}

    def _make(*, paid: str = "free", status: str = "published", title: str = "Deep Learning"):
        counter["n"] += 1
        category = repo.get_category_by_name("Science") or repo.create_category(name="Science")
        author = repo.create_author(name=f"Author {counter['n']}")
        key = f"resources/test-{counter['n']}.pdf"
        storage.objects[key] = b"%PDF-1.4 test"
        return repo.create_resource(
            {
                "title": title,
                "type": "Book",
                "category_id": category.id,
                "paid": paid,
                "status": status,
                "file_key": key,
                "file_name": f"{title}.pdf",
                "file_format": "pdf",
                "file_size": 13,
            },
            [author.id],
        )

    return _make


@pytest.fixture()
def make_subscription(repo):
    def _make(
        *,
        user_id: Optional[int] = None,
        institution_id: Optional[int] = None,
        start_at: Optional[datetime] = None,
        days: int = 30,
        status: str = "active",
    ):
        start = start_at or datetime.now(timezone.utc) - timedelta(days=1)
        return repo.create_subscription(
            user_id=user_id,
            institution_id=institution_id,
            price=10,
            duration_days=days,
            start_at=start,
            end_at=start + timedelta(days=days),
            status=status,
        )

    return _make


def bearer(actor_id: int, actor_type: str, role: Optional[str] = None) -> dict:
    pair = issue_token_pair(actor_id, actor_type, role)
    return {"Authorization": f"Bearer {pair.access_token}"}
