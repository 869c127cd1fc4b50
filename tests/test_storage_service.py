from __future__ import annotations

from datetime import timedelta

import pytest
import urllib3
from minio.error import S3Error

from digilib.services.storage_service import ObjectStorage, StorageError


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message="simulated",
        resource="/library/resources/a.pdf",
        request_id="test-request-id",
        host_id="test-host-id",
        response=None,  # type: ignore
        bucket_name="library",
        object_name="resources/a.pdf",
    )


class RecordingMinio:
    """Minimal Minio double that records calls and can raise on demand."""

    def __init__(self):
        self.calls = []
        self.raise_on = {}
        self.buckets = set()

    def _maybe_raise(self, name):
        if name in self.raise_on:
            raise self.raise_on[name]

    def bucket_exists(self, bucket):
        self._maybe_raise("bucket_exists")
        return bucket in self.buckets

    def make_bucket(self, bucket):
        self.calls.append(("make_bucket", bucket))
        self.buckets.add(bucket)

    def put_object(self, bucket, key, data, length, content_type=None):
        self._maybe_raise("put_object")
        self.calls.append(("put_object", bucket, key, data.read(), length, content_type))

    def remove_object(self, bucket, key):
        self._maybe_raise("remove_object")
        self.calls.append(("remove_object", bucket, key))

    def stat_object(self, bucket, key):
        self._maybe_raise("stat_object")
        return object()

    def presigned_get_object(self, bucket, key, expires=None, response_headers=None):
        self._maybe_raise("presigned_get_object")
        self.calls.append(("presigned_get_object", bucket, key, expires, response_headers))
        return f"https://minio.local/{bucket}/{key}?sig=abc"


@pytest.fixture()
def client():
    return RecordingMinio()


@pytest.fixture()
def store(client):
    return ObjectStorage("library", endpoint="minio.local:9000", access_key="k", secret_key="s", client=client)


def test_ensure_bucket_creates_missing_bucket(store, client):
    store.ensure_bucket()
    store.ensure_bucket()
    assert client.calls == [("make_bucket", "library")]


def test_put_uploads_bytes(store, client):
    assert store.put("resources/a.pdf", b"abc", "application/pdf") == "resources/a.pdf"
    assert client.calls == [("put_object", "library", "resources/a.pdf", b"abc", 3, "application/pdf")]


def test_signed_url_forces_attachment(store, client):
    url = store.signed_download_url("resources/a.pdf", filename='My "Book".pdf', ttl_seconds=3600)

    assert url.startswith("https://minio.local/library/resources/a.pdf")
    _, bucket, key, expires, headers = client.calls[-1]
    assert (bucket, key) == ("library", "resources/a.pdf")
    assert expires == timedelta(hours=1)
    assert headers == {"response-content-disposition": 'attachment; filename="My Book.pdf"'}


def test_delete_ignores_missing_objects(store, client):
    client.raise_on["remove_object"] = _s3_error("NoSuchKey")
    store.delete("resources/a.pdf")


def test_exists_maps_missing_key_to_false(store, client):
    assert store.exists("resources/a.pdf") is True
    client.raise_on["stat_object"] = _s3_error("NoSuchKey")
    assert store.exists("resources/a.pdf") is False


@pytest.mark.parametrize(
    "method, call",
    [
        ("put_object", lambda s: s.put("resources/a.pdf", b"x")),
        ("remove_object", lambda s: s.delete("resources/a.pdf")),
        ("stat_object", lambda s: s.exists("resources/a.pdf")),
        ("presigned_get_object", lambda s: s.signed_download_url("resources/a.pdf", filename="a.pdf", ttl_seconds=60)),
    ],
)
def test_provider_errors_are_wrapped(store, client, method, call):
    client.raise_on[method] = _s3_error("AccessDenied")
    with pytest.raises(StorageError):
        call(store)

    client.raise_on[method] = urllib3.exceptions.MaxRetryError(None, "/library", "connection refused")
    with pytest.raises(StorageError):
        call(store)
