from __future__ import annotations

import pytest

from digilib.core.errors import ApiError, ErrorKind
from digilib.schemas import ResourceCreate, ResourceUpdate
from digilib.services.resource_service import ResourceService, UploadedFile


@pytest.fixture()
def service(repo, storage):
    return ResourceService(repo, storage)


@pytest.fixture()
def refs(repo):
    category = repo.create_category(name="History")
    author = repo.create_author(name="Herodotus")
    return category, author


def _payload(refs, **overrides) -> ResourceCreate:
    category, author = refs
    data = {"title": "Histories", "category_id": category.id, "author_ids": [author.id]}
    data.update(overrides)
    return ResourceCreate(**data)


def _puts(storage) -> list:
    return [call for call in storage.calls if call[0] == "put"]


def test_create_stores_file_under_generated_key(service, storage, refs):
    resource = service.create(_payload(refs), UploadedFile("histories.PDF", b"%PDF-1.7 body"))

    assert resource.file_key.startswith("resources/")
    assert resource.file_key.endswith(".pdf")
    assert resource.file_name == "histories.PDF"
    assert resource.file_format == "pdf"
    assert resource.file_size == len(b"%PDF-1.7 body")
    assert storage.objects[resource.file_key] == b"%PDF-1.7 body"
    assert [a.name for a in resource.authors] == ["Herodotus"]
    assert resource.download_count == 0


@pytest.mark.parametrize(
    "upload, field",
    [
        (UploadedFile("malware.exe", b"MZ"), "format"),
        (UploadedFile("empty.pdf", b""), "empty"),
        (UploadedFile("huge.pdf", b"x" * 1025), "size"),
        (None, "required"),
    ],
)
def test_invalid_uploads_never_reach_storage(service, storage, refs, upload, field):
    with pytest.raises(ApiError) as excinfo:
        service.create(_payload(refs), upload)
    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert excinfo.value.fields["file"] == field
    assert _puts(storage) == []


def test_unknown_references_are_rejected_before_upload(service, storage, refs):
    with pytest.raises(ApiError) as excinfo:
        service.create(_payload(refs, author_ids=[refs[1].id, 999]), UploadedFile("a.pdf", b"data"))
    assert excinfo.value.fields == {"author_ids": "unknown"}

    with pytest.raises(ApiError):
        service.create(_payload(refs, category_id=999), UploadedFile("a.pdf", b"data"))
    assert _puts(storage) == []


def test_replacing_file_deletes_previous_object(service, storage, refs):
    resource = service.create(_payload(refs), UploadedFile("v1.pdf", b"first"))
    old_key = resource.file_key

    updated = service.update(resource.id, ResourceUpdate(title="Histories, 2nd ed."), UploadedFile("v2.epub", b"second"))

    assert updated.file_key != old_key
    assert updated.file_format == "epub"
    assert updated.title == "Histories, 2nd ed."
    assert old_key not in storage.objects
    assert storage.objects[updated.file_key] == b"second"


def test_update_without_file_keeps_object(service, storage, refs):
    resource = service.create(_payload(refs), UploadedFile("v1.pdf", b"first"))
    updated = service.update(resource.id, ResourceUpdate(paid="premium"))
    assert updated.file_key == resource.file_key
    assert updated.paid == "premium"
    assert resource.file_key in storage.objects


def test_delete_removes_stored_object(service, repo, storage, refs):
    resource = service.create(_payload(refs), UploadedFile("doc.docx", b"PK\x03\x04"))
    key = resource.file_key

    service.delete(resource.id)

    assert repo.get_resource(resource.id) is None
    assert not storage.exists(key)


def test_storage_failure_on_upload_is_upstream_failure(service, repo, storage, refs):
    storage.fail = True
    with pytest.raises(ApiError) as excinfo:
        service.create(_payload(refs), UploadedFile("a.pdf", b"data"))
    assert excinfo.value.kind is ErrorKind.UPSTREAM_FAILURE
    assert repo.count_resources() == 0


def test_public_detail_hides_unpublished(service, refs):
    resource = service.create(_payload(refs, status="unpublished"), UploadedFile("a.pdf", b"data"))
    with pytest.raises(ApiError) as excinfo:
        service.get_public(resource.id)
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    items, total = service.list_public()
    assert total == 0


def test_category_in_use_cannot_be_deleted(service, refs):
    category, _ = refs
    service.create(_payload(refs), UploadedFile("a.pdf", b"data"))
    with pytest.raises(ApiError) as excinfo:
        service.delete_category(category.id)
    assert excinfo.value.kind is ErrorKind.CONFLICT


def test_category_names_are_unique(service, refs):
    with pytest.raises(ApiError) as excinfo:
        service.create_category("history")
    assert excinfo.value.kind is ErrorKind.CONFLICT


def test_author_ids_accept_form_encodings():
    assert ResourceCreate(title="Ab", category_id=1, author_ids="[1, 2]").author_ids == [1, 2]
    assert ResourceCreate(title="Ab", category_id=1, author_ids="3, 4").author_ids == [3, 4]
