from __future__ import annotations

import logging

import pytest

from digilib.core.errors import ApiError, ErrorKind
from digilib.services.download_service import DownloadService
from digilib.services.identity_service import Actor


@pytest.fixture()
def service(repo, storage):
    return DownloadService(repo, storage)


def test_free_resource_downloads_without_subscription(service, repo, make_user, make_resource, storage):
    user = make_user()
    resource = make_resource()

    ticket = service.issue(resource.id, Actor(user.id, "user", "user"))

    assert ticket.resource_id == resource.id
    assert resource.file_key in ticket.url
    sign_calls = [call for call in storage.calls if call[0] == "sign"]
    assert sign_calls == [("sign", resource.file_key, "Deep Learning.pdf", 3600)]


def test_two_downloads_increment_counter_by_two(service, repo, make_user, make_resource):
    user = make_user()
    resource = make_resource()
    actor = Actor(user.id, "user", "user")

    service.issue(resource.id, actor)
    service.issue(resource.id, actor)

    assert repo.get_resource(resource.id).download_count == 2


def test_premium_without_subscription_is_denied_and_not_counted(service, repo, make_user, make_resource, storage):
    user = make_user()
    resource = make_resource(paid="premium")

    with pytest.raises(ApiError) as excinfo:
        service.issue(resource.id, Actor(user.id, "user", "user"))

    assert excinfo.value.kind is ErrorKind.NO_ACTIVE_SUBSCRIPTION
    assert excinfo.value.status_code == 403
    assert repo.get_resource(resource.id).download_count == 0
    assert not [call for call in storage.calls if call[0] == "sign"]


def test_premium_with_institution_subscription_for_student(service, repo, make_user, make_institution, make_subscription, make_resource):
    inst = make_institution()
    student = make_user("student@uni.example", role="student", institution_id=inst.id)
    make_subscription(institution_id=inst.id)
    resource = make_resource(paid="premium")

    ticket = service.issue(resource.id, Actor(student.id, "user", "student"))

    assert ticket.url
    assert repo.get_resource(resource.id).download_count == 1


def test_unknown_resource_is_not_found(service, make_user):
    user = make_user()
    with pytest.raises(ApiError) as excinfo:
        service.issue(9999, Actor(user.id, "user", "user"))
    assert excinfo.value.kind is ErrorKind.NOT_FOUND


def test_unpublished_resource_is_hidden_from_readers(service, make_user, make_resource):
    user = make_user()
    resource = make_resource(status="unpublished")
    with pytest.raises(ApiError) as excinfo:
        service.issue(resource.id, Actor(user.id, "user", "user"))
    assert excinfo.value.kind is ErrorKind.NOT_FOUND


def test_provider_failure_is_generic_and_logged(service, repo, make_user, make_resource, storage, caplog):
    user = make_user()
    resource = make_resource()
    storage.fail = True

    with caplog.at_level(logging.ERROR, logger="digilib.services.download_service"):
        with pytest.raises(ApiError) as excinfo:
            service.issue(resource.id, Actor(user.id, "user", "user"))

    assert excinfo.value.kind is ErrorKind.UPSTREAM_FAILURE
    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "Download failed"
    assert "storage.internal" not in excinfo.value.message
    assert "storage.internal" in caplog.text
    assert repo.get_resource(resource.id).download_count == 0
