import pytest

from shared.application.account_service import AccountService
from shared.domain.user.exceptions import (
    CredentialNotFoundError,
    LastCredentialError,
    UserNotFoundError,
)
from tests.helpers.webauthn_fakes import StubDirectory


@pytest.fixture
def directory():
    return StubDirectory()


@pytest.fixture
def service(directory):
    return AccountService(directory)


def test_list_credentials_exposes_id_and_transports(service, directory):
    user = directory.add_user("a@example.com", "cred-1", "cred-2")

    summaries = service.list_credentials(user)

    assert [s.to_json() for s in summaries] == [
        {"id": "cred-1", "transports": ["internal"]},
        {"id": "cred-2", "transports": ["internal"]},
    ]


def test_removing_only_credential_is_refused(service, directory):
    user = directory.add_user("a@example.com", "cred-1")

    with pytest.raises(LastCredentialError):
        service.remove_credential(user, "cred-1")

    assert len(directory.list_credentials("a@example.com")) == 1


def test_removing_one_of_two_leaves_exactly_one(service, directory):
    user = directory.add_user("a@example.com", "cred-1", "cred-2")

    service.remove_credential(user, "cred-1")

    assert [c.credential_id for c in directory.list_credentials("a@example.com")] == ["cred-2"]


def test_removing_unknown_credential(service, directory):
    user = directory.add_user("a@example.com", "cred-1", "cred-2")

    with pytest.raises(CredentialNotFoundError):
        service.remove_credential(user, "cred-3")


def test_delete_account(service, directory):
    directory.add_user("a@example.com", "cred-1")

    service.delete_account("a@example.com")

    assert directory.find_by_name("a@example.com") is None
    with pytest.raises(UserNotFoundError):
        service.delete_account("a@example.com")
