import json

import pytest

from core.db import db
from core.models.authenticator import Authenticator
from shared.application.session_state import (
    AUTHENTICATION_SESSION_KEY,
    REGISTRATION_SESSION_KEY,
    USER_SESSION_KEY,
)
from shared.domain.user.entities import (
    CredentialDeviceType,
    RegistrationInfo,
    WebAuthnUser,
)
from shared.infrastructure.user_directory import SqlAlchemyUserDirectory
from tests.helpers.webauthn_fakes import (
    FakeVerifier,
    authentication_response,
    public_key_for,
    registration_response,
)


@pytest.fixture
def verifier(monkeypatch):
    fake = FakeVerifier()
    monkeypatch.setattr("webapp.auth.routes._credential_verifier", lambda: fake)
    return fake


@pytest.fixture
def directory(app_context):
    return SqlAlchemyUserDirectory(db.session)


def _create_user(directory, email="user@example.com", *credential_ids, counter=0):
    user = WebAuthnUser.new(email)
    for credential_id in credential_ids or ("cred-1",):
        directory.upsert_user_with_credential(
            user,
            RegistrationInfo(
                credential_id=credential_id,
                public_key=public_key_for(credential_id),
                counter=counter,
                device_type=CredentialDeviceType.MULTI_DEVICE,
                backed_up=True,
            ),
            transports=["internal"],
        )
    return user


def _login(client, user):
    with client.session_transaction() as session:
        session[USER_SESSION_KEY] = user.user_id


def _verify(client, action, credential, **kwargs):
    return client.post(
        "/webauthn/verify",
        data={"action": action, "credential": json.dumps(credential)},
        **kwargs,
    )


def test_initialize_new_email_starts_registration(client, verifier, directory):
    response = client.post(
        "/webauthn/initialize",
        data={"email": "a@example.com", "redirectTo": "/welcome"},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["type"] == "registration"
    assert body["user"]["name"] == "a@example.com"
    assert body["options"]["rp"]["id"] == "localhost"

    with client.session_transaction() as session:
        pending = session[REGISTRATION_SESSION_KEY]
        assert pending["challenge"] == body["options"]["challenge"]
        assert pending["redirectTo"] == "/welcome"
        assert pending["user"]["userID"] == body["user"]["id"]
    assert directory.find_by_name("a@example.com") is None


def test_example_scenario_over_http(client, verifier, directory):
    body = client.post("/webauthn/initialize", data={"email": "a@example.com"}).get_json()

    response = _verify(
        client,
        "registration",
        registration_response(body["options"]["challenge"]),
        headers={"User-Agent": "pytest-browser"},
    )

    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    user = directory.find_by_name("a@example.com")
    assert user.user_id == body["user"]["id"]
    credentials = directory.list_credentials("a@example.com")
    assert len(credentials) == 1
    assert credentials[0].user_agent == "pytest-browser"

    index = client.get("/").get_json()
    assert index["user"] == {"id": user.user_id, "email": "a@example.com"}
    assert index["credentials"] == [{"id": "cred-1", "transports": ["internal", "hybrid"]}]
    assert index["canRemove"] is False


def test_initialize_known_email_starts_authentication(client, verifier, directory):
    _create_user(directory, "user@example.com", "cred-1")

    body = client.post("/webauthn/initialize", data={"email": "user@example.com"}).get_json()

    assert body["type"] == "authentication"
    assert [c["id"] for c in body["options"]["allowCredentials"]] == ["cred-1"]
    assert "user" not in body


def test_initialize_autofill_is_discoverable(client, verifier, directory):
    user = _create_user(directory)
    _login(client, user)

    body = client.post("/webauthn/initialize", data={"autofill": "true"}).get_json()

    assert body["type"] == "authentication"
    assert body["options"].get("allowCredentials", []) == []
    with client.session_transaction() as session:
        assert USER_SESSION_KEY not in session
        assert session[AUTHENTICATION_SESSION_KEY]["user"] is None


def test_initialize_signed_in_user_registers_additional_credential(client, verifier, directory):
    user = _create_user(directory, "user@example.com", "cred-1")
    _login(client, user)

    body = client.post("/webauthn/initialize", data={}).get_json()

    assert body["type"] == "registration"
    assert body["user"]["id"] == user.user_id
    assert [c["id"] for c in body["options"]["excludeCredentials"]] == ["cred-1"]


@pytest.mark.parametrize("email", ["", "not-an-email"])
def test_initialize_rejects_invalid_email(client, verifier, email):
    response = client.post("/webauthn/initialize", data={"email": email})

    assert response.status_code == 400
    assert "webauthn" in response.get_json()["errors"]


def test_initialize_sanitises_redirect_target(client, verifier):
    client.post(
        "/webauthn/initialize",
        data={"email": "a@example.com", "redirectTo": "//evil.example.com"},
    )

    with client.session_transaction() as session:
        assert session[REGISTRATION_SESSION_KEY]["redirectTo"] == "/"


def test_authentication_over_http_signs_in_and_redirects(client, verifier, directory):
    user = _create_user(directory, "user@example.com", "cred-1", counter=1)
    body = client.post(
        "/webauthn/initialize",
        json={"email": "user@example.com", "redirectTo": "/account"},
    ).get_json()

    response = client.post(
        "/webauthn/verify",
        json={
            "action": "authentication",
            "credential": authentication_response(body["options"]["challenge"], counter=2),
        },
    )

    assert response.status_code == 302
    assert response.headers["Location"] == "/account"
    with client.session_transaction() as session:
        assert session[USER_SESSION_KEY] == user.user_id
        assert AUTHENTICATION_SESSION_KEY not in session
    assert directory.find_credential("user@example.com", "cred-1").counter == 2


def test_verify_replay_is_rejected(client, verifier, directory):
    _create_user(directory, "user@example.com", "cred-1")
    body = client.post("/webauthn/initialize", data={"email": "user@example.com"}).get_json()
    credential = authentication_response(body["options"]["challenge"], counter=1)

    assert _verify(client, "authentication", credential).status_code == 302
    client.get("/logout")
    second = _verify(client, "authentication", credential)

    assert second.status_code == 400
    assert second.get_json() == {"errors": {"webauthn": "No pending authentication challenge"}}


def test_verify_with_wrong_action_is_session_mismatch(client, verifier):
    body = client.post("/webauthn/initialize", data={"email": "a@example.com"}).get_json()

    response = _verify(client, "authentication", authentication_response(body["options"]["challenge"]))

    assert response.status_code == 400
    assert response.get_json()["errors"]["webauthn"] == "No pending authentication challenge"


def test_verify_failure_reports_message_and_clears_challenge(client, verifier):
    client.post("/webauthn/initialize", data={"email": "a@example.com"})
    verifier.reject = True

    response = _verify(client, "registration", registration_response("anything"))

    assert response.status_code == 400
    assert response.get_json() == {"errors": {"webauthn": "Registration verification failed"}}
    with client.session_transaction() as session:
        assert REGISTRATION_SESSION_KEY not in session
    assert db.session.query(Authenticator).count() == 0


def test_verify_unknown_credential(client, verifier, directory):
    _create_user(directory, "user@example.com", "cred-1")
    body = client.post("/webauthn/initialize", data={"email": "user@example.com"}).get_json()

    response = _verify(
        client, "authentication", authentication_response(body["options"]["challenge"], "cred-x")
    )

    assert response.get_json() == {
        "errors": {"webauthn": "Authentication verification error (credential not found)"}
    }


@pytest.mark.parametrize(
    "data",
    [
        {"action": "login", "credential": "{}"},
        {"action": "registration"},
        {"action": "registration", "credential": "not json"},
        {"action": "registration", "credential": json.dumps({"id": "x", "rawId": "x", "type": "public-key"})},
    ],
)
def test_verify_rejects_malformed_requests(client, verifier, data):
    response = client.post("/webauthn/verify", data=data)

    assert response.status_code == 400
    assert response.get_json()["errors"]["webauthn"]


def test_index_for_anonymous_visitor(client):
    assert client.get("/").get_json() == {"user": None, "credentials": [], "canRemove": False}


def test_index_lists_credentials_and_allows_removal(client, directory):
    user = _create_user(directory, "user@example.com", "cred-1", "cred-2")
    _login(client, user)

    body = client.get("/").get_json()

    assert [c["id"] for c in body["credentials"]] == ["cred-1", "cred-2"]
    assert body["canRemove"] is True

    response = client.post("/", data={"credentialID": "cred-1"})
    assert response.status_code == 302
    assert [c.credential_id for c in directory.list_credentials("user@example.com")] == ["cred-2"]

    last = client.post("/", data={"credentialID": "cred-2"})
    assert last.status_code == 400
    assert last.get_json()["errors"]["webauthn"] == "The last remaining credential cannot be removed"


def test_remove_credential_requires_sign_in(client):
    response = client.post("/", data={"credentialID": "cred-1"})

    assert response.status_code == 302
    assert response.headers["Location"] == "/login?redirectTo=%2F"


def test_stale_principal_forces_logout(client):
    with client.session_transaction() as session:
        session[USER_SESSION_KEY] = WebAuthnUser.new("gone@example.com").user_id

    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    with client.session_transaction() as session:
        assert USER_SESSION_KEY not in session


def test_login_page_redirects_signed_in_user(client, directory):
    user = _create_user(directory)
    _login(client, user)

    response = client.get("/login")

    assert response.status_code == 302
    assert response.headers["Location"] == "/"


def test_login_page_for_anonymous_visitor(client):
    response = client.get("/login?redirectTo=/settings")

    assert response.status_code == 200
    assert response.get_json() == {"redirectTo": "/settings"}


def test_logout_clears_session(client, directory):
    user = _create_user(directory)
    _login(client, user)

    response = client.post("/logout")

    assert response.status_code == 302
    with client.session_transaction() as session:
        assert dict(session) == {}


def test_session_cookie_is_named_and_hardened(client, verifier):
    response = client.post("/webauthn/initialize", data={"email": "a@example.com"})

    cookie = response.headers["Set-Cookie"]
    assert cookie.startswith("__session=")
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie
    assert "Expires=" in cookie
