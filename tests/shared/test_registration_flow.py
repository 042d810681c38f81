import pytest
from webauthn.helpers import bytes_to_base64url

from shared.application.ceremony import ChallengeParameters
from shared.application.registration_flow import RegistrationFlow
from shared.application.session_binder import SessionBinder
from shared.application.session_state import (
    REGISTRATION_SESSION_KEY,
    USER_SESSION_KEY,
    SessionState,
)
from shared.domain.auth.challenge import ChallengeKind
from shared.domain.auth.exceptions import (
    RegistrationVerificationError,
    SessionMismatchError,
)
from shared.domain.user.entities import WebAuthnUser
from shared.domain.user.exceptions import DuplicateCredentialError
from tests.helpers.webauthn_fakes import (
    RELYING_PARTY,
    FakeVerifier,
    StubDirectory,
    StubLedger,
    registration_response,
)


@pytest.fixture
def directory():
    return StubDirectory()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def flow(directory, verifier):
    return RegistrationFlow(
        directory=directory,
        verifier=verifier,
        ledger=StubLedger(),
        binder=SessionBinder(directory),
    )


def test_begin_for_new_email_mints_user_and_empty_exclude_list(flow):
    store: dict = {}
    user = WebAuthnUser.new("a@example.com")

    params = flow.begin(SessionState(store), user=user, relying_party=RELYING_PARTY)

    assert isinstance(params, ChallengeParameters)
    assert params.kind is ChallengeKind.REGISTRATION
    assert params.options.get("excludeCredentials", []) == []
    assert params.options["rp"] == {"id": "localhost", "name": "Passkey Login"}
    assert params.options["user"]["id"] == bytes_to_base64url(user.user_id.encode("utf-8"))
    assert params.options["authenticatorSelection"]["residentKey"] == "required"
    assert params.options["authenticatorSelection"]["userVerification"] == "preferred"
    assert store[REGISTRATION_SESSION_KEY]["challenge"] == params.challenge
    assert store[REGISTRATION_SESSION_KEY]["user"]["userID"] == user.user_id


def test_begin_excludes_existing_credentials_by_id(flow, directory):
    credential_id = bytes_to_base64url(b"existing-cred")
    user = directory.add_user("b@example.com", credential_id)

    params = flow.begin(SessionState({}), user=user, relying_party=RELYING_PARTY)

    excluded = params.options["excludeCredentials"]
    assert [entry["id"] for entry in excluded] == [credential_id]
    assert excluded[0]["transports"] == ["internal"]


def test_challenge_is_fresh_and_long_enough(flow):
    user = WebAuthnUser.new("a@example.com")

    first = flow.begin(SessionState({}), user=user, relying_party=RELYING_PARTY)
    second = flow.begin(SessionState({}), user=user, relying_party=RELYING_PARTY)

    assert first.challenge != second.challenge
    assert len(first.challenge) >= 22  # 16 bytes in base64url


def test_example_scenario_registers_new_user(flow, directory):
    store: dict = {}
    state = SessionState(store)
    user = WebAuthnUser.new("a@example.com")
    params = flow.begin(state, user=user, relying_party=RELYING_PARTY, redirect_to="/welcome")

    principal = flow.complete(
        state,
        credential=registration_response(params.challenge),
        relying_party=RELYING_PARTY,
        user_agent="pytest-agent",
    )

    assert principal.user == user
    assert principal.redirect_to == "/welcome"
    assert directory.find_by_name("a@example.com") == user
    credentials = directory.list_credentials("a@example.com")
    assert len(credentials) == 1
    assert credentials[0].user_agent == "pytest-agent"
    assert credentials[0].transport_values == ["internal", "hybrid"]
    assert store[USER_SESSION_KEY] == user.user_id
    assert REGISTRATION_SESSION_KEY not in store


def test_round_trip_current_user_matches_registered_user(flow, directory):
    state = SessionState({})
    user = WebAuthnUser.new("round@example.com")
    params = flow.begin(state, user=user, relying_party=RELYING_PARTY)
    flow.complete(state, credential=registration_response(params.challenge), relying_party=RELYING_PARTY)

    assert SessionBinder(directory).current_user(state) == user


def test_replayed_completion_is_rejected(flow, directory):
    store: dict = {}
    state = SessionState(store)
    params = flow.begin(state, user=WebAuthnUser.new("a@example.com"), relying_party=RELYING_PARTY)
    snapshot = dict(store)
    credential = registration_response(params.challenge)

    flow.complete(state, credential=credential, relying_party=RELYING_PARTY)

    # second attempt with the emptied session
    with pytest.raises(SessionMismatchError):
        flow.complete(state, credential=credential, relying_party=RELYING_PARTY)

    # replay of the cookie captured before completion
    replayed = SessionState(dict(snapshot))
    with pytest.raises(SessionMismatchError, match="already been used"):
        flow.complete(replayed, credential=credential, relying_party=RELYING_PARTY)
    assert len(directory.list_credentials("a@example.com")) == 1


def test_complete_without_pending_challenge_is_session_mismatch(flow):
    with pytest.raises(SessionMismatchError):
        flow.complete(
            SessionState({}),
            credential=registration_response("whatever"),
            relying_party=RELYING_PARTY,
        )


def test_failed_verification_persists_nothing_and_clears_challenge(flow, directory):
    store: dict = {}
    state = SessionState(store)
    flow.begin(state, user=WebAuthnUser.new("a@example.com"), relying_party=RELYING_PARTY)

    with pytest.raises(RegistrationVerificationError, match="Registration verification failed"):
        flow.complete(
            state,
            credential=registration_response("wrong-challenge"),
            relying_party=RELYING_PARTY,
        )

    assert directory.find_by_name("a@example.com") is None
    assert REGISTRATION_SESSION_KEY not in store
    assert USER_SESSION_KEY not in store


def test_verifier_reporting_false_fails(flow, verifier):
    state = SessionState({})
    params = flow.begin(state, user=WebAuthnUser.new("a@example.com"), relying_party=RELYING_PARTY)
    verifier.reject = True

    with pytest.raises(RegistrationVerificationError):
        flow.complete(state, credential=registration_response(params.challenge), relying_party=RELYING_PARTY)


def test_already_registered_authenticator_is_rejected(flow, directory):
    user = directory.add_user("b@example.com", "cred-1")
    state = SessionState({})
    params = flow.begin(state, user=user, relying_party=RELYING_PARTY)

    with pytest.raises(DuplicateCredentialError):
        flow.complete(
            state,
            credential=registration_response(params.challenge, "cred-1"),
            relying_party=RELYING_PARTY,
        )

    assert len(directory.list_credentials("b@example.com")) == 1


def test_additional_credential_for_existing_user(flow, directory):
    user = directory.add_user("b@example.com", "cred-1")
    state = SessionState({})
    params = flow.begin(state, user=user, relying_party=RELYING_PARTY)

    flow.complete(
        state,
        credential=registration_response(params.challenge, "cred-2"),
        relying_party=RELYING_PARTY,
    )

    ids = [c.credential_id for c in directory.list_credentials("b@example.com")]
    assert ids == ["cred-1", "cred-2"]
