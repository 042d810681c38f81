from typing import Any

from flask import current_app, jsonify, redirect, request, session

from . import bp
from ..extensions import db
from ..utils.url_helpers import relying_party_for_request, resolve_safe_redirect
from .schemas import (
    InitializeRequestSchema,
    VerifyRequestSchema,
    load_request,
    parse_credential,
)
from core.settings import settings
from shared.application.account_service import AccountService
from shared.application.authentication_flow import AuthenticationFlow
from shared.application.credential_verifier import (
    CredentialVerifier,
    WebAuthnCredentialVerifier,
)
from shared.application.registration_flow import RegistrationFlow
from shared.application.session_binder import SessionBinder
from shared.application.session_state import SessionState
from shared.domain.auth.challenge import ChallengeKind
from shared.domain.auth.exceptions import InvalidInputError
from shared.domain.user.entities import WebAuthnUser
from shared.infrastructure.challenge_ledger import SqlAlchemyChallengeLedger
from shared.infrastructure.user_directory import SqlAlchemyUserDirectory


user_directory = SqlAlchemyUserDirectory(db.session)
session_binder = SessionBinder(user_directory)
account_service = AccountService(user_directory)


def _credential_verifier() -> CredentialVerifier:
    return WebAuthnCredentialVerifier(
        require_user_verification=settings.webauthn_require_user_verification
    )


def _challenge_ledger() -> SqlAlchemyChallengeLedger:
    return SqlAlchemyChallengeLedger(
        db.session, retention_seconds=settings.session_max_age_seconds
    )


def _registration_flow() -> RegistrationFlow:
    return RegistrationFlow(
        directory=user_directory,
        verifier=_credential_verifier(),
        ledger=_challenge_ledger(),
        binder=session_binder,
    )


def _authentication_flow() -> AuthenticationFlow:
    return AuthenticationFlow(
        directory=user_directory,
        verifier=_credential_verifier(),
        ledger=_challenge_ledger(),
        binder=session_binder,
    )


def _session_state() -> SessionState:
    # 書き込みのたびに max-age を延長する
    session.permanent = True
    return SessionState(session)


def _request_data() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


@bp.post("/webauthn/initialize")
def webauthn_initialize():
    state = _session_state()
    data = load_request(InitializeRequestSchema(), _request_data())
    redirect_to = resolve_safe_redirect(data["redirect_to"])
    relying_party = relying_party_for_request()

    if data["autofill"]:
        params = _authentication_flow().begin(
            state, relying_party=relying_party, redirect_to=redirect_to
        )
    else:
        user = session_binder.current_user(state)
        if user is not None:
            params = _registration_flow().begin(
                state, user=user, relying_party=relying_party, redirect_to=redirect_to
            )
        else:
            email = data.get("email")
            if not email:
                raise InvalidInputError("Invalid email address")

            existing = user_directory.find_by_name(email)
            if existing is not None:
                params = _authentication_flow().begin(
                    state, relying_party=relying_party, user=existing, redirect_to=redirect_to
                )
            else:
                params = _registration_flow().begin(
                    state,
                    user=WebAuthnUser.new(email),
                    relying_party=relying_party,
                    redirect_to=redirect_to,
                )

    current_app.logger.info(
        "WebAuthn %s challenge issued",
        params.kind.value,
        extra={"event": "webauthn.initialize", "path": request.path, "type": params.kind.value},
    )
    return jsonify(params.to_json())


@bp.post("/webauthn/verify")
def webauthn_verify():
    state = _session_state()
    data = load_request(VerifyRequestSchema(), _request_data())
    kind = ChallengeKind(data["action"])
    credential = parse_credential(kind, data["credential"])
    relying_party = relying_party_for_request()

    if kind is ChallengeKind.REGISTRATION:
        principal = _registration_flow().complete(
            state,
            credential=credential,
            relying_party=relying_party,
            user_agent=request.user_agent.string or None,
        )
    else:
        principal = _authentication_flow().complete(
            state, credential=credential, relying_party=relying_party
        )

    current_app.logger.info(
        "WebAuthn %s verified",
        kind.value,
        extra={"event": "webauthn.verify", "path": request.path, "user_id": principal.user_id},
    )
    return redirect(resolve_safe_redirect(principal.redirect_to))


@bp.get("/")
def index():
    state = SessionState(session)
    user = session_binder.current_user(state)
    if user is None:
        return jsonify({"user": None, "credentials": [], "canRemove": False})

    credentials = account_service.list_credentials(user)
    return jsonify(
        {
            "user": {"id": user.user_id, "email": user.user_name},
            "credentials": [credential.to_json() for credential in credentials],
            "canRemove": len(credentials) > 1,
        }
    )


@bp.post("/")
def remove_credential():
    state = SessionState(session)
    user = session_binder.require_user(state, redirect_to=request.path)

    credential_id = _request_data().get("credentialID")
    if not isinstance(credential_id, str) or not credential_id:
        raise InvalidInputError("credentialID is required")

    account_service.remove_credential(user, credential_id)
    return redirect("/")


@bp.get("/login")
def login():
    session_binder.require_no_user(SessionState(session))
    return jsonify({"redirectTo": resolve_safe_redirect(request.args.get("redirectTo"))})


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    session_binder.logout(SessionState(session))
    return redirect("/")
