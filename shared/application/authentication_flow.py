"""Authentication ceremony: issue an assertion challenge and verify it."""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from webauthn import generate_authentication_options, options_to_json
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.structs import UserVerificationRequirement

from core.logging_config import structured_logger
from shared.application.ceremony import (
    ChallengeParameters,
    consume_challenge,
    credential_descriptors,
)
from shared.application.credential_verifier import CredentialVerifier
from shared.application.session_binder import SessionBinder
from shared.application.session_state import SessionState
from shared.domain.auth.challenge import (
    AuthenticationChallenge,
    ChallengeKind,
)
from shared.domain.auth.exceptions import (
    AuthenticationVerificationError,
    CloneDetectedError,
    InvalidInputError,
    WebAuthnError,
)
from shared.domain.auth.ledger import ChallengeLedger
from shared.domain.auth.principal import AuthenticatedPrincipal
from shared.domain.auth.relying_party import RelyingParty
from shared.domain.user.entities import WebAuthnUser
from shared.domain.user.exceptions import CredentialNotFoundError, UserNotFoundError
from shared.domain.user.repository import UserDirectory


USER_VERIFICATION = UserVerificationRequirement.PREFERRED

_BASE64URL = re.compile(r"[A-Za-z0-9_-]+={0,2}")

_events = structured_logger(__name__, ceremony="authentication")


def decode_user_handle(value: Any) -> Optional[str]:
    """Return the user ID carried in an assertion's ``userHandle``.

    Handles arrive base64url encoded; a handle that is already a plain UUID
    string is accepted as is.  A handle minted by another application for
    the same RP ID is returned undecoded so the lookup simply finds nobody.
    """

    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise InvalidInputError("Credential user handle must be a string")

    try:
        return str(uuid.UUID(value))
    except ValueError:
        pass

    if not _BASE64URL.fullmatch(value):
        raise InvalidInputError("Credential user handle could not be decoded")
    try:
        decoded = base64url_to_bytes(value).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return value

    try:
        return str(uuid.UUID(decoded))
    except ValueError:
        return decoded


def check_counter(stored: int, reported: int) -> None:
    """Reject a signature counter that failed to move forward.

    Authenticators that do not implement a counter always report zero; that
    case is accepted as long as nothing was ever stored either.
    """

    if stored == 0 and reported == 0:
        return
    if reported <= stored:
        raise CloneDetectedError()


@dataclass(slots=True)
class AuthenticationFlow:
    """Coordinate the two halves of a passkey sign-in."""

    directory: UserDirectory
    verifier: CredentialVerifier
    ledger: ChallengeLedger
    binder: SessionBinder

    def begin(
        self,
        state: SessionState,
        *,
        relying_party: RelyingParty,
        user: Optional[WebAuthnUser] = None,
        redirect_to: str = "/",
    ) -> ChallengeParameters:
        """Issue request options; without *user* the ceremony is discoverable."""

        credentials = self.directory.list_credentials(user.user_name) if user else []
        options = generate_authentication_options(
            rp_id=relying_party.id,
            user_verification=USER_VERIFICATION,
            allow_credentials=credential_descriptors(credentials),
        )

        # 新しい認証が始まった時点で既存のログイン状態は無効にする
        state.clear_principal()
        state.store_challenge(
            AuthenticationChallenge(
                user=user,
                challenge=bytes_to_base64url(options.challenge),
                redirect_to=redirect_to,
            )
        )
        _events.info(
            "webauthn.authentication.begin",
            user_id=user.user_id if user else None,
            discoverable=user is None,
            allowed=len(credentials),
        )
        return ChallengeParameters(
            kind=ChallengeKind.AUTHENTICATION,
            options=json.loads(options_to_json(options)),
        )

    def complete(
        self,
        state: SessionState,
        *,
        credential: Mapping[str, Any],
        relying_party: RelyingParty,
    ) -> AuthenticatedPrincipal:
        """Verify the assertion, advance the counter and sign the user in."""

        pending = consume_challenge(state, self.ledger, ChallengeKind.AUTHENTICATION)
        log = _events

        try:
            user = self._resolve_user(credential, pending.user)
            log = _events.bind(user_id=user.user_id)

            credential_id = credential.get("id")
            if not isinstance(credential_id, str) or not credential_id:
                raise InvalidInputError("Credential field 'id' is required")

            stored = self.directory.find_credential(user.user_name, credential_id)
            if stored is None:
                raise CredentialNotFoundError()

            verification = self.verifier.verify_authentication(
                credential=credential,
                expected_challenge=pending.challenge,
                relying_party=relying_party,
                public_key=stored.public_key,
                counter=stored.counter,
            )
            if not verification.verified or verification.new_counter is None:
                raise AuthenticationVerificationError()

            check_counter(stored.counter, verification.new_counter)
            self.directory.update_credential_counter(
                user.user_id, credential_id, verification.new_counter
            )
        except WebAuthnError as exc:
            log.warning("webauthn.authentication.failed", code=exc.code)
            raise

        log.info("webauthn.authentication.complete", counter=verification.new_counter)
        return self.binder.sign_in(state, user, redirect_to=pending.redirect_to)

    def _resolve_user(
        self, credential: Mapping[str, Any], session_user: Optional[WebAuthnUser]
    ) -> WebAuthnUser:
        response = credential.get("response")
        handle = response.get("userHandle") if isinstance(response, Mapping) else None
        user_id = decode_user_handle(handle)

        if user_id is not None:
            user = self.directory.find_by_id(user_id)
        elif session_user is not None:
            user = self.directory.find_by_id(session_user.user_id)
        else:
            user = None

        if user is None:
            raise UserNotFoundError()
        return user


__all__ = [
    "AuthenticationFlow",
    "USER_VERIFICATION",
    "check_counter",
    "decode_user_handle",
]
