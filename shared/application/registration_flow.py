"""Registration ceremony: issue a creation challenge and persist the result."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from webauthn import generate_registration_options, options_to_json
from webauthn.helpers import bytes_to_base64url
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from core.logging_config import structured_logger
from shared.application.ceremony import (
    ChallengeParameters,
    consume_challenge,
    credential_descriptors,
    reported_transports,
)
from shared.application.credential_verifier import CredentialVerifier
from shared.application.session_binder import SessionBinder
from shared.application.session_state import SessionState
from shared.domain.auth.challenge import ChallengeKind, RegistrationChallenge
from shared.domain.auth.exceptions import RegistrationVerificationError, WebAuthnError
from shared.domain.auth.ledger import ChallengeLedger
from shared.domain.auth.principal import AuthenticatedPrincipal
from shared.domain.auth.relying_party import RelyingParty
from shared.domain.user.entities import WebAuthnUser
from shared.domain.user.exceptions import DuplicateCredentialError
from shared.domain.user.repository import UserDirectory


RESIDENT_KEY = ResidentKeyRequirement.REQUIRED
USER_VERIFICATION = UserVerificationRequirement.PREFERRED

_events = structured_logger(__name__, ceremony="registration")


@dataclass(slots=True)
class RegistrationFlow:
    """Coordinate the two halves of a passkey registration."""

    directory: UserDirectory
    verifier: CredentialVerifier
    ledger: ChallengeLedger
    binder: SessionBinder

    def begin(
        self,
        state: SessionState,
        *,
        user: WebAuthnUser,
        relying_party: RelyingParty,
        redirect_to: str = "/",
    ) -> ChallengeParameters:
        """Issue creation options for *user* and remember the challenge."""

        existing = self.directory.list_credentials(user.user_name)
        options = generate_registration_options(
            rp_id=relying_party.id,
            rp_name=relying_party.name,
            user_id=user.user_handle,
            user_name=user.user_name,
            user_display_name=user.user_name,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=RESIDENT_KEY,
                user_verification=USER_VERIFICATION,
            ),
            exclude_credentials=credential_descriptors(existing),
        )

        state.store_challenge(
            RegistrationChallenge(
                user=user,
                challenge=bytes_to_base64url(options.challenge),
                redirect_to=redirect_to,
            )
        )
        _events.info(
            "webauthn.registration.begin",
            user_id=user.user_id,
            excluded=len(existing),
        )
        return ChallengeParameters(
            kind=ChallengeKind.REGISTRATION,
            options=json.loads(options_to_json(options)),
            user=user,
        )

    def complete(
        self,
        state: SessionState,
        *,
        credential: Mapping[str, Any],
        relying_party: RelyingParty,
        user_agent: Optional[str] = None,
    ) -> AuthenticatedPrincipal:
        """Verify the attestation and sign the bound user in."""

        pending = consume_challenge(state, self.ledger, ChallengeKind.REGISTRATION)
        log = _events.bind(user_id=pending.user.user_id)

        try:
            verification = self.verifier.verify_registration(
                credential=credential,
                expected_challenge=pending.challenge,
                relying_party=relying_party,
            )
            if not verification.verified or verification.registration_info is None:
                raise RegistrationVerificationError()

            info = verification.registration_info
            excluded = {
                stored.credential_id
                for stored in self.directory.list_credentials(pending.user.user_name)
            }
            if info.credential_id in excluded:
                raise DuplicateCredentialError()

            user = self.directory.upsert_user_with_credential(
                pending.user,
                info,
                transports=reported_transports(credential),
                user_agent=user_agent,
            )
        except WebAuthnError as exc:
            log.warning("webauthn.registration.failed", code=exc.code)
            raise

        log.info("webauthn.registration.complete", device_type=info.device_type.value)
        return self.binder.sign_in(state, user, redirect_to=pending.redirect_to)


__all__ = ["RESIDENT_KEY", "RegistrationFlow", "USER_VERIFICATION"]
