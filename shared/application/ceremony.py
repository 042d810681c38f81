"""Pieces shared by the registration and authentication flows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from webauthn.helpers import base64url_to_bytes
from webauthn.helpers.structs import (
    AuthenticatorTransport as WebAuthnTransport,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialType,
)

from shared.application.session_state import SessionState
from shared.domain.auth.challenge import ChallengeKind, ChallengeSession
from shared.domain.auth.exceptions import SessionMismatchError
from shared.domain.auth.ledger import ChallengeLedger
from shared.domain.user.entities import Credential, WebAuthnUser


@dataclass(frozen=True, slots=True)
class ChallengeParameters:
    """Challenge material handed to the client's platform authenticator."""

    kind: ChallengeKind
    options: dict[str, Any]
    user: Optional[WebAuthnUser] = None

    @property
    def challenge(self) -> str:
        return self.options["challenge"]

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.kind.value, "options": self.options}
        if self.kind is ChallengeKind.REGISTRATION and self.user is not None:
            payload["user"] = {"id": self.user.user_id, "name": self.user.user_name}
        return payload


def credential_descriptors(credentials: Iterable[Credential]) -> list[PublicKeyCredentialDescriptor]:
    """Build exclude/allow list entries keyed by credential ID."""

    descriptors: list[PublicKeyCredentialDescriptor] = []
    for credential in credentials:
        try:
            credential_id = base64url_to_bytes(credential.credential_id)
        except Exception:  # pragma: no cover - ids are written by the directory
            continue
        transports = [WebAuthnTransport(value) for value in credential.transport_values]
        descriptors.append(
            PublicKeyCredentialDescriptor(
                id=credential_id,
                type=PublicKeyCredentialType.PUBLIC_KEY,
                transports=transports or None,
            )
        )
    return descriptors


def consume_challenge(
    state: SessionState, ledger: ChallengeLedger, kind: ChallengeKind
) -> ChallengeSession:
    """Take the pending challenge of *kind* out of the session exactly once.

    The session slot is emptied first; the ledger then rejects a challenge
    that another request (or an older copy of the cookie) already spent.
    """

    pending = state.take_challenge(kind)
    if not ledger.consume(pending.challenge, kind):
        raise SessionMismatchError("This challenge has already been used")
    return pending


def reported_transports(credential: Mapping[str, Any]) -> list[str]:
    """Transports the client reported alongside a registration response."""

    response = credential.get("response")
    values = None
    if isinstance(response, Mapping):
        values = response.get("transports")
    if values is None:
        values = credential.get("transports")
    if not isinstance(values, (list, tuple)):
        return []
    return [value for value in values if isinstance(value, str)]


__all__ = [
    "ChallengeParameters",
    "consume_challenge",
    "credential_descriptors",
    "reported_transports",
]
