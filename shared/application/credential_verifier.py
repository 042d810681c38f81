"""Cryptographic verification capability used by the passkey flows."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.structs import (
    AuthenticationCredential,
    AuthenticatorAssertionResponse,
    AuthenticatorAttachment,
    AuthenticatorAttestationResponse,
    AuthenticatorTransport,
    RegistrationCredential,
)

from shared.domain.auth.exceptions import InvalidInputError
from shared.domain.auth.relying_party import RelyingParty
from shared.domain.user.entities import CredentialDeviceType, RegistrationInfo


@dataclass(frozen=True, slots=True)
class RegistrationVerification:
    verified: bool
    registration_info: Optional[RegistrationInfo] = None
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AuthenticationVerification:
    verified: bool
    new_counter: Optional[int] = None
    reason: Optional[str] = None


class CredentialVerifier(Protocol):
    """Pure check of a signed client response against the expected values.

    Implementations never mutate state.  A payload that cannot be parsed
    raises :class:`InvalidInputError`; a response that parses but does not
    verify yields ``verified=False``.
    """

    def verify_registration(
        self,
        *,
        credential: Mapping[str, Any],
        expected_challenge: str,
        relying_party: RelyingParty,
    ) -> RegistrationVerification:
        ...

    def verify_authentication(
        self,
        *,
        credential: Mapping[str, Any],
        expected_challenge: str,
        relying_party: RelyingParty,
        public_key: bytes,
        counter: int,
    ) -> AuthenticationVerification:
        ...


@dataclass(slots=True)
class WebAuthnCredentialVerifier:
    """:class:`CredentialVerifier` backed by the ``webauthn`` library."""

    require_user_verification: bool = True

    def verify_registration(
        self,
        *,
        credential: Mapping[str, Any],
        expected_challenge: str,
        relying_party: RelyingParty,
    ) -> RegistrationVerification:
        parsed = self.build_registration_credential(credential)
        challenge = self._decode_expected_challenge(expected_challenge)

        try:
            verification = verify_registration_response(
                credential=parsed,
                expected_challenge=challenge,
                expected_rp_id=relying_party.id,
                expected_origin=relying_party.origin,
                require_user_verification=self.require_user_verification,
            )
        except Exception as exc:
            return RegistrationVerification(verified=False, reason=str(exc) or type(exc).__name__)

        device_type = getattr(verification.credential_device_type, "value", verification.credential_device_type)
        info = RegistrationInfo(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=bytes(verification.credential_public_key),
            counter=int(verification.sign_count),
            device_type=CredentialDeviceType(device_type),
            backed_up=bool(verification.credential_backed_up),
        )
        return RegistrationVerification(verified=True, registration_info=info)

    def verify_authentication(
        self,
        *,
        credential: Mapping[str, Any],
        expected_challenge: str,
        relying_party: RelyingParty,
        public_key: bytes,
        counter: int,
    ) -> AuthenticationVerification:
        parsed = self.build_authentication_credential(credential)
        challenge = self._decode_expected_challenge(expected_challenge)

        try:
            verification = verify_authentication_response(
                credential=parsed,
                expected_challenge=challenge,
                expected_rp_id=relying_party.id,
                expected_origin=relying_party.origin,
                credential_public_key=public_key,
                credential_current_sign_count=counter,
                require_user_verification=self.require_user_verification,
            )
        except Exception as exc:
            return AuthenticationVerification(verified=False, reason=str(exc) or type(exc).__name__)

        return AuthenticationVerification(verified=True, new_counter=int(verification.new_sign_count))

    # ------------------------------------------------------------------
    # Payload parsing
    # ------------------------------------------------------------------
    @classmethod
    def build_registration_credential(cls, payload: Any) -> RegistrationCredential:
        data = cls._coerce_credential_payload(payload)
        response = data.get("response")
        if not isinstance(response, dict):
            raise InvalidInputError("Credential response is missing")

        transports = response.get("transports")
        if transports is None:
            transports = data.get("transports")

        try:
            return RegistrationCredential(
                id=cls._require_string(data, "id"),
                raw_id=base64url_to_bytes(cls._require_string(data, "rawId")),
                response=AuthenticatorAttestationResponse(
                    client_data_json=base64url_to_bytes(
                        cls._require_string(response, "clientDataJSON")
                    ),
                    attestation_object=base64url_to_bytes(
                        cls._require_string(response, "attestationObject")
                    ),
                    transports=cls._parse_transports(transports),
                ),
                authenticator_attachment=cls._parse_authenticator_attachment(
                    data.get("authenticatorAttachment")
                ),
            )
        except InvalidInputError:
            raise
        except Exception as exc:
            raise InvalidInputError("Credential payload could not be decoded") from exc

    @classmethod
    def build_authentication_credential(cls, payload: Any) -> AuthenticationCredential:
        data = cls._coerce_credential_payload(payload)
        response = data.get("response")
        if not isinstance(response, dict):
            raise InvalidInputError("Credential response is missing")

        user_handle: bytes | None = None
        user_handle_value = response.get("userHandle")
        if user_handle_value:
            if not isinstance(user_handle_value, str):
                raise InvalidInputError("Credential user handle must be a string")
            try:
                user_handle = base64url_to_bytes(user_handle_value)
            except Exception as exc:
                raise InvalidInputError("Credential user handle could not be decoded") from exc

        try:
            return AuthenticationCredential(
                id=cls._require_string(data, "id"),
                raw_id=base64url_to_bytes(cls._require_string(data, "rawId")),
                response=AuthenticatorAssertionResponse(
                    client_data_json=base64url_to_bytes(
                        cls._require_string(response, "clientDataJSON")
                    ),
                    authenticator_data=base64url_to_bytes(
                        cls._require_string(response, "authenticatorData")
                    ),
                    signature=base64url_to_bytes(cls._require_string(response, "signature")),
                    user_handle=user_handle,
                ),
                authenticator_attachment=cls._parse_authenticator_attachment(
                    data.get("authenticatorAttachment")
                ),
            )
        except InvalidInputError:
            raise
        except Exception as exc:
            raise InvalidInputError("Credential payload could not be decoded") from exc

    @staticmethod
    def _coerce_credential_payload(payload: Any) -> dict:
        if isinstance(payload, Mapping):
            return dict(payload)

        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise InvalidInputError("Credential payload is not valid UTF-8") from exc

        if isinstance(payload, str):
            try:
                data = json.loads(payload)
            except ValueError as exc:
                raise InvalidInputError("Credential payload is not valid JSON") from exc
            if isinstance(data, dict):
                return data

        raise InvalidInputError("Credential payload must be an object")

    @staticmethod
    def _parse_authenticator_attachment(value: Any) -> AuthenticatorAttachment | None:
        if value is None:
            return None
        if not isinstance(value, str) or not value:
            raise InvalidInputError("Invalid authenticator attachment")
        try:
            return AuthenticatorAttachment(value)
        except ValueError as exc:
            raise InvalidInputError("Invalid authenticator attachment") from exc

    @staticmethod
    def _parse_transports(transports: Any) -> list[AuthenticatorTransport] | None:
        if transports is None:
            return None
        if isinstance(transports, (str, bytes)) or not isinstance(transports, Iterable):
            raise InvalidInputError("Invalid authenticator transports")

        parsed: list[AuthenticatorTransport] = []
        for transport in transports:
            if not isinstance(transport, str) or not transport:
                raise InvalidInputError("Invalid authenticator transports")
            try:
                parsed.append(AuthenticatorTransport(transport))
            except ValueError as exc:
                raise InvalidInputError(f"Unknown authenticator transport '{transport}'") from exc
        return parsed

    @staticmethod
    def _require_string(payload: Mapping[str, Any], key: str) -> str:
        value = payload.get(key)
        if not isinstance(value, str) or not value:
            raise InvalidInputError(f"Credential field '{key}' is required")
        return value

    @staticmethod
    def _decode_expected_challenge(value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)

        if isinstance(value, str) and value:
            try:
                return base64url_to_bytes(value)
            except Exception as exc:
                raise InvalidInputError("Stored challenge could not be decoded") from exc

        raise InvalidInputError("Stored challenge could not be decoded")


__all__ = [
    "AuthenticationVerification",
    "CredentialVerifier",
    "RegistrationVerification",
    "WebAuthnCredentialVerifier",
]
