"""marshmallow schemas for the passkey endpoints."""

from __future__ import annotations

import json
from typing import Any, Mapping

from marshmallow import INCLUDE, EXCLUDE, Schema, ValidationError, fields, pre_load, validate

from shared.domain.auth.challenge import ChallengeKind, format_validation_error
from shared.domain.auth.exceptions import InvalidInputError
from shared.domain.user.entities import AuthenticatorTransport


_TRANSPORTS = [transport.value for transport in AuthenticatorTransport]


class InitializeRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    redirect_to = fields.String(data_key="redirectTo", load_default="/")
    autofill = fields.Boolean(load_default=False)
    email = fields.Email(load_default=None, allow_none=True)

    @pre_load
    def _strip_blank(self, data, **kwargs):
        # HTML フォームの空文字は未入力として扱う
        cleaned = dict(data)
        for key in ("email", "redirectTo", "autofill"):
            value = cleaned.get(key)
            if isinstance(value, str):
                value = value.strip()
                if value:
                    cleaned[key] = value
                else:
                    cleaned.pop(key)
        return cleaned


class VerifyRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    action = fields.String(
        required=True,
        validate=validate.OneOf([kind.value for kind in ChallengeKind]),
    )
    credential = fields.Raw(required=True)


class _CredentialSchema(Schema):
    class Meta:
        unknown = INCLUDE

    id = fields.String(required=True, validate=validate.Length(min=1))
    rawId = fields.String(required=True, validate=validate.Length(min=1))
    type = fields.String(required=True, validate=validate.Equal("public-key"))
    clientExtensionResults = fields.Dict(load_default=dict)
    authenticatorAttachment = fields.String(allow_none=True)


class AttestationResponseSchema(Schema):
    class Meta:
        unknown = INCLUDE

    clientDataJSON = fields.String(required=True)
    attestationObject = fields.String(required=True)
    transports = fields.List(fields.String(validate=validate.OneOf(_TRANSPORTS)))


class AssertionResponseSchema(Schema):
    class Meta:
        unknown = INCLUDE

    clientDataJSON = fields.String(required=True)
    authenticatorData = fields.String(required=True)
    signature = fields.String(required=True)
    userHandle = fields.String(allow_none=True)


class RegistrationCredentialSchema(_CredentialSchema):
    response = fields.Nested(AttestationResponseSchema, required=True)
    transports = fields.List(fields.String(validate=validate.OneOf(_TRANSPORTS)))


class AuthenticationCredentialSchema(_CredentialSchema):
    response = fields.Nested(AssertionResponseSchema, required=True)


_CREDENTIAL_SCHEMAS: dict[ChallengeKind, type[Schema]] = {
    ChallengeKind.REGISTRATION: RegistrationCredentialSchema,
    ChallengeKind.AUTHENTICATION: AuthenticationCredentialSchema,
}


def load_request(schema: Schema, data: Mapping[str, Any]) -> dict:
    try:
        return schema.load(data)
    except ValidationError as exc:
        raise InvalidInputError(format_validation_error(exc)) from exc


def parse_credential(kind: ChallengeKind, raw: Any) -> dict:
    """Validate the client credential for *kind* and return it unchanged.

    The credential may arrive as a JSON object or, from an HTML form, as a
    JSON string. Field names are kept in their wire form for the verifier.
    """

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise InvalidInputError("Credential payload is not valid JSON") from exc
    if not isinstance(raw, dict):
        raise InvalidInputError("Credential payload must be an object")

    errors = _CREDENTIAL_SCHEMAS[kind]().validate(raw)
    if errors:
        raise InvalidInputError(format_validation_error(ValidationError(errors)))
    return raw


__all__ = [
    "AuthenticationCredentialSchema",
    "InitializeRequestSchema",
    "RegistrationCredentialSchema",
    "VerifyRequestSchema",
    "load_request",
    "parse_credential",
]
