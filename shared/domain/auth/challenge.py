"""Pending-ceremony state carried across requests in the client session.

A challenge session is a tagged union of two variants.  Both are serialised
to plain dictionaries (``user``/``challenge``/``redirectTo``) so the session
transport only ever stores JSON-compatible data, and both are validated on
the way back in: anything that does not match the expected variant is
reported as :class:`SessionMismatchError` rather than crashing the request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, validate

from shared.domain.auth.exceptions import SessionMismatchError
from shared.domain.user.entities import WebAuthnUser


class ChallengeKind(str, Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass(frozen=True, slots=True)
class RegistrationChallenge:
    user: WebAuthnUser
    challenge: str
    redirect_to: str = "/"

    kind: ClassVar[ChallengeKind] = ChallengeKind.REGISTRATION


@dataclass(frozen=True, slots=True)
class AuthenticationChallenge:
    # None for discoverable ("autofill") ceremonies without a username hint
    user: Optional[WebAuthnUser]
    challenge: str
    redirect_to: str = "/"

    kind: ClassVar[ChallengeKind] = ChallengeKind.AUTHENTICATION


ChallengeSession = Union[RegistrationChallenge, AuthenticationChallenge]


class WebAuthnUserSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    user_id = fields.UUID(required=True, data_key="userID")
    user_name = fields.Email(required=True, data_key="userName")

    @post_load
    def make_user(self, data, **kwargs) -> WebAuthnUser:
        return WebAuthnUser(user_id=str(data["user_id"]), user_name=data["user_name"])


class RegistrationChallengeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    user = fields.Nested(WebAuthnUserSchema, required=True)
    challenge = fields.String(required=True, validate=validate.Length(min=1))
    redirect_to = fields.String(data_key="redirectTo", load_default="/")

    @post_load
    def make_challenge(self, data, **kwargs) -> RegistrationChallenge:
        return RegistrationChallenge(**data)


class AuthenticationChallengeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    user = fields.Nested(WebAuthnUserSchema, allow_none=True, load_default=None)
    challenge = fields.String(required=True, validate=validate.Length(min=1))
    redirect_to = fields.String(data_key="redirectTo", load_default="/")

    @post_load
    def make_challenge(self, data, **kwargs) -> AuthenticationChallenge:
        return AuthenticationChallenge(**data)


_SCHEMAS: dict[ChallengeKind, type[Schema]] = {
    ChallengeKind.REGISTRATION: RegistrationChallengeSchema,
    ChallengeKind.AUTHENTICATION: AuthenticationChallengeSchema,
}


def format_validation_error(error: ValidationError) -> str:
    """Flatten marshmallow messages into a single readable line."""

    parts: list[str] = []

    def _walk(messages: Any, path: str) -> None:
        if isinstance(messages, dict):
            for key, value in messages.items():
                _walk(value, f"{path}.{key}" if path else str(key))
        elif isinstance(messages, (list, tuple)):
            for item in messages:
                _walk(item, path)
        else:
            parts.append(f"{messages} at \"{path}\"" if path else str(messages))

    _walk(error.messages, "")
    return "Validation error: " + "; ".join(parts) if parts else "Validation error"


def dump_challenge(challenge: ChallengeSession) -> dict[str, Any]:
    """Return the session representation of *challenge*."""

    schema = _SCHEMAS[challenge.kind]()
    return schema.dump(challenge)


def load_challenge(kind: ChallengeKind, raw: Any) -> ChallengeSession:
    """Rebuild the pending challenge of *kind* from its session representation."""

    if raw is None:
        raise SessionMismatchError(f"No pending {kind.value} challenge")
    if not isinstance(raw, dict):
        raise SessionMismatchError(f"Malformed {kind.value} challenge")

    try:
        return _SCHEMAS[kind]().load(raw)
    except ValidationError as exc:
        raise SessionMismatchError(format_validation_error(exc)) from exc


__all__ = [
    "AuthenticationChallenge",
    "ChallengeKind",
    "ChallengeSession",
    "RegistrationChallenge",
    "dump_challenge",
    "format_validation_error",
    "load_challenge",
]
