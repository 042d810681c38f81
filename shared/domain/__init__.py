"""Shared domain model."""

from .user import (
    Credential,
    EmailAlreadyRegisteredError,
    WebAuthnUser,
)
from .auth.principal import AuthenticatedPrincipal

__all__ = [
    "AuthenticatedPrincipal",
    "Credential",
    "EmailAlreadyRegisteredError",
    "WebAuthnUser",
]
