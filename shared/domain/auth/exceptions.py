"""Error taxonomy shared by the registration and authentication ceremonies."""

from __future__ import annotations

from typing import Optional


class WebAuthnError(Exception):
    """Base exception for every failure surfaced by the passkey flows.

    ``code`` is stable and meant for programmatic checks; ``message`` is the
    text shown to the user under ``errors.webauthn``.
    """

    code = "webauthn_error"
    default_message = "WebAuthn request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(WebAuthnError):
    """The request or credential payload is malformed."""

    code = "invalid_input"
    default_message = "Invalid request"


class SessionMismatchError(WebAuthnError):
    """No usable pending challenge of the expected kind exists."""

    code = "session_mismatch"
    default_message = "No pending WebAuthn challenge"


class RegistrationVerificationError(WebAuthnError):
    code = "registration_verification_failed"
    default_message = "Registration verification failed"


class AuthenticationVerificationError(WebAuthnError):
    code = "authentication_verification_failed"
    default_message = "Authentication verification failed"


class CloneDetectedError(AuthenticationVerificationError):
    """The signature counter did not advance past the stored value."""

    code = "clone_detected"
    default_message = "Authentication verification failed (signature counter did not increase)"


class ReAuthenticationRequired(WebAuthnError):
    """The session points at a user that no longer exists."""

    code = "reauthentication_required"
    default_message = "Please sign in again"


class GuardRedirect(WebAuthnError):
    """Guard failure that the transport turns into a redirect."""

    def __init__(self, redirect_to: str, message: Optional[str] = None):
        super().__init__(message)
        self.redirect_to = redirect_to


class AuthenticationRequired(GuardRedirect):
    code = "authentication_required"
    default_message = "Sign in required"


class AlreadyAuthenticated(GuardRedirect):
    code = "already_authenticated"
    default_message = "Already signed in"
