"""ユーザードメインに関する例外定義。"""

from shared.domain.auth.exceptions import RegistrationVerificationError, WebAuthnError


class UserNotFoundError(WebAuthnError):
    """The ceremony could not be tied to a known user."""

    code = "user_not_found"
    default_message = "Authentication verification error (user not found)"


class CredentialNotFoundError(WebAuthnError):
    """The presented credential is not registered to the resolved user."""

    code = "credential_not_found"
    default_message = "Authentication verification error (credential not found)"


class DuplicateCredentialError(RegistrationVerificationError):
    """The credential is already registered to this user."""

    code = "credential_already_registered"
    default_message = "This authenticator is already registered"


class EmailAlreadyRegisteredError(WebAuthnError):
    """既に同じメールアドレスのユーザーが存在する場合に発生する例外。"""

    code = "email_already_registered"
    default_message = "Email already exists"

    def __init__(self, email: str):
        super().__init__()
        self.email = email


class LastCredentialError(WebAuthnError):
    """Deleting the credential would leave the user unable to sign in."""

    code = "last_credential"
    default_message = "The last remaining credential cannot be removed"
