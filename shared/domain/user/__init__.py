"""ユーザードメインの公開インターフェース。"""

from .entities import (
    AuthenticatorTransport,
    Credential,
    CredentialDeviceType,
    RegistrationInfo,
    WebAuthnUser,
)
from .repository import UserDirectory
from .exceptions import (
    CredentialNotFoundError,
    DuplicateCredentialError,
    EmailAlreadyRegisteredError,
    LastCredentialError,
    UserNotFoundError,
)

__all__ = [
    "AuthenticatorTransport",
    "Credential",
    "CredentialDeviceType",
    "CredentialNotFoundError",
    "DuplicateCredentialError",
    "EmailAlreadyRegisteredError",
    "LastCredentialError",
    "RegistrationInfo",
    "UserDirectory",
    "UserNotFoundError",
    "WebAuthnUser",
]
