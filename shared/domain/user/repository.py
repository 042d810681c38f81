from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .entities import Credential, RegistrationInfo, WebAuthnUser


class UserDirectory(Protocol):
    """Lookup and persistence of users and their registered credentials."""

    def find_by_id(self, user_id: str) -> Optional[WebAuthnUser]:
        ...

    def find_by_name(self, user_name: str) -> Optional[WebAuthnUser]:
        ...

    def list_credentials(self, user_name: str) -> list[Credential]:
        ...

    def find_credential(self, user_name: str, credential_id: str) -> Optional[Credential]:
        ...

    def upsert_user_with_credential(
        self,
        user: WebAuthnUser,
        registration_info: RegistrationInfo,
        *,
        transports: Iterable[str] | None = None,
        user_agent: str | None = None,
    ) -> WebAuthnUser:
        """Create *user* if missing and attach a new credential to it."""
        ...

    def update_credential_counter(self, user_id: str, credential_id: str, counter: int) -> None:
        ...

    def delete_credential(self, user_id: str, credential_id: str) -> None:
        """Remove a credential; raises ``LastCredentialError`` for the only one."""
        ...

    def delete_user(self, user_name: str) -> None:
        ...
