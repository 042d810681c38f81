"""Management of a signed-in user's passkeys and of whole accounts."""

from __future__ import annotations

from dataclasses import dataclass

from core.logging_config import structured_logger
from shared.domain.user.entities import Credential, WebAuthnUser
from shared.domain.user.exceptions import UserNotFoundError
from shared.domain.user.repository import UserDirectory


_events = structured_logger(__name__)


@dataclass(frozen=True, slots=True)
class CredentialSummary:
    credential_id: str
    transports: tuple[str, ...]

    def to_json(self) -> dict:
        return {"id": self.credential_id, "transports": list(self.transports)}


class AccountService:
    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    def list_credentials(self, user: WebAuthnUser) -> list[CredentialSummary]:
        credentials: list[Credential] = self.directory.list_credentials(user.user_name)
        return [
            CredentialSummary(
                credential_id=credential.credential_id,
                transports=tuple(credential.transport_values),
            )
            for credential in credentials
        ]

    def remove_credential(self, user: WebAuthnUser, credential_id: str) -> None:
        """Delete one passkey; the directory refuses to drop the last one."""

        self.directory.delete_credential(user.user_id, credential_id)
        _events.info("webauthn.credential.delete", user_id=user.user_id)

    def delete_account(self, user_name: str) -> None:
        """ユーザーと登録済みの認証器をまとめて削除する。"""
        if self.directory.find_by_name(user_name) is None:
            raise UserNotFoundError("User not found")
        self.directory.delete_user(user_name)


__all__ = ["AccountService", "CredentialSummary"]
