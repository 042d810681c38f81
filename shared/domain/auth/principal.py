from __future__ import annotations

from dataclasses import dataclass

from shared.domain.user.entities import WebAuthnUser


@dataclass(frozen=True, slots=True)
class AuthenticatedPrincipal:
    """Outcome of a completed ceremony: who signed in and where to send them."""

    user: WebAuthnUser
    redirect_to: str = "/"

    @property
    def user_id(self) -> str:
        return self.user.user_id
