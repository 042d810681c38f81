"""Promotion of a verified ceremony to an authenticated session and back."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from core.logging_config import structured_logger
from shared.application.session_state import SessionState
from shared.domain.auth.exceptions import (
    AlreadyAuthenticated,
    AuthenticationRequired,
    ReAuthenticationRequired,
)
from shared.domain.auth.principal import AuthenticatedPrincipal
from shared.domain.user.entities import WebAuthnUser
from shared.domain.user.repository import UserDirectory


logger = logging.getLogger(__name__)
_events = structured_logger(__name__)


@dataclass(slots=True)
class SessionBinder:
    directory: UserDirectory
    login_path: str = "/login"
    home_path: str = "/"

    def current_user(self, state: SessionState) -> Optional[WebAuthnUser]:
        """Return the signed-in user, or ``None`` for an anonymous session.

        A principal marker that points at a deleted user is an inconsistency
        the caller cannot recover from: the whole session is destroyed and
        :class:`ReAuthenticationRequired` is raised.
        """

        user_id = state.principal_id
        if user_id is None:
            return None

        user = self.directory.find_by_id(user_id)
        if user is None:
            state.clear()
            _events.warning("webauthn.session.stale_principal", user_id=user_id)
            raise ReAuthenticationRequired()
        return user

    def require_user(self, state: SessionState, *, redirect_to: str = "/") -> WebAuthnUser:
        user = self.current_user(state)
        if user is None:
            target = f"{self.login_path}?{urlencode({'redirectTo': redirect_to})}"
            raise AuthenticationRequired(target)
        return user

    def require_no_user(self, state: SessionState) -> None:
        # A dangling marker is simply ignored here; the login page must stay reachable.
        user_id = state.principal_id
        if user_id is None:
            return
        if self.directory.find_by_id(user_id) is not None:
            raise AlreadyAuthenticated(self.home_path)

    def sign_in(
        self, state: SessionState, user: WebAuthnUser, *, redirect_to: str = "/"
    ) -> AuthenticatedPrincipal:
        state.set_principal(user.user_id)
        state.clear_challenges()
        return AuthenticatedPrincipal(user=user, redirect_to=redirect_to)

    def logout(self, state: SessionState) -> None:
        """Destroy every piece of session state. Safe to call repeatedly."""

        user_id = state.principal_id
        state.clear()
        if user_id is not None:
            _events.info("webauthn.session.logout", user_id=user_id)
        else:
            logger.debug("Logout requested for an anonymous session")


__all__ = ["SessionBinder"]
