"""Explicit view over the client-held session used by the passkey flows.

The flows never touch a framework session directly.  The transport hands them
a :class:`SessionState` wrapping whatever mutable mapping backs the session
(Flask's signed cookie session in the web app, a plain ``dict`` in tests) and
the state object is the only place that knows the key layout.
"""

from __future__ import annotations

from typing import Any, MutableMapping, Optional

from shared.domain.auth.challenge import (
    ChallengeKind,
    ChallengeSession,
    dump_challenge,
    load_challenge,
)


USER_SESSION_KEY = "userId"
REGISTRATION_SESSION_KEY = "registration"
AUTHENTICATION_SESSION_KEY = "authentication"

_CHALLENGE_KEYS = {
    ChallengeKind.REGISTRATION: REGISTRATION_SESSION_KEY,
    ChallengeKind.AUTHENTICATION: AUTHENTICATION_SESSION_KEY,
}


class SessionState:
    """Principal marker plus at most one pending challenge per ceremony kind."""

    def __init__(self, store: MutableMapping[str, Any]) -> None:
        self._store = store

    # Principal marker -------------------------------------------------
    @property
    def principal_id(self) -> Optional[str]:
        value = self._store.get(USER_SESSION_KEY)
        if isinstance(value, str) and value:
            return value
        return None

    def set_principal(self, user_id: str) -> None:
        self._store[USER_SESSION_KEY] = user_id

    def clear_principal(self) -> None:
        self._store.pop(USER_SESSION_KEY, None)

    # Pending challenges -----------------------------------------------
    def has_challenge(self, kind: ChallengeKind) -> bool:
        return _CHALLENGE_KEYS[kind] in self._store

    def store_challenge(self, challenge: ChallengeSession) -> None:
        """Persist *challenge*, replacing any pending challenge of the same kind."""

        self._store[_CHALLENGE_KEYS[challenge.kind]] = dump_challenge(challenge)

    def take_challenge(self, kind: ChallengeKind) -> ChallengeSession:
        """Remove and return the pending challenge of *kind*.

        The slot is cleared before validation so a challenge is read at most
        once whatever the outcome of the ceremony.
        """

        raw = self._store.pop(_CHALLENGE_KEYS[kind], None)
        return load_challenge(kind, raw)

    def clear_challenges(self) -> None:
        for key in _CHALLENGE_KEYS.values():
            self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


__all__ = [
    "AUTHENTICATION_SESSION_KEY",
    "REGISTRATION_SESSION_KEY",
    "SessionState",
    "USER_SESSION_KEY",
]
