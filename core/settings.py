"""Centralised application settings abstraction.

This module exposes :class:`ApplicationSettings` which consolidates every
configuration lookup used by the passkey flows.  The active Flask application
config takes precedence, then the process environment (or any mapping
provided), and finally the defaults declared here.

The global :data:`settings` instance should be used for production code, while
tests can instantiate their own :class:`ApplicationSettings` with a dedicated
mapping to validate behaviour in isolation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, TYPE_CHECKING, cast

from flask import current_app, has_app_context

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


DEFAULT_SESSION_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
DEFAULT_RP_ID = "localhost"
DEFAULT_ORIGIN = "http://localhost:5000"
DEFAULT_RP_NAME = "Passkey Login"


@dataclass(frozen=True)
class _EnvironmentFacade:
    """Thin wrapper that provides ``Mapping`` compatible access to env vars."""

    source: Mapping[str, str]

    @classmethod
    def from_environ(cls, env: Optional[Mapping[str, str]] = None) -> "_EnvironmentFacade":
        return cls(source=os.environ if env is None else env)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.source.get(key, default)


class ApplicationSettings:
    """Typed accessors for configuration values."""

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self._env = _EnvironmentFacade.from_environ(env)

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------
    def _get(self, key: str, default: Optional[str] = None):
        if has_app_context():
            app = cast("Flask", current_app)
            if key in app.config:
                return app.config.get(key)

        value = self._env.get(key)
        if value is not None:
            return value

        return default

    def get(self, key: str, default=None):
        """Return the configured value for *key* or *default* if missing."""

        value = self._get(key)
        return default if value is None else value

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Return a boolean configuration value."""

        value = self._get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            normalised = value.strip().lower()
            if normalised in {"1", "true", "yes", "on"}:
                return True
            if normalised in {"0", "false", "no", "off"}:
                return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Return an integer configuration value."""

        value = self._get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _get_text(self, key: str) -> Optional[str]:
        value = self._get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    # ------------------------------------------------------------------
    # Generic flags
    # ------------------------------------------------------------------
    @property
    def testing(self) -> bool:
        return self.get_bool("TESTING")

    @property
    def secret_key(self) -> Optional[str]:
        return self._get_text("SECRET_KEY")

    @property
    def log_level(self) -> str:
        return (self._get_text("LOG_LEVEL") or "INFO").upper()

    # ------------------------------------------------------------------
    # Database configuration
    # ------------------------------------------------------------------
    @property
    def sqlalchemy_database_uri(self) -> str:
        return self._get_text("DATABASE_URI") or "sqlite://"

    # ------------------------------------------------------------------
    # Session transport
    # ------------------------------------------------------------------
    @property
    def session_cookie_secure(self) -> bool:
        return self.get_bool("SESSION_COOKIE_SECURE", False)

    @property
    def session_max_age_seconds(self) -> int:
        value = self.get_int("SESSION_MAX_AGE", DEFAULT_SESSION_MAX_AGE)
        return value if value > 0 else DEFAULT_SESSION_MAX_AGE

    # ------------------------------------------------------------------
    # URL generation
    # ------------------------------------------------------------------
    @property
    def server_name(self) -> Optional[str]:
        return self._get_text("SERVER_NAME")

    @property
    def preferred_url_scheme(self) -> Optional[str]:
        return self._get_text("PREFERRED_URL_SCHEME")

    # ------------------------------------------------------------------
    # WebAuthn relying party
    # ------------------------------------------------------------------
    @property
    def webauthn_rp_id(self) -> str:
        value = self._get_text("WEBAUTHN_RP_ID")
        if value:
            return value

        server_name = self.server_name
        if server_name:
            return server_name.split(":", 1)[0]

        return DEFAULT_RP_ID

    @property
    def webauthn_origin(self) -> str:
        value = self._get_text("WEBAUTHN_ORIGIN")
        if value:
            return value.rstrip("/")

        server_name = self.server_name
        if server_name:
            if server_name.startswith("http://") or server_name.startswith("https://"):
                return server_name.rstrip("/")
            scheme = self.preferred_url_scheme or "https"
            return f"{scheme}://{server_name}"

        return DEFAULT_ORIGIN

    @property
    def webauthn_rp_name(self) -> str:
        return self._get_text("WEBAUTHN_RP_NAME") or DEFAULT_RP_NAME

    @property
    def webauthn_require_user_verification(self) -> bool:
        return self.get_bool("WEBAUTHN_REQUIRE_USER_VERIFICATION", True)


settings = ApplicationSettings()

__all__ = ["ApplicationSettings", "settings"]
