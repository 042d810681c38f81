"""Centralized HTTP error handling for the passkey endpoints."""
from flask import current_app, jsonify, redirect, request, session
from flask_babel import gettext as _
from werkzeug.exceptions import HTTPException

from shared.domain.auth.exceptions import (
    GuardRedirect,
    ReAuthenticationRequired,
    WebAuthnError,
)


def _webauthn_error_response(error: WebAuthnError):
    return jsonify({"errors": {"webauthn": _(error.message)}}), 400


def register_error_handlers(app):
    """Register global error handlers.

    Flask dispatches on the most specific exception class, so guard redirects
    and forced logouts are handled before the generic WebAuthn payload.
    """

    @app.errorhandler(GuardRedirect)
    def handle_guard_redirect(error: GuardRedirect):
        current_app.logger.info(
            "Guard redirect %s -> %s",
            request.path,
            error.redirect_to,
            extra={"event": "webauthn.guard", "code": error.code, "path": request.path},
        )
        return redirect(error.redirect_to)

    @app.errorhandler(ReAuthenticationRequired)
    def handle_reauthentication(error: ReAuthenticationRequired):
        session.clear()
        current_app.logger.warning(
            "Session pointed at a missing user; signed out",
            extra={"event": "webauthn.session.stale_principal", "path": request.path},
        )
        return redirect("/")

    @app.errorhandler(WebAuthnError)
    def handle_webauthn_error(error: WebAuthnError):
        current_app.logger.warning(
            "%s %s: %s",
            request.method,
            request.path,
            error.message,
            extra={"event": "webauthn.error", "code": error.code, "path": request.path},
        )
        return _webauthn_error_response(error)

    @app.errorhandler(404)
    def handle_404(e):
        app.logger.warning("404 path=%s ua=%s", request.path, request.user_agent)
        return jsonify(error="Not Found"), 404

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify(error=e.description), e.code

        # 5xx は詳細を返さない
        app.logger.exception(
            "Unhandled error on %s %s",
            request.method,
            request.path,
            extra={"event": "api.http_5xx", "path": request.path},
        )
        return jsonify(error="Internal Server Error"), 500


__all__ = ["register_error_handlers"]
