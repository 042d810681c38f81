"""Helpers deriving the relying party and redirect targets from a request."""

from __future__ import annotations

from flask import Request, request

from core.settings import settings
from shared.domain.auth.relying_party import RelyingParty


_DEFAULT_RP_ID_SENTINELS = {"localhost", "127.0.0.1"}
_DEFAULT_ORIGIN_SENTINELS = {
    "http://localhost",
    "http://localhost:5000",
    "https://localhost",
    "https://localhost:5000",
}


def _extract_forwarded_proto(forwarded_header: str | None) -> str | None:
    """Parse the ``Forwarded`` header and return the ``proto`` value if present."""

    if not forwarded_header:
        return None

    for part in forwarded_header.split(","):
        for attribute in part.split(";"):
            attribute = attribute.strip()
            if attribute.lower().startswith("proto="):
                value = attribute.split("=", 1)[1].strip().strip('"')
                if value:
                    return value.lower()
    return None


def determine_external_scheme(req: Request | None = None) -> str:
    """Return the scheme the browser used to reach us.

    ``Forwarded`` wins over ``X-Forwarded-Proto``, then the WSGI scheme.
    Flask always defines ``PREFERRED_URL_SCHEME`` so it is not consulted here.
    """

    req = req or request

    forwarded_proto = _extract_forwarded_proto(req.headers.get("Forwarded"))
    if forwarded_proto:
        return forwarded_proto

    x_forwarded_proto = req.headers.get("X-Forwarded-Proto")
    if x_forwarded_proto:
        proto = x_forwarded_proto.split(",")[0].strip()
        if proto:
            return proto.lower()

    return (req.scheme or "https").lower()


def resolve_rp_id(req: Request | None = None) -> str:
    """Relying party ID: the configured value unless it is a localhost default."""

    req = req or request
    candidate = settings.webauthn_rp_id
    host = req.host.split(":", 1)[0] if req.host else None
    if not host:
        return candidate

    if candidate in _DEFAULT_RP_ID_SENTINELS and host not in _DEFAULT_RP_ID_SENTINELS:
        return host
    return candidate


def resolve_origin(req: Request | None = None) -> str:
    """Expected ``clientDataJSON.origin`` for the current request."""

    req = req or request
    candidate = settings.webauthn_origin.rstrip("/")
    if not req.host:
        return candidate

    derived = f"{determine_external_scheme(req)}://{req.host}".rstrip("/")
    if candidate in _DEFAULT_ORIGIN_SENTINELS and derived not in _DEFAULT_ORIGIN_SENTINELS:
        return derived
    return candidate


def relying_party_for_request(req: Request | None = None) -> RelyingParty:
    req = req or request
    return RelyingParty(
        id=resolve_rp_id(req),
        name=settings.webauthn_rp_name,
        origin=resolve_origin(req),
    )


def resolve_safe_redirect(candidate: str | None, fallback: str = "/") -> str:
    """Accept only same-site absolute paths; anything else becomes *fallback*."""

    if candidate and isinstance(candidate, str):
        value = candidate.strip()
        if value.startswith("/") and not value.startswith("//") and "\\" not in value:
            return value
    return fallback


__all__ = [
    "determine_external_scheme",
    "relying_party_for_request",
    "resolve_origin",
    "resolve_rp_id",
    "resolve_safe_redirect",
]
