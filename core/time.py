"""Time-related helpers.

Timestamps stored by the user directory and the challenge ledger are always
timezone-aware UTC values obtained through :func:`utc_now`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return the current UTC time as an aware ``datetime`` instance."""

    return datetime.now(timezone.utc)


def utc_now_isoformat() -> str:
    """Return the current UTC time in ISO 8601 format ending with ``Z``."""

    return utc_now().isoformat().replace("+00:00", "Z")


def utc_cutoff(seconds: int) -> datetime:
    """Return the UTC instant lying *seconds* in the past."""

    return utc_now() - timedelta(seconds=seconds)
