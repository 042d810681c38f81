from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RelyingParty:
    """The service credentials are scoped to.

    ``id`` is the RP ID (a registrable hostname), ``origin`` the exact origin
    the client must report in its signed client data.
    """

    id: str
    name: str
    origin: str
