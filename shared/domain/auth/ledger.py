from __future__ import annotations

from typing import Protocol

from .challenge import ChallengeKind


class ChallengeLedger(Protocol):
    """Server-side record of challenges that have been spent."""

    def consume(self, challenge: str, kind: ChallengeKind) -> bool:
        """Mark *challenge* as used; return ``False`` if it already was."""
        ...
