"""SQLAlchemy-backed ledger of spent WebAuthn challenges."""
from __future__ import annotations

import hashlib
import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from core.models.consumed_challenge import ConsumedChallenge
from core.settings import DEFAULT_SESSION_MAX_AGE
from core.time import utc_cutoff
from shared.domain.auth.challenge import ChallengeKind


logger = logging.getLogger(__name__)


def challenge_digest(challenge: str) -> str:
    return hashlib.sha256(challenge.encode("utf-8")).hexdigest()


class SqlAlchemyChallengeLedger:
    """Insert-or-fail record of consumed challenges.

    The unique constraint on ``digest`` is the concurrency primitive: of two
    requests racing to spend the same challenge only one insert commits.
    """

    def __init__(self, session, retention_seconds: int = DEFAULT_SESSION_MAX_AGE) -> None:
        self.session = session
        self.retention_seconds = retention_seconds

    def consume(self, challenge: str, kind: ChallengeKind) -> bool:
        self.purge_expired()
        record = ConsumedChallenge(digest=challenge_digest(challenge), kind=kind.value)
        try:
            self.session.add(record)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                "Rejected reuse of a %s challenge",
                kind.value,
                extra={"event": "webauthn.challenge.replayed"},
            )
            return False
        return True

    def purge_expired(self) -> int:
        """Drop rows older than the retention window; the cookie is dead by then."""

        stmt = delete(ConsumedChallenge).where(
            ConsumedChallenge.consumed_at < utc_cutoff(self.retention_seconds)
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        return result.rowcount or 0


__all__ = ["SqlAlchemyChallengeLedger", "challenge_digest"]
