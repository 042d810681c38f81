"""Ledger of WebAuthn challenges that have already been spent."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from core.db import db
from core.time import utc_now

BigInt = db.BigInteger().with_variant(db.Integer, "sqlite")


class ConsumedChallenge(db.Model):
    __tablename__ = "consumed_challenge"
    __table_args__ = (
        db.UniqueConstraint("digest", name="uq_consumed_challenge_digest"),
    )

    id: Mapped[int] = mapped_column(BigInt, primary_key=True, autoincrement=True)
    # SHA-256 hex digest; the challenge itself is never stored
    digest: Mapped[str] = mapped_column(db.String(64), nullable=False)
    kind: Mapped[str] = mapped_column(db.String(32), nullable=False)
    consumed_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
