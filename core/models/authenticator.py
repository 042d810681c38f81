"""WebAuthn authenticator (credential) model definition."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import db
from core.time import utc_now

if TYPE_CHECKING:  # pragma: no cover
    from core.models.user import User

BigInt = db.BigInteger().with_variant(db.Integer, "sqlite")


class Authenticator(db.Model):
    """Persisted WebAuthn credential bound to exactly one user."""

    __tablename__ = "authenticator"
    __table_args__ = (
        db.UniqueConstraint("user_id", "credential_id", name="uq_authenticator_user_credential"),
    )

    id: Mapped[int] = mapped_column(BigInt, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        db.String(36),
        db.ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # base64url encoded credential ID as reported by the authenticator
    credential_id: Mapped[str] = mapped_column(db.String(1024), nullable=False)
    public_key: Mapped[bytes] = mapped_column(db.LargeBinary, nullable=False)
    counter: Mapped[int] = mapped_column(db.BigInteger, nullable=False, default=0)
    device_type: Mapped[str] = mapped_column(db.String(32), nullable=False)
    backed_up: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    transports: Mapped[list[str]] = mapped_column(db.JSON, nullable=False, default=list)
    user_agent: Mapped[str | None] = mapped_column(db.String(512), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(
        db.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    user: Mapped["User"] = relationship("User", back_populates="authenticators")
