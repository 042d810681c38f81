from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import db
from core.time import utc_now

if TYPE_CHECKING:  # pragma: no cover
    from core.models.authenticator import Authenticator


class User(db.Model):
    __tablename__ = "user"

    # WebAuthn user handle; a random UUID minted before the first registration
    id: Mapped[str] = mapped_column(db.String(36), primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True), nullable=False, default=utc_now
    )

    authenticators: Mapped[list["Authenticator"]] = relationship(
        "Authenticator",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Authenticator.created_at",
    )
