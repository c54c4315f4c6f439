"""SQLAlchemy model for member accounts held by the mock legacy backend."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class Account(Base):
    """A portal member, identified by the number printed on their card.

    Either contact field may be empty; the recovery flow then reports the
    matching channel as unavailable.
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_number: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True, doc="Digits only"
    )
    registration: Mapped[str] = mapped_column(
        String(32), nullable=False, doc="Member registration number in the legacy system"
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("ix_accounts_card_number", "card_number"),
        Index("ix_accounts_registration", "registration"),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} card={self.card_number!r} name={self.name!r}>"
