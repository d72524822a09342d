from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TRANSACTION_TYPES = ("income", "expense")


class Base(DeclarativeBase):
    """Base declarative model."""


class TransactionMovement(Base):
    """A single income or expense movement."""

    __tablename__ = "transaction_movements"
    __table_args__ = (
        Index("ix_transaction_movements_transaction_date", "transaction_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    description: Mapped[str] = mapped_column(String(191), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    transaction_type: Mapped[str] = mapped_column(
        Enum(*TRANSACTION_TYPES, name="transaction_type"),
        nullable=False,
    )
    # Stored as naive UTC; the API layer attaches the offset.
    transaction_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class SettingEntry(Base):
    """Key-value configuration stored in DB."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
