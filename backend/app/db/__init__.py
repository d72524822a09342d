"""Database models for the cashflow API."""

from .models import Base, SettingEntry, TransactionMovement

__all__ = [
    "Base",
    "SettingEntry",
    "TransactionMovement",
]
