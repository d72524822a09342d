from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_TIME_NAIVE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")
_DIGITS = re.compile(r"^\d+$")

MIN_TRANSACTION_DATE = datetime(1900, 1, 1, tzinfo=UTC)
MAX_TRANSACTION_DATE = datetime(2100, 1, 1, tzinfo=UTC)


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


def format_transaction_date(value: datetime) -> str:
    """Render a datetime as ISO 8601 UTC with millisecond precision."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_transaction_date(value: str) -> datetime:
    """Parse a normalized transaction date back into an aware datetime."""

    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def normalize_transaction_date(value: str) -> str:
    """Normalize the accepted date inputs to ISO 8601 UTC.

    Accepts a bare ``YYYY-MM-DD`` date (UTC midnight), a date and time
    without offset (read as UTC), a Unix timestamp in milliseconds, or any
    other ISO 8601 string. Raises ``ValueError`` for anything else and for
    dates outside 1900-2100.
    """

    text = value.strip()
    try:
        if _DATE_ONLY.match(text):
            parsed = datetime.strptime(text, "%Y-%m-%d").replace(tzinfo=UTC)
        elif _DATE_TIME_NAIVE.match(text):
            parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S").replace(tzinfo=UTC)
        elif _DIGITS.match(text):
            parsed = datetime.fromtimestamp(int(text) / 1000, tz=UTC)
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
    except (ValueError, OverflowError, OSError) as exc:
        raise ValueError(f'Invalid date format: "{value}"') from exc

    if parsed < MIN_TRANSACTION_DATE or parsed > MAX_TRANSACTION_DATE:
        raise ValueError("Transaction date must be between 1900 and 2100.")
    return format_transaction_date(parsed)


def _validate_description(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Description must be a non-empty string.")
    return value.strip()


def _validate_price(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError("Price must be a positive number.")
    return float(value)


def _validate_transaction_type(value: Any) -> TransactionType:
    if value not in (TransactionType.INCOME.value, TransactionType.EXPENSE.value):
        received = value if isinstance(value, str) else json.dumps(value, default=str)
        raise ValueError(f'Transaction type must be "income" or "expense". Received: "{received}"')
    return TransactionType(value)


def _validate_transaction_date(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Transaction date must be a string.")
    return normalize_transaction_date(value)


class _TransactionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=False)

    @field_validator("description", mode="before", check_fields=False)
    @classmethod
    def _description(cls, value: Any) -> str:
        return _validate_description(value)

    @field_validator("price", mode="before", check_fields=False)
    @classmethod
    def _price(cls, value: Any) -> float:
        return _validate_price(value)

    @field_validator("transaction_type", mode="before", check_fields=False)
    @classmethod
    def _transaction_type(cls, value: Any) -> TransactionType:
        return _validate_transaction_type(value)

    @field_validator("transaction_date", mode="before", check_fields=False)
    @classmethod
    def _transaction_date(cls, value: Any) -> str:
        return _validate_transaction_date(value)


class TransactionCreate(_TransactionPayload):
    """Full transaction payload used by POST and PUT."""

    # Defaults of None with validate_default route missing fields through the
    # validators above so they report the field-specific message.
    description: str = Field(default=None, validate_default=True)  # type: ignore[assignment]
    price: float = Field(default=None, validate_default=True)  # type: ignore[assignment]
    transaction_type: TransactionType = Field(
        default=None,  # type: ignore[assignment]
        alias="transactionType",
        validate_default=True,
    )
    transaction_date: str = Field(
        default=None,  # type: ignore[assignment]
        alias="transactionDate",
        validate_default=True,
    )


class TransactionUpdate(_TransactionPayload):
    """Partial payload used by PATCH; only provided fields are changed."""

    description: str | None = None
    price: float | None = None
    transaction_type: TransactionType | None = Field(default=None, alias="transactionType")
    transaction_date: str | None = Field(default=None, alias="transactionDate")

    @model_validator(mode="after")
    def _require_changes(self) -> TransactionUpdate:
        if not self.model_fields_set:
            raise ValueError("No valid fields provided for update.")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Transaction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: str
    description: str
    price: float
    transaction_type: TransactionType = Field(alias="transactionType")
    transaction_date: str = Field(alias="transactionDate")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TransactionPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transactions: list[Transaction]
    total: int
    page: int
    total_pages: int = Field(alias="totalPages")


__all__ = [
    "Transaction",
    "TransactionCreate",
    "TransactionPage",
    "TransactionType",
    "TransactionUpdate",
    "format_transaction_date",
    "normalize_transaction_date",
    "parse_transaction_date",
]
