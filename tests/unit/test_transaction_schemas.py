from __future__ import annotations

import pytest
from pydantic import ValidationError

from backend.app.schemas.transaction import (
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    normalize_transaction_date,
)


def _payload(**overrides):
    payload = {
        "description": "  Salary  ",
        "price": 2500,
        "transactionType": "income",
        "transactionDate": "2024-05-01",
    }
    payload.update(overrides)
    return payload


def _error_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    return str(error["ctx"]["error"])


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-05-01", "2024-05-01T00:00:00.000Z"),
        ("2024-05-01T13:45:10", "2024-05-01T13:45:10.000Z"),
        ("1714571110123", "2024-05-01T13:45:10.123Z"),
        ("2024-05-01T13:45:10+02:00", "2024-05-01T11:45:10.000Z"),
        ("2024-05-01T13:45:10.250Z", "2024-05-01T13:45:10.250Z"),
        ("2024-05-01 08:00", "2024-05-01T08:00:00.000Z"),
        ("2100-01-01", "2100-01-01T00:00:00.000Z"),
    ],
)
def test_normalize_transaction_date_formats(raw: str, expected: str) -> None:
    assert normalize_transaction_date(raw) == expected


@pytest.mark.parametrize("raw", ["yesterday", "2024-13-40", "2024-02-30", ""])
def test_normalize_transaction_date_rejects_garbage(raw: str) -> None:
    with pytest.raises(ValueError, match="Invalid date format"):
        normalize_transaction_date(raw)


@pytest.mark.parametrize("raw", ["1899-12-31", "2100-01-02", "2150-06-01T00:00:00Z"])
def test_normalize_transaction_date_enforces_range(raw: str) -> None:
    with pytest.raises(ValueError, match="between 1900 and 2100"):
        normalize_transaction_date(raw)


def test_transaction_create_normalizes_fields() -> None:
    data = TransactionCreate.model_validate(_payload(id="client-supplied"))

    assert data.description == "Salary"
    assert data.price == 2500.0
    assert data.transaction_type is TransactionType.INCOME
    assert data.transaction_date == "2024-05-01T00:00:00.000Z"
    assert "id" not in data.model_dump()


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"description": "   "}, "Description must be a non-empty string."),
        ({"description": 42}, "Description must be a non-empty string."),
        ({"price": 0}, "Price must be a positive number."),
        ({"price": -10.5}, "Price must be a positive number."),
        ({"price": "12"}, "Price must be a positive number."),
        ({"price": True}, "Price must be a positive number."),
        (
            {"transactionType": "transfer"},
            'Transaction type must be "income" or "expense". Received: "transfer"',
        ),
        ({"transactionDate": 20240501}, "Transaction date must be a string."),
    ],
)
def test_transaction_create_error_messages(overrides, message: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        TransactionCreate.model_validate(_payload(**overrides))
    assert _error_message(exc_info.value) == message


def test_transaction_create_reports_missing_fields_with_field_message() -> None:
    payload = _payload()
    del payload["description"]
    with pytest.raises(ValidationError) as exc_info:
        TransactionCreate.model_validate(payload)
    assert _error_message(exc_info.value) == "Description must be a non-empty string."


def test_transaction_update_keeps_only_provided_fields() -> None:
    update = TransactionUpdate.model_validate({"price": 12.5, "unknown": "ignored"})
    assert update.changes() == {"price": 12.5}


def test_transaction_update_validates_provided_fields() -> None:
    with pytest.raises(ValidationError) as exc_info:
        TransactionUpdate.model_validate({"description": None})
    assert _error_message(exc_info.value) == "Description must be a non-empty string."


def test_transaction_update_requires_a_field() -> None:
    with pytest.raises(ValidationError) as exc_info:
        TransactionUpdate.model_validate({"unknown": 1})
    assert _error_message(exc_info.value) == "No valid fields provided for update."


@pytest.mark.parametrize(
    ("raw", "shown"),
    [(["a"], '["a"]'), (7, "7"), (None, "null"), ({"kind": "income"}, '{"kind": "income"}')],
)
def test_transaction_type_error_shows_non_string_values_as_json(raw, shown: str) -> None:
    with pytest.raises(ValidationError) as exc_info:
        TransactionCreate.model_validate(_payload(transactionType=raw))
    assert _error_message(exc_info.value) == (
        f'Transaction type must be "income" or "expense". Received: "{shown}"'
    )
