from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings
from ..core.errors import StorageError
from ..db.models import TransactionMovement
from ..schemas.transaction import (
    Transaction,
    TransactionCreate,
    TransactionPage,
    format_transaction_date,
    parse_transaction_date,
)

MAX_PAGE_SIZE = 10
INVALID_PAGE_MESSAGE = "Page must be a positive integer"
INVALID_LIMIT_MESSAGE = f"Limit must be between 1 and {MAX_PAGE_SIZE}"


def validate_pagination(page: int, limit: int) -> None:
    if page < 1:
        raise ValueError(INVALID_PAGE_MESSAGE)
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValueError(INVALID_LIMIT_MESSAGE)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit)


def new_transaction_id() -> str:
    return str(uuid4())


class TransactionStore(ABC):
    """Persistence contract shared by the database and JSON file backends."""

    name: str = "abstract"

    @abstractmethod
    async def healthcheck(self) -> None: ...

    @abstractmethod
    async def list_recent(self, limit: int) -> list[Transaction]:
        """Return up to ``limit`` transactions, newest transaction date first."""

    @abstractmethod
    async def paginate(self, page: int, limit: int) -> TransactionPage: ...

    @abstractmethod
    async def get(self, transaction_id: str) -> Transaction | None: ...

    @abstractmethod
    async def create(self, data: TransactionCreate) -> Transaction: ...

    @abstractmethod
    async def replace(self, transaction_id: str, data: TransactionCreate) -> Transaction | None:
        """Overwrite every field of an existing transaction, keeping its id."""

    @abstractmethod
    async def update(self, transaction_id: str, changes: dict[str, Any]) -> Transaction | None:
        """Apply a partial update; ``changes`` uses model field names."""

    @abstractmethod
    async def delete(self, transaction_id: str) -> bool: ...

    async def close(self) -> None:
        return None


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(operation, str(exc)) from exc


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    values = dict(changes)
    if "transaction_type" in values:
        values["transaction_type"] = getattr(
            values["transaction_type"], "value", values["transaction_type"]
        )
    if "transaction_date" in values:
        values["transaction_date"] = parse_transaction_date(values["transaction_date"]).replace(
            tzinfo=None
        )
    return values


def _to_transaction(row: TransactionMovement) -> Transaction:
    return Transaction(
        id=row.id,
        description=row.description,
        price=row.price,
        transaction_type=row.transaction_type,
        transaction_date=format_transaction_date(row.transaction_date),
    )


class DatabaseTransactionStore(TransactionStore):
    """Persist transactions through the SQLAlchemy async ORM."""

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def healthcheck(self) -> None:
        with _storage_errors("retrieve"):
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))

    async def list_recent(self, limit: int) -> list[Transaction]:
        with _storage_errors("retrieve"):
            async with self._session_factory() as session:
                result = await session.scalars(
                    select(TransactionMovement)
                    .order_by(TransactionMovement.transaction_date.desc())
                    .limit(limit)
                )
                return [_to_transaction(row) for row in result]

    async def paginate(self, page: int, limit: int) -> TransactionPage:
        validate_pagination(page, limit)
        with _storage_errors("retrieve"):
            async with self._session_factory() as session:
                total = await session.scalar(
                    select(func.count()).select_from(TransactionMovement)
                )
                result = await session.scalars(
                    select(TransactionMovement)
                    .order_by(TransactionMovement.transaction_date.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
                items = [_to_transaction(row) for row in result]
        total = total or 0
        return TransactionPage(
            transactions=items,
            total=total,
            page=page,
            total_pages=total_pages(total, limit),
        )

    async def get(self, transaction_id: str) -> Transaction | None:
        with _storage_errors("retrieve"):
            async with self._session_factory() as session:
                row = await session.get(TransactionMovement, transaction_id)
                return _to_transaction(row) if row is not None else None

    async def create(self, data: TransactionCreate) -> Transaction:
        values = _column_values(data.model_dump())
        with _storage_errors("create"):
            async with self._session_factory() as session:
                row = TransactionMovement(id=new_transaction_id(), **values)
                session.add(row)
                await session.commit()
                return _to_transaction(row)

    async def replace(self, transaction_id: str, data: TransactionCreate) -> Transaction | None:
        return await self._apply(transaction_id, data.model_dump())

    async def update(self, transaction_id: str, changes: dict[str, Any]) -> Transaction | None:
        return await self._apply(transaction_id, changes)

    async def _apply(self, transaction_id: str, changes: dict[str, Any]) -> Transaction | None:
        values = _column_values(changes)
        with _storage_errors("update"):
            async with self._session_factory() as session:
                row = await session.get(TransactionMovement, transaction_id)
                if row is None:
                    return None
                for key, value in values.items():
                    setattr(row, key, value)
                await session.commit()
                return _to_transaction(row)

    async def delete(self, transaction_id: str) -> bool:
        with _storage_errors("delete"):
            async with self._session_factory() as session:
                row = await session.get(TransactionMovement, transaction_id)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                return True


def build_transaction_store(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> TransactionStore:
    """Pick the storage backend configured by ``STORAGE_BACKEND``."""

    if settings.storage_backend == "json":
        from .json_store import JsonFileTransactionStore

        return JsonFileTransactionStore(settings.transactions_file)
    if session_factory is None:
        raise ValueError("database storage requires a session factory")
    return DatabaseTransactionStore(session_factory)


__all__ = [
    "DatabaseTransactionStore",
    "INVALID_LIMIT_MESSAGE",
    "INVALID_PAGE_MESSAGE",
    "MAX_PAGE_SIZE",
    "TransactionStore",
    "build_transaction_store",
    "new_transaction_id",
    "total_pages",
    "validate_pagination",
]
