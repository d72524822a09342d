from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..core.errors import StorageError
from ..schemas.transaction import Transaction, TransactionCreate, TransactionPage
from .transactions import TransactionStore, new_transaction_id, total_pages, validate_pagination


class JsonFileTransactionStore(TransactionStore):
    """Keep the whole transaction collection in a single JSON file.

    Every mutation rewrites the file through a temporary sibling that is
    renamed over the original, so readers never observe a partial write.
    Read-modify-write cycles are serialized by an ``asyncio.Lock``; the
    store assumes it is the only writer of ``path``.
    """

    name = "json"

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # -- file helpers ----------------------------------------------------
    def _read_records(self) -> list[dict[str, Any]]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        data = json.loads(raw) if raw.strip() else []
        if not isinstance(data, list):
            raise ValueError(f"{self._path} does not contain a JSON array")
        return data

    def _write_records(self, records: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f".{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    async def _load(self, operation: str) -> list[Transaction]:
        try:
            records = await asyncio.to_thread(self._read_records)
            return [Transaction.model_validate(record) for record in records]
        except (OSError, ValueError, ValidationError) as exc:
            raise StorageError(operation, str(exc)) from exc

    async def _save(self, operation: str, transactions: list[Transaction]) -> None:
        records = [transaction.to_json() for transaction in transactions]
        try:
            await asyncio.to_thread(self._write_records, records)
        except OSError as exc:
            raise StorageError(operation, str(exc)) from exc

    @staticmethod
    def _index_of(transactions: list[Transaction], transaction_id: str) -> int:
        for index, transaction in enumerate(transactions):
            if transaction.id == transaction_id:
                return index
        return -1

    @staticmethod
    def _newest_first(transactions: list[Transaction]) -> list[Transaction]:
        # Normalized dates share one format, so string order is time order.
        return sorted(transactions, key=lambda item: item.transaction_date, reverse=True)

    # -- store contract --------------------------------------------------
    async def healthcheck(self) -> None:
        await self._load("retrieve")

    async def list_recent(self, limit: int) -> list[Transaction]:
        transactions = await self._load("retrieve")
        return self._newest_first(transactions)[:limit]

    async def paginate(self, page: int, limit: int) -> TransactionPage:
        validate_pagination(page, limit)
        transactions = self._newest_first(await self._load("retrieve"))
        offset = (page - 1) * limit
        total = len(transactions)
        return TransactionPage(
            transactions=transactions[offset : offset + limit],
            total=total,
            page=page,
            total_pages=total_pages(total, limit),
        )

    async def get(self, transaction_id: str) -> Transaction | None:
        transactions = await self._load("retrieve")
        index = self._index_of(transactions, transaction_id)
        return transactions[index] if index >= 0 else None

    async def create(self, data: TransactionCreate) -> Transaction:
        async with self._lock:
            transactions = await self._load("create")
            created = Transaction(id=new_transaction_id(), **data.model_dump())
            transactions.append(created)
            await self._save("create", transactions)
            return created

    async def replace(self, transaction_id: str, data: TransactionCreate) -> Transaction | None:
        return await self._apply(transaction_id, data.model_dump())

    async def update(self, transaction_id: str, changes: dict[str, Any]) -> Transaction | None:
        return await self._apply(transaction_id, changes)

    async def _apply(self, transaction_id: str, changes: dict[str, Any]) -> Transaction | None:
        async with self._lock:
            transactions = await self._load("update")
            index = self._index_of(transactions, transaction_id)
            if index < 0:
                return None
            updated = transactions[index].model_copy(update=changes)
            transactions[index] = updated
            await self._save("update", transactions)
            return updated

    async def delete(self, transaction_id: str) -> bool:
        async with self._lock:
            transactions = await self._load("delete")
            index = self._index_of(transactions, transaction_id)
            if index < 0:
                return False
            del transactions[index]
            await self._save("delete", transactions)
            return True


__all__ = ["JsonFileTransactionStore"]
