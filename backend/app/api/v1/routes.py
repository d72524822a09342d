from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status

from ...core.config import Settings, get_settings
from ...core.errors import StorageError, TransactionAPIError
from ...metrics import TRANSACTIONS_WRITTEN
from ...schemas.transaction import (
    Transaction,
    TransactionCreate,
    TransactionPage,
    TransactionUpdate,
)
from ...services.transactions import MAX_PAGE_SIZE, TransactionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


def get_transaction_store(request: Request) -> TransactionStore:
    return request.app.state.transaction_store


def _storage_failure(
    operation: str, exc: StorageError, transaction_id: str | None = None
) -> TransactionAPIError:
    logger.error(
        "transaction storage failure",
        extra={"operation": exc.operation, "transaction_id": transaction_id},
        exc_info=exc,
    )
    return TransactionAPIError.storage_failure(operation)


@router.get("", response_model=list[Transaction] | TransactionPage)
async def list_transactions(
    page: int | None = Query(default=None),
    limit: int = Query(default=MAX_PAGE_SIZE),
    store: TransactionStore = Depends(get_transaction_store),
    settings: Settings = Depends(get_settings),
) -> list[Transaction] | TransactionPage:
    try:
        if page is None:
            return await store.list_recent(settings.transactions_list_limit)
        return await store.paginate(page, limit)
    except ValueError as exc:
        raise TransactionAPIError(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure("retrieve", exc) from exc


@router.get("/{transaction_id}", response_model=Transaction)
async def read_transaction(
    transaction_id: str,
    store: TransactionStore = Depends(get_transaction_store),
) -> Transaction:
    try:
        transaction = await store.get(transaction_id)
    except StorageError as exc:
        raise _storage_failure("retrieve", exc, transaction_id) from exc
    if transaction is None:
        raise TransactionAPIError.not_found(transaction_id)
    return transaction


@router.post("", response_model=Transaction, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    payload: TransactionCreate,
    store: TransactionStore = Depends(get_transaction_store),
) -> Transaction:
    try:
        created = await store.create(payload)
    except StorageError as exc:
        raise _storage_failure("create", exc) from exc
    TRANSACTIONS_WRITTEN.labels(operation="create").inc()
    logger.info("transaction created", extra={"transaction_id": created.id})
    return created


@router.put("/{transaction_id}", response_model=Transaction)
async def replace_transaction(
    transaction_id: str,
    payload: TransactionCreate,
    store: TransactionStore = Depends(get_transaction_store),
) -> Transaction:
    try:
        updated = await store.replace(transaction_id, payload)
    except StorageError as exc:
        raise _storage_failure("update", exc, transaction_id) from exc
    if updated is None:
        raise TransactionAPIError.not_found(transaction_id)
    TRANSACTIONS_WRITTEN.labels(operation="replace").inc()
    return updated


@router.patch("/{transaction_id}", response_model=Transaction)
async def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    store: TransactionStore = Depends(get_transaction_store),
) -> Transaction:
    try:
        updated = await store.update(transaction_id, payload.changes())
    except StorageError as exc:
        raise _storage_failure("update", exc, transaction_id) from exc
    if updated is None:
        raise TransactionAPIError.not_found(transaction_id)
    TRANSACTIONS_WRITTEN.labels(operation="update").inc()
    return updated


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: str,
    store: TransactionStore = Depends(get_transaction_store),
) -> Response:
    try:
        deleted = await store.delete(transaction_id)
    except StorageError as exc:
        raise _storage_failure("delete", exc, transaction_id) from exc
    if not deleted:
        raise TransactionAPIError.not_found(transaction_id)
    TRANSACTIONS_WRITTEN.labels(operation="delete").inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
