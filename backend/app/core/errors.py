from __future__ import annotations


class StorageError(Exception):
    """Raised by transaction stores when the backing storage fails."""

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(detail or f"storage failure during {operation}")


class TransactionAPIError(Exception):
    """Error rendered to clients as ``{"error": message}``."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)

    @classmethod
    def not_found(cls, transaction_id: str) -> TransactionAPIError:
        return cls(404, f'Transaction with ID "{transaction_id}" not found')

    @classmethod
    def storage_failure(cls, operation: str) -> TransactionAPIError:
        return cls(500, f"Failed to {operation} transaction. Please try again later.")


__all__ = ["StorageError", "TransactionAPIError"]
