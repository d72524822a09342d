from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..services.transactions import INVALID_LIMIT_MESSAGE, INVALID_PAGE_MESSAGE
from .errors import TransactionAPIError

logger = logging.getLogger(__name__)

INVALID_PAYLOAD_MESSAGE = "Invalid payload format. Expected a JSON object."

# Pydantic error types raised when the body itself is not a JSON object.
_PAYLOAD_SHAPE_ERRORS = {
    "json_invalid",
    "model_attributes_type",
    "model_type",
    "dict_type",
}

# Query parameters that fail to parse report the same message as a bad value.
_QUERY_MESSAGES = {
    ("query", "page"): INVALID_PAGE_MESSAGE,
    ("query", "limit"): INVALID_LIMIT_MESSAGE,
}


def validation_message(errors: list[dict[str, Any]]) -> str:
    """Pick the client-facing message for the first validation error."""

    if not errors:
        return INVALID_PAYLOAD_MESSAGE
    error = errors[0]
    loc = tuple(error.get("loc", ()))
    if error.get("type") in _PAYLOAD_SHAPE_ERRORS and loc[:1] == ("body",):
        return INVALID_PAYLOAD_MESSAGE
    if error.get("type") == "missing" and loc == ("body",):
        return INVALID_PAYLOAD_MESSAGE
    if loc in _QUERY_MESSAGES:
        return _QUERY_MESSAGES[loc]
    ctx = error.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return str(error.get("msg", INVALID_PAYLOAD_MESSAGE))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    message = validation_message(list(exc.errors()))
    logger.info(
        "request validation failed",
        extra={"path": request.url.path, "method": request.method, "status": 400},
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def transaction_api_error_handler(
    request: Request, exc: TransactionAPIError
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(TransactionAPIError, transaction_api_error_handler)  # type: ignore[arg-type]
