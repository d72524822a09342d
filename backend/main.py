from __future__ import annotations

import os

import uvicorn

from backend.app.main import app

DEFAULT_PORT = 3000


def resolve_port() -> int:
    raw = os.getenv("APPLICATION_PORT") or os.getenv("PORT")
    try:
        return int(raw) if raw else DEFAULT_PORT
    except ValueError:
        return DEFAULT_PORT


def run() -> None:
    """Run the cashflow FastAPI application with environment-aware port."""

    uvicorn.run(app, host="0.0.0.0", port=resolve_port())


if __name__ == "__main__":
    run()
