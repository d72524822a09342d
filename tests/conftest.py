from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from backend.app.core import config


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def make_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Callable[..., AbstractContextManager[TestClient]]:
    """Build a TestClient against isolated storage with env overrides."""

    @contextmanager
    def _factory(**env: str) -> Iterator[TestClient]:
        settings_env = {
            "VERSION": "0.1.0-test",
            "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / f'test_{uuid4().hex}.db'}",
            "TRANSACTIONS_FILE": str(tmp_path / "transactions.json"),
            "STORAGE_BACKEND": "database",
            "RATE_LIMIT_MAX_REQUESTS": "1000",
        }
        settings_env.update(env)
        for key, value in settings_env.items():
            monkeypatch.setenv(key, value)
        config.get_settings.cache_clear()

        from backend.app.main import app

        try:
            with TestClient(app) as client:
                yield client
        finally:
            config.get_settings.cache_clear()

    return _factory


@pytest.fixture()
def test_client(make_client) -> Generator[TestClient, None, None]:
    with make_client() as client:
        yield client


@pytest.fixture()
def json_client(make_client) -> Generator[TestClient, None, None]:
    with make_client(STORAGE_BACKEND="json") as client:
        yield client


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / f'unit_{uuid4().hex}.db'}"
