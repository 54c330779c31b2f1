from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator

import pytest
from cryptography.fernet import Fernet

# `app.main` builds an app at import time; give test collection a complete environment.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NILAI_API_KEY", "test-nilai-key")
os.environ.setdefault("SECURE_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
os.environ.setdefault("AUTH_SECRET_KEY", "test-auth-secret")

from app.core.db import Base, create_engine  # noqa: E402


@pytest.fixture()
def database_url(tmp_path) -> str:
    db_file = tmp_path / "test.sqlite3"
    return f"sqlite+aiosqlite:///{db_file}"


@pytest.fixture(autouse=True)
def _set_test_environment(
    database_url: str, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("NILAI_API_KEY", "test-nilai-key")
    monkeypatch.setenv("SECURE_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    monkeypatch.setenv("AUTH_SECRET_KEY", "test-auth-secret")
    # Settings are cached via @lru_cache; clear so each test sees its own environment.
    from app.core.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _create_test_schema(database_url: str) -> None:
    async def run() -> None:
        # Ensure all model modules are imported so Base.metadata is populated.
        from app.core.secure import models as _secure_models  # noqa: F401

        engine = create_engine(database_url=database_url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(run())


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from app.main import create_app

    app = create_app()
    with TestClient(app) as c:
        yield c
