"""Shared fixtures: the in-memory engine, the test app and admin/user tokens."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from tests.factories.doubles import FlakyGateway, MockPool, make_engine
from tests.factories.in_memory import InMemoryDatabase


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def gateway() -> FlakyGateway:
    return FlakyGateway()


@pytest.fixture
def engine(db: InMemoryDatabase, gateway: FlakyGateway):  # type: ignore[no-untyped-def]
    return make_engine(db, gateway)


# ── App and auth ────────────────────────────────────────────────────


@pytest.fixture
def app() -> Iterator[Any]:
    from giveaways.core.config import Settings
    from giveaways.main import create_app

    pool = MockPool()
    with (
        patch("giveaways.core.database._pool", pool),
        patch("giveaways.core.database.get_pool", return_value=pool),
    ):
        yield create_app(settings=Settings(app_env="testing"))


@pytest.fixture
def client(app) -> TestClient:  # type: ignore[no-untyped-def]
    return TestClient(app)


def _bearer(subject: str, role: str) -> dict[str, str]:
    from giveaways.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(subject=subject, role=role)}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _bearer("test-admin", "admin")


@pytest.fixture
def user_headers() -> dict[str, str]:
    return _bearer("test-user", "user")
