"""Shared test fixtures and configuration."""
from contextlib import asynccontextmanager

import pytest

from tests.fakes import FakeDatabase, FakeUnitOfWork


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def uow_factory(fake_db: FakeDatabase):
    @asynccontextmanager
    async def factory():
        yield FakeUnitOfWork(fake_db)

    return factory
