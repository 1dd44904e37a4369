"""
Pytest fixtures for the marketplace tests.

Beanie is initialised against mongomock-motor, so no MongoDB server is needed.
"""

import asyncio
from typing import Dict, Optional

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from app.core.rate_limiter import limiter
from app.core.token_manager import TokenManager, TokenReservationError
from app.db.database import init_db
from app.db.token_store import BeanieTokenStore

# =============================================================================
# Fake token store
# =============================================================================


class FakeTokenStore:
    """In-memory TokenStore with knobs for failures and slow hydration."""

    def __init__(
        self,
        highest: Optional[int] = None,
        hydration_failures: int = 0,
        fail_reservation: bool = False,
        delay: float = 0.0,
    ):
        self.highest = highest
        self.hydration_failures = hydration_failures
        self.fail_reservation = fail_reservation
        self.delay = delay
        self.find_calls = 0
        self.reserved: Dict[str, int] = {}

    async def find_highest_token_id(self) -> Optional[int]:
        self.find_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.hydration_failures > 0:
            self.hydration_failures -= 1
            raise ConnectionError("database unreachable")
        return self.highest

    async def set_reserved_token_id(self, entity_id: str, token_id: int) -> None:
        await asyncio.sleep(0)
        if self.fail_reservation:
            raise TokenReservationError(f"write failed for {entity_id}")
        self.reserved[entity_id] = token_id


@pytest.fixture
def make_store():
    """Factory for FakeTokenStore instances."""
    return FakeTokenStore


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db():
    """Fresh mongomock database with all Beanie models registered."""
    database = AsyncMongoMockClient()["marketplace_test"]
    asyncio.run(init_db(database))
    return database


@pytest_asyncio.fixture
async def async_db():
    database = AsyncMongoMockClient()["marketplace_test"]
    await init_db(database)
    return database


# =============================================================================
# App Fixtures
# =============================================================================


@pytest.fixture
def token_manager(db) -> TokenManager:
    return TokenManager(BeanieTokenStore())


@pytest.fixture
def client(db, token_manager):
    """TestClient over the real app; lifespan is skipped so no real MongoDB connection is opened."""
    from app.main import app

    app.state.token_manager = token_manager
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        limiter.enabled = True
