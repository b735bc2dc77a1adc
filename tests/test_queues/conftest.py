"""Fixtures for claim queue and retry policy tests."""

from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=0)
    return db
