"""Shared pytest configuration."""

import pytest


@pytest.fixture
def anyio_backend() -> str:
    # The engine uses asyncio primitives (asyncio.gather), so run async tests on asyncio only.
    return "asyncio"
