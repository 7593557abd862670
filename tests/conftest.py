import pytest
from fastapi.testclient import TestClient

from app import create_app
from services.api_optimizer import APIOptimizer


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# Configure anyio to only use asyncio backend
@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def optimizer(clock) -> APIOptimizer:
    return APIOptimizer(clock=clock)


@pytest.fixture
def client(optimizer) -> TestClient:
    # Not used as a context manager, so startup hooks (cleanup task) don't run
    return TestClient(create_app(optimizer))
