import time
from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from qubit.database import Base, build_session_factory
from qubit.errors import TransportFailed
from qubit.models.message import Message
from qubit.scheduler.context import TaskContext
from qubit.store.memory import InMemoryMessageStore
from qubit.store.sql import SqlMessageStore


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def queue_message(store, minutes: int = 0, phone_number: str = "+1234567890", content: str = "hello") -> int:
    """Insert a pending message created BASE_TIME + minutes."""
    message = Message(
        phone_number=phone_number,
        content=content,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    return store.insert(message)


class ScriptedTransport:
    """Transport whose outcome per call is scripted.

    Each entry in outcomes is either a delivery reference to return or an
    exception to raise. Once the script runs out every call succeeds.
    """

    def __init__(self, outcomes: Optional[list] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[str] = []
        self.closed = False

    def send(self, phone_number: str, content: str, context: TaskContext) -> str:
        self.calls.append(content)
        outcome = self.outcomes.pop(0) if self.outcomes else f"ref-{len(self.calls)}"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def sql_store(engine):
    return SqlMessageStore(build_session_factory(engine))


@pytest.fixture()
def memory_store():
    return InMemoryMessageStore()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Each store implementation in turn."""
    if request.param == "memory":
        return InMemoryMessageStore()
    return request.getfixturevalue("sql_store")


@pytest.fixture()
def transport():
    return ScriptedTransport()


@pytest.fixture()
def failing_transport():
    return ScriptedTransport([TransportFailed("boom")] * 10)
