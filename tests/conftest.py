import pytest

from cache import ReadThroughCache
from config_manager import EngineSettings
from data_fetch import BudgetDataLoader
from database_ops import DatabaseManager


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def settings():
    """Default engine settings (built-in configuration)."""
    return EngineSettings.from_config()


@pytest.fixture()
def db_manager():
    """Provide an in-memory SQLite document store for testing."""
    manager = DatabaseManager("sqlite:///:memory:")
    manager.create_tables()
    try:
        yield manager
    finally:
        manager.close()


@pytest.fixture()
def cache(clock, settings):
    return ReadThroughCache(default_ttl_ms=settings.ttl_ms, clock=clock)


@pytest.fixture()
def loader(db_manager, cache, settings):
    return BudgetDataLoader(db_manager, cache=cache, settings=settings)


@pytest.fixture()
def add_expense(db_manager):
    """Insert an expense with sensible defaults; returns its id."""
    def _add(day: str, amount: int, category: str = "Food", **fields) -> int:
        doc = {
            "registrant": "Alex",
            "date": day,
            "amount": amount,
            "category": category,
            "subCategory": "Groceries",
            "source": "Card",
        }
        doc.update(fields)
        return db_manager.add_expense(doc)
    return _add

