import os

# settings are read at import time; point the app at throwaway resources first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("API_KEY", "test-key")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date
from typing import List

import pytest
from sqlalchemy.orm import sessionmaker

from orderdesk.db import make_engine
from orderdesk.order_store import SqlOrderStore, create_all
from orderdesk.ordering.brain import ConversationEngine
from orderdesk.ordering.catalog import AddressEntry, CatalogItem
from orderdesk.ordering.catalog_store import JsonAddressSource, JsonCatalogSource
from orderdesk.ordering.draft import Order
from orderdesk.ordering.errors import OrderStoreError
from orderdesk.ordering.sessions import SessionStore

TODAY = date(2025, 1, 10)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticSource:
    def __init__(self, rows: List) -> None:
        self.rows = list(rows)

    def list(self) -> List:
        return list(self.rows)


class FailingOrderStore:
    """Reads work, every write fails."""

    def __init__(self, inner) -> None:
        self.inner = inner

    def append(self, order: Order) -> int:
        raise OrderStoreError("database unavailable")

    def list_by_user(self, user):
        return self.inner.list_by_user(user)

    def load_by_index(self, index):
        return self.inner.load_by_index(index)

    def delete_by_index(self, index):
        raise OrderStoreError("database unavailable")

    def update(self, index, order):
        raise OrderStoreError("database unavailable")


@pytest.fixture
def catalog() -> List[CatalogItem]:
    return JsonCatalogSource().list()


@pytest.fixture
def addresses() -> List[AddressEntry]:
    return JsonAddressSource().list()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def order_store(session_factory) -> SqlOrderStore:
    return SqlOrderStore(session_factory)


@pytest.fixture
def sessions(clock) -> SessionStore:
    return SessionStore(idle_seconds=30 * 60, clock=clock)


@pytest.fixture
def engine(sessions, catalog, addresses, order_store) -> ConversationEngine:
    return ConversationEngine(
        sessions=sessions,
        catalog=StaticSource(catalog),
        addresses=StaticSource(addresses),
        orders=order_store,
        today=lambda: TODAY,
    )


@pytest.fixture
def stored_order() -> Order:
    return Order(
        customer_name="ABC Trucking",
        descriptions=("Chevron Delo 400 LE 15W40 Galon", "Caja de Mistyk"),
        quantities=("4", "1"),
        codes=("DELO400", "CBXM"),
        dispatch_date="01/20/2025",
        address="123 Main St, Austin, TX",
        submitting_user="Ana",
    )
