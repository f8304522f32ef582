"""Shared pytest fixtures: in-memory inventory store and fake collaborators."""
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.agent.catalog_cache import CatalogCache
from app.agent.checkout import CheckoutStateMachine
from app.agent.decision_engine import LocalDecisionEngine
from app.agent.entities import CommitResult, Product
from app.agent.orchestrator import DecisionOrchestrator
from app.agent.run_history import RunHistory
from app.db.init_db import init_db
from app.models.inventory import Inventory
from app.services.inventory_service import InventoryStore, SqlInventoryStore

SEED = [
    ("ParacetamolXL", 10, "5.00", False),
    ("Paracetamol", 50, "2.00", False),
    ("Paracetamol 500", 40, "2.50", False),
    ("Dolo 650", 100, "3.00", False),
    ("Tramadol 50mg", 30, "8.00", True),
    ("Digene Gel", 0, "95.00", False),
]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = factory()
    for name, stock, price, rx in SEED:
        db.add(Inventory(item_name=name, stock=stock, price=Decimal(price), requires_prescription=rx))
    db.commit()
    db.close()
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlInventoryStore(session_factory)


class FakeNotifier:
    def __init__(self, delivered=True, raises=None):
        self.delivered = delivered
        self.raises = raises
        self.sent = []

    def send_invoice(self, email, invoice):
        self.sent.append((email, invoice))
        if self.raises:
            raise self.raises
        return self.delivered


class FakeTranscriber:
    name = "fake"

    def __init__(self, transcript="", raises=None):
        self.transcript = transcript
        self.raises = raises
        self.calls = 0

    def transcribe(self, audio, filename="audio.webm"):
        self.calls += 1
        if self.raises:
            raise self.raises
        return self.transcript


class StubStore(InventoryStore):
    """In-memory store whose commit outcome the test controls."""

    def __init__(self, products, commit_result=None, commit_error=None):
        self.products = {p.name.lower(): p for p in products}
        self.commit_result = commit_result
        self.commit_error = commit_error
        self.commits = []

    def get_catalog(self):
        return list(self.products.values())

    def get_product(self, name):
        return self.products.get(name.strip().lower())

    def commit_order(self, product_name, quantity):
        self.commits.append((product_name, quantity))
        if self.commit_error:
            raise self.commit_error
        return self.commit_result or CommitResult.ok("0f8fad5b-d9cb-469f-a165-70867728950e")

    def list_orders(self, limit=100):
        return []


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_product(name="ParacetamolXL", stock=10, price="5.00", rx=False):
    return Product(name=name, stock=stock, unit_price=Decimal(price), requires_prescription=rx)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def history():
    return RunHistory(limit=200)


@pytest.fixture
def catalog(store):
    return CatalogCache(store)


@pytest.fixture
def machine(store, catalog, notifier, history):
    return CheckoutStateMachine(store, catalog, notifier, history)


@pytest.fixture
def orchestrator(catalog, store, machine):
    return DecisionOrchestrator(catalog, LocalDecisionEngine(store), machine)
