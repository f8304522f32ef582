"""SQL inventory store: lookups and the atomic check-and-decrement commit."""
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.agent.catalog_cache import CatalogCache
from app.core.exceptions import CollaboratorUnavailable
from app.models.inventory import Inventory
from app.models.order import Order
from app.services.inventory_service import SqlInventoryStore


def test_catalog_lists_every_row(store):
    names = [p.name for p in store.get_catalog()]
    assert names[:2] == ["ParacetamolXL", "Paracetamol"]
    assert len(names) == 6


@pytest.mark.parametrize("query", ["Dolo 650", "dolo 650", "  DOLO 650 ", "dolo-650"])
def test_get_product_normalized_exact_match(store, query):
    product = store.get_product(query)
    assert product.name == "Dolo 650"
    assert product.unit_price == Decimal("3.00")


def test_get_product_is_not_fuzzy(store):
    assert store.get_product("dolo") is None


def test_commit_decrements_and_records(store, session_factory):
    result = store.commit_order("ParacetamolXL", 3)
    assert result.success
    assert len(result.order_id) == 36

    db = session_factory()
    try:
        assert db.query(Inventory).filter_by(item_name="ParacetamolXL").one().stock == 7
        order = db.query(Order).one()
        assert order.order_id == result.order_id
        assert order.quantity == 3
        assert order.total_price == Decimal("15.00")
    finally:
        db.close()


def test_commit_refuses_oversell(store, session_factory):
    result = store.commit_order("ParacetamolXL", 11)
    assert not result.success
    assert result.reason == "Insufficient stock: requested 11, available 10"

    db = session_factory()
    try:
        assert db.query(Inventory).filter_by(item_name="ParacetamolXL").one().stock == 10
        assert db.query(Order).count() == 0
    finally:
        db.close()


def test_commit_drains_stock_exactly(store):
    assert store.commit_order("ParacetamolXL", 6).success
    assert store.commit_order("ParacetamolXL", 4).success
    failed = store.commit_order("ParacetamolXL", 1)
    assert failed.reason == "Insufficient stock: requested 1, available 0"
    assert store.get_product("ParacetamolXL").stock == 0


def test_commit_unknown_medicine(store):
    result = store.commit_order("Aspirin", 1)
    assert result.reason == "Medicine 'Aspirin' not found"


def test_commit_invalid_quantity(store):
    assert not store.commit_order("ParacetamolXL", 0).success


def test_list_orders_newest_first(store):
    first = store.commit_order("Dolo 650", 1).order_id
    second = store.commit_order("Dolo 650", 2).order_id
    orders = store.list_orders()
    assert {o.order_id for o in orders} == {first, second}
    assert orders[0].order_id == second


class BrokenSession:
    def query(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def rollback(self):
        pass

    def close(self):
        pass


broken_session_factory = BrokenSession


def test_database_errors_become_collaborator_errors():
    store = SqlInventoryStore(broken_session_factory)
    with pytest.raises(CollaboratorUnavailable):
        store.get_catalog()


def test_catalog_cache_keeps_snapshot_when_refresh_fails(store):
    cache = CatalogCache(store)
    cache.refresh()
    loaded = cache.products

    cache.store = SqlInventoryStore(broken_session_factory)
    with pytest.raises(CollaboratorUnavailable):
        cache.refresh()
    assert cache.products == loaded


def test_catalog_cache_serves_stale_on_failure(store):
    now = [0.0]
    cache = CatalogCache(store, max_age_seconds=10, clock=lambda: now[0])
    cache.snapshot()
    now[0] = 11.0
    assert cache.is_stale()

    cache.store = SqlInventoryStore(broken_session_factory)
    assert len(cache.snapshot()) == 6


def test_catalog_cache_without_snapshot_propagates(store):
    cache = CatalogCache(SqlInventoryStore(broken_session_factory))
    with pytest.raises(CollaboratorUnavailable):
        cache.snapshot()
