"""
Inventory store: catalog reads and the atomic order commit.

commit_order is the single point of truth for an order. It decrements stock
with a conditional UPDATE (stock >= quantity) and inserts the order row in the
same transaction, so a race with another buyer after the policy gate approved
simply fails here instead of overselling.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from app.agent.entities import CommitResult, Product, to_money
from app.agent.intent_parser import normalize_text
from app.core.exceptions import CollaboratorUnavailable
from app.models.inventory import Inventory
from app.models.order import Order

logger = logging.getLogger(__name__)


def to_product(item: Inventory) -> Product:
    return Product(
        name=item.item_name,
        stock=int(item.stock or 0),
        unit_price=Decimal(str(item.price or 0)),
        requires_prescription=bool(item.requires_prescription),
        disease=item.disease,
    )


class InventoryStore:
    """Contract the checkout core consumes. See SqlInventoryStore."""

    def get_catalog(self) -> List[Product]:
        raise NotImplementedError

    def get_product(self, name: str) -> Optional[Product]:
        raise NotImplementedError

    def commit_order(self, product_name: str, quantity: int) -> CommitResult:
        raise NotImplementedError

    def list_orders(self, limit: int = 100) -> List[Order]:
        raise NotImplementedError


class SqlInventoryStore(InventoryStore):
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def get_catalog(self) -> List[Product]:
        db = self.session_factory()
        try:
            items = db.query(Inventory).order_by(Inventory.id).all()
            return [to_product(item) for item in items]
        except SQLAlchemyError as e:
            logger.error(f"[InventoryStore] Catalog read failed: {e}")
            raise CollaboratorUnavailable("inventory store", "catalog read failed") from e
        finally:
            db.close()

    def _find(self, db, name: str) -> Optional[Inventory]:
        # Priority 1: case-insensitive exact match
        item = (
            db.query(Inventory)
            .filter(func.lower(Inventory.item_name) == name.strip().lower())
            .order_by(Inventory.id)
            .first()
        )
        if item:
            return item

        # Priority 2: punctuation/whitespace-normalized exact match
        wanted = normalize_text(name)
        if not wanted:
            return None
        for candidate in db.query(Inventory).order_by(Inventory.id).all():
            if normalize_text(candidate.item_name) == wanted:
                return candidate
        return None

    def get_product(self, name: str) -> Optional[Product]:
        db = self.session_factory()
        try:
            item = self._find(db, name)
            return to_product(item) if item else None
        except SQLAlchemyError as e:
            logger.error(f"[InventoryStore] Lookup of '{name}' failed: {e}")
            raise CollaboratorUnavailable("inventory store", "product lookup failed") from e
        finally:
            db.close()

    def commit_order(self, product_name: str, quantity: int) -> CommitResult:
        """
        Atomic check-and-decrement plus order record.

        Returns:
            CommitResult.ok(order_id) or CommitResult.failed(reason).
            Database errors roll back and raise CollaboratorUnavailable.
        """
        if quantity < 1:
            return CommitResult.failed(f"Invalid quantity: {quantity}")

        db = self.session_factory()
        try:
            item = self._find(db, product_name)
            if not item:
                return CommitResult.failed(f"Medicine '{product_name}' not found")

            result = db.execute(
                update(Inventory)
                .where(Inventory.id == item.id, Inventory.stock >= quantity)
                .values(stock=Inventory.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                available = db.query(Inventory.stock).filter(Inventory.id == item.id).scalar()
                logger.warning(
                    f"[InventoryStore] Commit refused for '{item.item_name}': "
                    f"requested={quantity}, available={available}"
                )
                return CommitResult.failed(
                    f"Insufficient stock: requested {quantity}, available {available or 0}"
                )

            order_id = str(uuid.uuid4())
            medicine_name = item.item_name
            unit_price = to_money(item.price or 0)
            order = Order(
                order_id=order_id,
                medicine_name=medicine_name,
                quantity=quantity,
                unit_price=unit_price,
                total_price=to_money(unit_price * quantity),
            )
            db.add(order)
            db.commit()
            logger.info(
                f"[InventoryStore] Committed order {order_id}: {quantity} x '{medicine_name}'"
            )
            return CommitResult.ok(order_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[InventoryStore] Commit failed for '{product_name}': {e}", exc_info=True)
            raise CollaboratorUnavailable("inventory store", "order commit failed") from e
        finally:
            db.close()

    def list_orders(self, limit: int = 100) -> List[Order]:
        db = self.session_factory()
        try:
            return (
                db.query(Order)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"[InventoryStore] Order listing failed: {e}")
            raise CollaboratorUnavailable("inventory store", "order listing failed") from e
        finally:
            db.close()
