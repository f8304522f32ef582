from sqlalchemy import Column, Integer, String, Numeric, Boolean, CheckConstraint
from app.db.base import Base


class Inventory(Base):
    """
    Pharmacy stock row.

    COMPLIANCE NOTE:
    - requires_prescription: orders for this item are rejected at the policy gate
    - stock is only ever decremented through the conditional commit in
      InventoryStore.commit_order, never read-modify-written
    """
    __tablename__ = "inventory"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_inventory_stock_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    item_name = Column(String(255), nullable=False, unique=True, index=True)
    stock = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)  # per unit
    disease = Column(String(512), nullable=True)  # What the medicine treats
    requires_prescription = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<Inventory {self.item_name!r} stock={self.stock}>"
