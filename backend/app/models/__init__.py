from app.models.inventory import Inventory
from app.models.order import Order

__all__ = ["Inventory", "Order"]
