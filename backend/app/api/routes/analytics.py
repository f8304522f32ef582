"""
Analytics API: Dashboard data for the pharmacy console.

Provides aggregated data for:
- Run ledger summary cards (runs, approval split, latency, score)
- Inventory cards (stock, low stock, orders)
- Top medicines by order count
- Latest run with its trace and policy layer status
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func

from app.agent.run_history import policy_layers
from app.api.deps import CheckoutServices, get_db, get_services
from app.models.inventory import Inventory
from app.models.order import Order
from app.schemas.records import InventorySummary, RunRecordOut, TopMedicine

router = APIRouter()

LOW_STOCK_THRESHOLD = 20


@router.get("/summary")
def get_analytics_summary(
    db: Session = Depends(get_db),
    services: CheckoutServices = Depends(get_services),
):
    """
    Overall analytics for dashboard cards.
    Returns: run summary + inventory summary
    """
    total_medicines = db.query(func.count(Inventory.id)).scalar() or 0
    total_stock = db.query(func.sum(Inventory.stock)).scalar() or 0

    # Low stock items count
    low_stock_count = db.query(func.count(Inventory.id)).filter(
        Inventory.stock < LOW_STOCK_THRESHOLD
    ).scalar() or 0

    total_orders = db.query(func.count(Order.id)).scalar() or 0

    return {
        "runs": services.history.summary().model_dump(),
        "inventory": InventorySummary(
            total_medicines=total_medicines,
            total_stock=int(total_stock),
            low_stock_count=low_stock_count,
            total_orders=total_orders,
        ).model_dump(),
    }


@router.get("/top-medicines", response_model=list[TopMedicine])
def get_top_medicines(
    limit: int = Query(10, ge=1, le=50, description="Number of medicines to return"),
    db: Session = Depends(get_db),
):
    """
    Medicines ranked by number of committed orders.
    Returns: [{name: "Dolo 650", count: 12}, ...]
    """
    count = func.count(Order.id).label("count")
    rows = (
        db.query(Order.medicine_name, count)
        .group_by(Order.medicine_name)
        .order_by(count.desc(), Order.medicine_name)
        .limit(limit)
        .all()
    )
    return [TopMedicine(name=name or "Unknown", count=c) for name, c in rows]


@router.get("/latest-run")
def get_latest_run(services: CheckoutServices = Depends(get_services)):
    """Most recent RunRecord, its trace and the L1/L2/L3 policy layer status."""
    latest = services.history.latest()
    return {
        "run": RunRecordOut.model_validate(latest).model_dump(mode="json") if latest else None,
        "policy_layers": [layer.model_dump() for layer in policy_layers(latest)],
    }
