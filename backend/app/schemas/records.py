from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from app.agent.entities import RunOutcome, TraceEvent


class MedicineRecord(BaseModel):
    medicine_name: str
    stock: int
    price: Decimal
    requires_prescription: bool
    disease: Optional[str] = None


class OrderRecord(BaseModel):
    order_id: str
    medicine_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RunRecordOut(BaseModel):
    run_id: str
    timestamp: datetime
    user_prompt: str
    product_name: str
    quantity: int
    approved: bool
    commit_ok: bool
    response_text: str
    latency_ms: int
    trace: List[TraceEvent]
    suggestion_score: int
    outcome: RunOutcome
    error_code: Optional[str] = None
    order_id: Optional[str] = None
    invoice_delivered: Optional[bool] = None

    class Config:
        from_attributes = True


class TopMedicine(BaseModel):
    name: str
    count: int


class InventorySummary(BaseModel):
    total_medicines: int
    total_stock: int
    low_stock_count: int
    total_orders: int
