"""
Core checkout entities.

Product, Intent, TraceEvent, Invoice and RunRecord are immutable once built.
CheckoutSession (in app.agent.checkout) is the only mutable state.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize any numeric value to 2 decimal places."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class Product(BaseModel):
    """Read-only catalog entry. Owned by the inventory store."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    stock: int = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    requires_prescription: bool = False
    disease: Optional[str] = None

    @field_validator("unit_price")
    @classmethod
    def quantize_price(cls, v: Decimal) -> Decimal:
        return to_money(v)


class Intent(BaseModel):
    """(product, quantity) guess for one utterance. Empty name = unresolved."""
    model_config = ConfigDict(frozen=True)

    product_name_guess: str = ""
    quantity: int = Field(default=1, ge=1)

    @property
    def resolved(self) -> bool:
        return bool(self.product_name_guess)


class TraceStage(str, Enum):
    INTENT_EXTRACTION = "IntentExtraction"
    SAFETY_POLICY = "SafetyPolicy"
    SUPERVISOR = "Supervisor"
    ACTION = "Action"


class TraceEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: int = Field(ge=1)
    stage: TraceStage
    summary: str


class CheckoutStage(str, Enum):
    CONFIRM = "confirm"
    PAYMENT = "payment"


class CommitResult(BaseModel):
    """Outcome of the store's atomic check-and-decrement."""
    model_config = ConfigDict(frozen=True)

    success: bool
    order_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, order_id: str) -> "CommitResult":
        return cls(success=True, order_id=order_id)

    @classmethod
    def failed(cls, reason: str) -> "CommitResult":
        return cls(success=False, reason=reason)


class Invoice(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_id: str
    order_id: str
    medicine_name: str
    quantity: int
    unit_price: Decimal
    total_paid: Decimal
    customer_email: str
    paid_at: datetime


class RunOutcome(str, Enum):
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"
    COMMITTED = "COMMITTED"
    COMMIT_FAILED = "COMMIT_FAILED"


class RunRecord(BaseModel):
    """Finalized, immutable outcome of one utterance-to-resolution cycle."""
    model_config = ConfigDict(frozen=True)

    run_id: str
    timestamp: datetime
    user_prompt: str
    product_name: str = ""
    quantity: int = 1
    approved: bool = False
    commit_ok: bool = False
    response_text: str
    latency_ms: int = 0
    trace: Tuple[TraceEvent, ...] = ()
    suggestion_score: int = Field(ge=0, le=100)
    outcome: RunOutcome
    error_code: Optional[str] = None
    order_id: Optional[str] = None
    invoice: Optional[Invoice] = None
    invoice_delivered: Optional[bool] = None

    @property
    def trace_count(self) -> int:
        return len(self.trace)
