from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from app.agent.entities import Invoice, TraceEvent


class StartCheckoutRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=1000)


class ConfirmRequest(BaseModel):
    checkout_id: Optional[str] = None
    confirm: bool = True  # false cancels


class CancelRequest(BaseModel):
    checkout_id: Optional[str] = None


class PayRequest(BaseModel):
    checkout_id: Optional[str] = None
    email: Optional[str] = None
    pay: bool = True  # false cancels


class VoiceRequest(BaseModel):
    """Base64 audio, optionally a data URL ("data:audio/webm;base64,...")."""
    data: str = Field(min_length=1)
    filename: str = "audio.webm"


class CheckoutResponse(BaseModel):
    """
    One shape for every checkout endpoint.

    status: PENDING_CONFIRMATION | PENDING_PAYMENT | REJECTED | CANCELED |
            EXPIRED | PAID | FAILED | NO_SESSION
    """
    status: str
    message: str
    checkout_id: Optional[str] = None
    run_id: Optional[str] = None
    user_prompt: Optional[str] = None
    medicine_name: Optional[str] = None
    quantity: Optional[int] = None
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    approved: bool = False
    commit_ok: bool = False
    error_code: Optional[str] = None
    order_id: Optional[str] = None
    invoice: Optional[Invoice] = None
    invoice_delivered: Optional[bool] = None
    suggestion_score: Optional[int] = None
    latency_ms: Optional[int] = None
    trace: List[TraceEvent] = []
    timestamp: Optional[datetime] = None
