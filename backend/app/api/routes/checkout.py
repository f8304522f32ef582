"""
Checkout API: conversational order approval.

start -> confirm -> pay, with cancel legal at either stage. One active checkout
per conversation (X-Conversation-Id header). Guard failures come back as
4xx/503 with {"code", "message"}; policy rejections and commit failures are
normal 200 responses with status REJECTED / FAILED.
"""
import base64
import binascii
from typing import Union

from fastapi import APIRouter, Depends

from app.agent.entities import CheckoutStage, RunOutcome, RunRecord
from app.agent.orchestrator import CheckoutAction, CheckoutNotice, DecisionOrchestrator, PendingCheckout
from app.api.deps import get_orchestrator
from app.core.exceptions import BusinessError, ErrorCode
from app.schemas.checkout import (
    CancelRequest,
    CheckoutResponse,
    ConfirmRequest,
    PayRequest,
    StartCheckoutRequest,
    VoiceRequest,
)

router = APIRouter()

RUN_STATUS = {
    RunOutcome.REJECTED: "REJECTED",
    RunOutcome.CANCELED: "CANCELED",
    RunOutcome.EXPIRED: "EXPIRED",
    RunOutcome.COMMITTED: "PAID",
    RunOutcome.COMMIT_FAILED: "FAILED",
}


def to_response(outcome: Union[RunRecord, PendingCheckout, CheckoutNotice]) -> CheckoutResponse:
    """Map an orchestrator outcome onto the HTTP response (or raise for notices)."""
    if isinstance(outcome, CheckoutNotice):
        raise BusinessError.from_notice(outcome.code, outcome.message)

    if isinstance(outcome, PendingCheckout):
        return CheckoutResponse(
            status="PENDING_CONFIRMATION" if outcome.stage == CheckoutStage.CONFIRM else "PENDING_PAYMENT",
            message=outcome.message,
            checkout_id=outcome.checkout_id,
            user_prompt=outcome.user_prompt,
            medicine_name=outcome.medicine_name,
            quantity=outcome.quantity,
            unit_price=outcome.unit_price,
            total_price=outcome.total_price,
            approved=True,
            suggestion_score=outcome.suggestion_score,
            trace=list(outcome.trace),
        )

    if isinstance(outcome, RunRecord):
        return CheckoutResponse(
            status=RUN_STATUS[outcome.outcome],
            message=outcome.response_text,
            run_id=outcome.run_id,
            user_prompt=outcome.user_prompt,
            medicine_name=outcome.product_name or None,
            quantity=outcome.quantity,
            unit_price=outcome.invoice.unit_price if outcome.invoice else None,
            total_price=outcome.invoice.total_paid if outcome.invoice else None,
            approved=outcome.approved,
            commit_ok=outcome.commit_ok,
            error_code=outcome.error_code,
            order_id=outcome.order_id,
            invoice=outcome.invoice,
            invoice_delivered=outcome.invoice_delivered,
            suggestion_score=outcome.suggestion_score,
            latency_ms=outcome.latency_ms,
            trace=list(outcome.trace),
            timestamp=outcome.timestamp,
        )

    raise TypeError(f"Unhandled checkout outcome: {type(outcome).__name__}")


@router.post("/start", response_model=CheckoutResponse)
def start_checkout(body: StartCheckoutRequest, orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    """Resolve the prompt, run the policy gate, open a checkout on approval."""
    return to_response(orchestrator.submit_utterance(body.prompt))


@router.post("/confirm", response_model=CheckoutResponse)
def confirm_checkout(body: ConfirmRequest, orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    action = CheckoutAction.CONFIRM if body.confirm else CheckoutAction.CANCEL
    return to_response(orchestrator.advance_checkout(action, {"checkout_id": body.checkout_id}))


@router.post("/cancel", response_model=CheckoutResponse)
def cancel_checkout(body: CancelRequest, orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    return to_response(orchestrator.advance_checkout(CheckoutAction.CANCEL, {"checkout_id": body.checkout_id}))


@router.post("/pay", response_model=CheckoutResponse)
def pay_checkout(body: PayRequest, orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    """Commit the order. The checkout always ends here, paid or failed."""
    if not body.pay:
        return to_response(orchestrator.advance_checkout(CheckoutAction.CANCEL, {"checkout_id": body.checkout_id}))
    return to_response(
        orchestrator.advance_checkout(CheckoutAction.PAY, {"checkout_id": body.checkout_id, "email": body.email})
    )


@router.post("/voice", response_model=CheckoutResponse)
def voice_checkout(body: VoiceRequest, orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    """Transcribe base64 audio and treat the transcript as a typed prompt."""
    data = body.data.split(",", 1)[1] if body.data.startswith("data:") else body.data
    try:
        audio = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise BusinessError.bad_request(ErrorCode.NOT_AN_ORDER, "Audio must be base64 encoded.")
    return to_response(orchestrator.submit_voice(audio, body.filename))


@router.get("/state", response_model=CheckoutResponse)
def checkout_state(orchestrator: DecisionOrchestrator = Depends(get_orchestrator)):
    pending = orchestrator.current_checkout()
    if pending is None:
        return CheckoutResponse(status="NO_SESSION", message="No active checkout.")
    return to_response(pending)
