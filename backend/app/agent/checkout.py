"""
Checkout State Machine: the only place an order can be committed.

================================================================================
STATES
================================================================================

    NoSession --start(Approve)--> Confirm --confirm--> Payment --pay--> NoSession
                                     |                    |
                                     +------cancel--------+-------> NoSession

- start on a reject decision never creates a session: it finalizes a
  RunRecord directly (one-shot path).
- pay ALWAYS ends in NoSession, whether the commit succeeded or not.
- Guards (SessionAlreadyActive, InvalidStage, InvalidEmail) raise before any
  mutation, so a rejected call leaves the session exactly as it was.

The session lives in a CheckoutSlot owned by the orchestrator, one per
conversation. Nothing here is global.
================================================================================
"""
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from app.agent.decision_engine import (
    Approve,
    Decision,
    RejectInsufficientStock,
    RejectNotFound,
    RejectPrescriptionRequired,
    RejectUnresolved,
    decision_product,
)
from app.agent.entities import (
    CheckoutStage,
    Intent,
    RunOutcome,
    RunRecord,
    TraceStage,
)
from app.agent.trace import TraceLog, suggestion_score
from app.core.audit import AuditLog
from app.core.exceptions import (
    CollaboratorUnavailable,
    ErrorCode,
    InvalidEmail,
    InvalidStage,
    SessionAlreadyActive,
)
from app.services.invoice_service import build_invoice

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(EMAIL_PATTERN.match((email or "").strip()))


def _elapsed_ms(started: Optional[float]) -> int:
    if started is None:
        return 0
    return max(0, int(round((time.perf_counter() - started) * 1000)))


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckoutSession:
    """The single in-flight confirm/pay negotiation. Prices are frozen at creation."""

    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    user_prompt: str
    suggestion_score: int
    trace: TraceLog
    stage: CheckoutStage = CheckoutStage.CONFIRM
    customer_email: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    # Monotonic timestamp of the last transition, drives idle expiry
    touched_at: float = 0.0


@dataclass
class CheckoutSlot:
    """At most one session per conversation. None = NoSession."""

    session: Optional[CheckoutSession] = None

    @property
    def active(self) -> bool:
        return self.session is not None


def rejection_message(decision: Decision) -> str:
    if isinstance(decision, RejectUnresolved):
        return "I couldn't identify one medicine clearly. Please say one medicine name."
    if isinstance(decision, RejectNotFound):
        return f"Medicine '{decision.product_name}' not found in inventory."
    if isinstance(decision, RejectPrescriptionRequired):
        return f"Order rejected: {decision.product.name} requires prescription."
    if isinstance(decision, RejectInsufficientStock):
        return f"Order rejected: requested {decision.requested}, available {decision.product.stock}."
    raise TypeError(f"Not a rejection: {type(decision).__name__}")


def _rejection_summary(decision: Decision) -> str:
    if isinstance(decision, RejectUnresolved):
        return "Rejected: medicine not identified"
    if isinstance(decision, RejectNotFound):
        return "Rejected: medicine not found"
    if isinstance(decision, RejectPrescriptionRequired):
        return "Rejected: prescription required"
    if isinstance(decision, RejectInsufficientStock):
        return "Rejected: insufficient stock"
    raise TypeError(f"Not a rejection: {type(decision).__name__}")


class CheckoutStateMachine:
    """
    Transitions over a CheckoutSlot.

    Args:
        store: Inventory store (commit_order)
        catalog: CatalogCache refreshed after a successful commit
        notifier: InvoiceNotifier, best-effort
        history: RunHistory receiving every finalized RunRecord
        session_ttl_seconds: Idle expiry; 0 disables
        clock: Monotonic clock used for expiry
    """

    def __init__(
        self,
        store,
        catalog,
        notifier,
        history,
        session_ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.catalog = catalog
        self.notifier = notifier
        self.history = history
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _finalize(
        self,
        user_prompt: str,
        product_name: str,
        quantity: int,
        trace: TraceLog,
        score: int,
        response_text: str,
        outcome: RunOutcome,
        started: Optional[float],
        approved: bool = False,
        commit_ok: bool = False,
        error_code: Optional[ErrorCode] = None,
        order_id: Optional[str] = None,
        invoice=None,
        invoice_delivered: Optional[bool] = None,
    ) -> RunRecord:
        record = RunRecord(
            run_id=str(uuid.uuid4()),
            timestamp=_now(),
            user_prompt=user_prompt,
            product_name=product_name,
            quantity=quantity,
            approved=approved,
            commit_ok=commit_ok,
            response_text=response_text,
            latency_ms=_elapsed_ms(started),
            trace=trace.events,
            suggestion_score=score,
            outcome=outcome,
            error_code=error_code.value if error_code else None,
            order_id=order_id,
            invoice=invoice,
            invoice_delivered=invoice_delivered,
        )
        self.history.append(record)
        AuditLog.log_run_finalized(
            record.run_id,
            record.outcome.value,
            record.approved,
            record.commit_ok,
            record.trace_count,
            record.suggestion_score,
            order_id=record.order_id,
        )
        return record

    def _finalize_session(self, slot: CheckoutSlot, session: CheckoutSession, response_text: str,
                          outcome: RunOutcome, started: Optional[float], **kwargs) -> RunRecord:
        # Slot is cleared before the record is built: no path leaves it dangling
        slot.session = None
        return self._finalize(
            session.user_prompt,
            session.product_name,
            session.quantity,
            session.trace,
            session.suggestion_score,
            response_text,
            outcome,
            started,
            **kwargs,
        )

    def _require(self, slot: CheckoutSlot, session_id: Optional[str], *stages: CheckoutStage) -> CheckoutSession:
        session = slot.session
        if session is None:
            raise InvalidStage("No active checkout. Please place an order first.")
        if session_id and session_id != session.id:
            raise InvalidStage("This checkout is no longer active.")
        if session.stage not in stages:
            raise InvalidStage(f"Checkout is awaiting {session.stage.value}.")
        return session

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(
        self,
        slot: CheckoutSlot,
        user_prompt: str,
        intent: Intent,
        decision: Decision,
        started: Optional[float] = None,
    ) -> Union[RunRecord, CheckoutSession]:
        """
        Open a session on Approve, or finalize a rejected RunRecord.

        Raises:
            SessionAlreadyActive: a session already occupies the slot
        """
        if slot.active:
            logger.info(f"[CheckoutFSM] start refused, session {slot.session.id} still active")
            raise SessionAlreadyActive()

        product = decision_product(decision)
        score = suggestion_score(product, intent.quantity, decision.approved)

        trace = TraceLog()
        trace.append(
            TraceStage.INTENT_EXTRACTION,
            f"medicine={intent.product_name_guess or 'UNKNOWN'}, qty={intent.quantity}",
        )
        if product is not None:
            trace.append(
                TraceStage.SAFETY_POLICY,
                f"stock={product.stock}, prescription={'yes' if product.requires_prescription else 'no'}",
            )

        if not isinstance(decision, Approve):
            trace.append(TraceStage.SAFETY_POLICY, _rejection_summary(decision))
            logger.info(f"[CheckoutFSM] Rejected '{user_prompt[:80]}': {decision.code.value}")
            return self._finalize(
                user_prompt,
                product.name if product else intent.product_name_guess,
                intent.quantity,
                trace,
                score,
                rejection_message(decision),
                RunOutcome.REJECTED,
                started,
                error_code=decision.code,
            )

        session = CheckoutSession(
            product_name=product.name,
            quantity=decision.quantity,
            unit_price=decision.unit_price,
            total_price=decision.total_price,
            user_prompt=user_prompt,
            suggestion_score=score,
            trace=trace,
            touched_at=self._clock(),
        )
        slot.session = session
        AuditLog.log_checkout_event(
            "start", session.id, session.product_name, session.quantity,
            {"total_price": session.total_price, "suggestion_score": score},
        )
        logger.info(
            f"[CheckoutFSM] Session {session.id} opened: {session.quantity} x '{session.product_name}' "
            f"total={session.total_price}"
        )
        return session

    def confirm(self, slot: CheckoutSlot, session_id: Optional[str]) -> CheckoutSession:
        """Confirm -> Payment. A second confirm fails: the stage is no longer Confirm."""
        session = self._require(slot, session_id, CheckoutStage.CONFIRM)
        session.trace.append(TraceStage.SUPERVISOR, "Confirmed by user; awaiting payment")
        session.stage = CheckoutStage.PAYMENT
        session.touched_at = self._clock()
        AuditLog.log_checkout_event("confirm", session.id, session.product_name, session.quantity)
        return session

    def cancel(self, slot: CheckoutSlot, session_id: Optional[str], started: Optional[float] = None) -> RunRecord:
        session = self._require(slot, session_id, CheckoutStage.CONFIRM, CheckoutStage.PAYMENT)
        session.trace.append(TraceStage.SUPERVISOR, "Canceled by user")
        AuditLog.log_checkout_event(
            "cancel", session.id, session.product_name, session.quantity, {"stage": session.stage.value}
        )
        logger.info(f"[CheckoutFSM] Session {session.id} canceled at {session.stage.value}")
        return self._finalize_session(slot, session, "Order canceled by user.", RunOutcome.CANCELED, started)

    def pay(self, slot: CheckoutSlot, session_id: Optional[str], email: Optional[str],
            started: Optional[float] = None) -> RunRecord:
        """
        Commit the order. Always clears the slot once the guards have passed.

        Raises:
            InvalidStage: no session, wrong id, or not in Payment
            InvalidEmail: email fails the syntax check (session stays in Payment)
        """
        session = self._require(slot, session_id, CheckoutStage.PAYMENT)
        if not is_valid_email(email):
            raise InvalidEmail()

        try:
            return self._commit(slot, session, email.strip(), started)
        finally:
            # Past the guards the session is spent, even if something below raised
            slot.session = None

    def _commit(self, slot: CheckoutSlot, session: CheckoutSession, email: str,
                started: Optional[float]) -> RunRecord:
        session.customer_email = email
        session.trace.append(TraceStage.ACTION, f"Committing order: {session.quantity} x {session.product_name}")

        try:
            result = self.store.commit_order(session.product_name, session.quantity)
            success, order_id, reason = result.success, result.order_id, result.reason
        except CollaboratorUnavailable as e:
            AuditLog.log_collaborator_failure(e.collaborator, e.reason)
            success, order_id, reason = False, None, f"Order commit failed: {e.reason}"
        except Exception as e:
            logger.error(f"[CheckoutFSM] Commit raised for session {session.id}: {e}", exc_info=True)
            success, order_id, reason = False, None, "Order commit failed"

        if not success:
            reason = reason or "Order commit failed"
            session.trace.append(TraceStage.SUPERVISOR, f"Failed: {reason}")
            AuditLog.log_checkout_event(
                "pay", session.id, session.product_name, session.quantity,
                {"commit_ok": False, "reason": reason, "email": email},
            )
            logger.warning(f"[CheckoutFSM] Session {session.id} commit failed: {reason}")
            return self._finalize_session(
                slot, session, f"Order failed: {reason}", RunOutcome.COMMIT_FAILED, started,
                error_code=ErrorCode.COMMIT_FAILED,
            )

        session.trace.append(TraceStage.SUPERVISOR, "Committed")

        # Stock is already decremented: nothing after this point may undo or repeat the order
        invoice, delivered = None, False
        try:
            invoice = build_invoice(order_id, session, email, _now())
            if self.notifier:
                delivered = bool(self.notifier.send_invoice(email, invoice))
        except Exception as e:
            logger.error(f"[CheckoutFSM] Invoice for order {order_id} not dispatched: {e}")

        try:
            self.catalog.refresh()
        except CollaboratorUnavailable as e:
            logger.warning(f"[CheckoutFSM] Catalog refresh after commit failed: {e.reason}")
        except Exception as e:
            logger.error(f"[CheckoutFSM] Catalog refresh after commit raised: {e}", exc_info=True)

        AuditLog.log_checkout_event(
            "pay", session.id, session.product_name, session.quantity,
            {"commit_ok": True, "order_id": order_id, "invoice_delivered": delivered, "email": email},
        )
        notice = f"Invoice sent to {email}." if delivered else f"Order placed. Invoice prepared for {email}."
        text = f"Order placed for {session.quantity} {session.product_name}. Order ID: {order_id}. {notice}"
        return self._finalize_session(
            slot, session, text, RunOutcome.COMMITTED, started,
            approved=True, commit_ok=True, order_id=order_id,
            invoice=invoice, invoice_delivered=delivered,
        )

    def is_expired(self, session: CheckoutSession) -> bool:
        if not self.session_ttl_seconds:
            return False
        return self._clock() - session.touched_at >= self.session_ttl_seconds

    def expire_if_stale(self, slot: CheckoutSlot) -> Optional[RunRecord]:
        """Finalize an idle session as EXPIRED. Returns the record, or None if nothing expired."""
        session = slot.session
        if session is None or not self.is_expired(session):
            return None
        session.trace.append(TraceStage.SUPERVISOR, "Expired after inactivity")
        AuditLog.log_checkout_event(
            "expire", session.id, session.product_name, session.quantity, {"stage": session.stage.value}
        )
        logger.info(f"[CheckoutFSM] Session {session.id} expired at {session.stage.value}")
        return self._finalize_session(
            slot, session, "Checkout expired after inactivity. Please place the order again.",
            RunOutcome.EXPIRED, None, error_code=ErrorCode.SESSION_EXPIRED,
        )
