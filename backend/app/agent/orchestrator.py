"""
Decision orchestrator: the two entry points the UI layer talks to.

    submit_utterance(text)            -> RunRecord | PendingCheckout | CheckoutNotice
    advance_checkout(action, payload) -> RunRecord | PendingCheckout | CheckoutNotice

Each conversation gets its own orchestrator and therefore its own checkout
slot. Catalog cache, store, decision engine, notifier and run history are
shared. CheckoutError never escapes: it comes back as a CheckoutNotice.
"""
import logging
import threading
import time
from collections import OrderedDict
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from app.agent import intent_parser
from app.agent.checkout import CheckoutSession, CheckoutSlot, CheckoutStateMachine
from app.agent.entities import CheckoutStage, RunRecord, TraceEvent
from app.core.audit import AuditLog
from app.core.exceptions import CheckoutError, CollaboratorUnavailable, ErrorCode, InvalidStage

logger = logging.getLogger(__name__)

NOT_AN_ORDER_MESSAGE = "Please share medicine name and quantity so I can process it safely."
NO_SPEECH_MESSAGE = "No speech detected"


class CheckoutAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    PAY = "pay"


class PendingCheckout(BaseModel):
    """Read-only view of the active session returned to the caller."""

    checkout_id: str
    stage: CheckoutStage
    medicine_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    message: str
    user_prompt: str
    trace: Tuple[TraceEvent, ...]
    suggestion_score: int
    customer_email: Optional[str] = None

    @classmethod
    def from_session(cls, session: CheckoutSession) -> "PendingCheckout":
        if session.stage == CheckoutStage.CONFIRM:
            message = (
                f"Confirm order: {session.quantity} x {session.product_name}. "
                f"Total cost: {session.total_price:.2f}"
            )
        else:
            message = f"Confirmation received. Proceed to payment of {session.total_price:.2f}."
        return cls(
            checkout_id=session.id,
            stage=session.stage,
            medicine_name=session.product_name,
            quantity=session.quantity,
            unit_price=session.unit_price,
            total_price=session.total_price,
            message=message,
            user_prompt=session.user_prompt,
            trace=session.trace.events,
            suggestion_score=session.suggestion_score,
            customer_email=session.customer_email,
        )


class CheckoutNotice(BaseModel):
    """A guard or collaborator failure. Session state was not changed."""

    code: ErrorCode
    message: str
    user_prompt: Optional[str] = None


Outcome = Union[RunRecord, PendingCheckout, CheckoutNotice]


def _notice(error: CheckoutError, user_prompt: Optional[str] = None) -> CheckoutNotice:
    return CheckoutNotice(code=error.code, message=error.message, user_prompt=user_prompt)


class DecisionOrchestrator:
    """Owns one conversation's CheckoutSlot. Operations on it are serialized."""

    def __init__(self, catalog, decision_engine, checkout: CheckoutStateMachine, transcriber=None):
        self.catalog = catalog
        self.decision_engine = decision_engine
        self.checkout = checkout
        self.transcriber = transcriber
        self.slot = CheckoutSlot()
        self._lock = threading.Lock()

    def current_checkout(self) -> Optional[PendingCheckout]:
        with self._lock:
            self.checkout.expire_if_stale(self.slot)
            if self.slot.session is None:
                return None
            return PendingCheckout.from_session(self.slot.session)

    def is_idle(self) -> bool:
        """No open checkout. A conversation mid-operation counts as busy."""
        if not self._lock.acquire(blocking=False):
            return False
        try:
            self.checkout.expire_if_stale(self.slot)
            return not self.slot.active
        finally:
            self._lock.release()

    def submit_utterance(self, text: str) -> Outcome:
        started = time.perf_counter()
        text = (text or "").strip()
        with self._lock:
            self.checkout.expire_if_stale(self.slot)

            if self.slot.active:
                return CheckoutNotice(
                    code=ErrorCode.SESSION_ALREADY_ACTIVE,
                    message="Please complete or cancel the current checkout before creating a new order.",
                    user_prompt=text,
                )

            if not intent_parser.looks_like_order(text):
                logger.info(f"[Orchestrator] Not an order: '{text[:80]}'")
                return CheckoutNotice(code=ErrorCode.NOT_AN_ORDER, message=NOT_AN_ORDER_MESSAGE, user_prompt=text)

            try:
                products = self.catalog.snapshot()
                intent = intent_parser.resolve(text, products)
                decision = self.decision_engine.evaluate(intent)
            except CollaboratorUnavailable as e:
                AuditLog.log_collaborator_failure(e.collaborator, e.reason)
                return _notice(e, text)

            try:
                result = self.checkout.start(self.slot, text, intent, decision, started)
            except CheckoutError as e:
                return _notice(e, text)

            if isinstance(result, CheckoutSession):
                return PendingCheckout.from_session(result)
            return result

    def advance_checkout(self, action: CheckoutAction, payload: Optional[Dict] = None) -> Outcome:
        """
        Apply confirm / cancel / pay to the active session.

        payload keys: checkout_id (optional, must match the active session
        when given), email (pay only).
        """
        started = time.perf_counter()
        payload = payload or {}
        checkout_id = payload.get("checkout_id")
        try:
            action = CheckoutAction(action)
        except ValueError:
            return _notice(InvalidStage(f"Unknown checkout action: {action!r}"))

        with self._lock:
            expired = self.checkout.expire_if_stale(self.slot)
            if expired is not None:
                return expired

            try:
                if action == CheckoutAction.CONFIRM:
                    return PendingCheckout.from_session(self.checkout.confirm(self.slot, checkout_id))
                if action == CheckoutAction.CANCEL:
                    return self.checkout.cancel(self.slot, checkout_id, started)
                if action == CheckoutAction.PAY:
                    return self.checkout.pay(self.slot, checkout_id, payload.get("email"), started)
            except CheckoutError as e:
                logger.info(f"[Orchestrator] {action.value} refused: {e.code.value}")
                return _notice(e)

        raise ValueError(f"Unhandled checkout action: {action}")

    def submit_voice(self, audio: bytes, filename: str = "audio.webm") -> Outcome:
        """Transcribe, then handle the transcript as an utterance."""
        if self.transcriber is None:
            return CheckoutNotice(
                code=ErrorCode.COLLABORATOR_UNAVAILABLE,
                message="Voice input is not configured.",
            )
        if not audio:
            return CheckoutNotice(code=ErrorCode.NOT_AN_ORDER, message=NO_SPEECH_MESSAGE, user_prompt="")

        # Outside the lock: a slow transcriber must not hold up checkout transitions
        try:
            transcript = self.transcriber.transcribe(audio, filename)
        except CollaboratorUnavailable as e:
            AuditLog.log_collaborator_failure(e.collaborator, e.reason)
            return CheckoutNotice(
                code=ErrorCode.COLLABORATOR_UNAVAILABLE,
                message="Transcription failed. Please try again or type your order.",
            )

        if not transcript.strip():
            return CheckoutNotice(code=ErrorCode.NOT_AN_ORDER, message=NO_SPEECH_MESSAGE, user_prompt="")
        return self.submit_utterance(transcript)


class ConversationRegistry:
    """
    One DecisionOrchestrator per conversation id, created on first use.

    At most `limit` conversations are kept. When full, the least recently
    used conversation without an open checkout is dropped; if every one has
    an open checkout the new conversation is refused.
    """

    def __init__(self, factory: Callable[[], DecisionOrchestrator], limit: int = 1000):
        if limit < 1:
            raise ValueError("ConversationRegistry limit must be >= 1")
        self._factory = factory
        self.limit = limit
        self._conversations: "OrderedDict[str, DecisionOrchestrator]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, conversation_id: str) -> DecisionOrchestrator:
        with self._lock:
            orchestrator = self._conversations.get(conversation_id)
            if orchestrator is not None:
                self._conversations.move_to_end(conversation_id)
                return orchestrator

            if len(self._conversations) >= self.limit:
                self._evict_idle()
            orchestrator = self._factory()
            self._conversations[conversation_id] = orchestrator
            logger.info(f"[Orchestrator] New conversation '{conversation_id}'")
            return orchestrator

    def _evict_idle(self):
        victim = next((cid for cid, o in self._conversations.items() if o.is_idle()), None)
        if victim is None:
            raise CollaboratorUnavailable(
                "conversation registry", f"all {self.limit} conversations have an open checkout"
            )
        del self._conversations[victim]
        logger.info(f"[Orchestrator] Dropped idle conversation '{victim}'")

    def conversation_ids(self) -> List[str]:
        with self._lock:
            return list(self._conversations)

    def __len__(self) -> int:
        return len(self._conversations)
