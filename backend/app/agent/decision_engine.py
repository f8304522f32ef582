"""
Decision Engine: the policy gate between intent and checkout.

================================================================================
SAFETY ARCHITECTURE
================================================================================

THIS MODULE DECIDES, IT NEVER EXECUTES.

Flow:
1. Intent parser extracts (product, quantity)
2. Policy gate evaluates the intent against a point-in-time store read
3. Approve -> checkout state machine opens a session (confirm, then pay)
4. Only the pay step commits, and the store re-checks stock atomically

Evaluation order is fixed and short-circuits:
    unresolved -> not found -> prescription required -> insufficient stock -> approve
The order decides which trace events appear, so it must never change.

PHARMACY COMPLIANCE:
- requires_prescription == True is a hard reject, whatever the stock

Two interchangeable engines implement the same rules: LocalDecisionEngine
(authoritative, reads the store) and RemoteDecisionEngine (policy service).
FallbackDecisionEngine chains them explicitly.
================================================================================
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, ClassVar, Optional

import requests

from app.agent.entities import Intent, Product, to_money
from app.core.exceptions import CollaboratorUnavailable, ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    code: ClassVar[Optional[ErrorCode]] = None

    @property
    def approved(self) -> bool:
        return False


@dataclass(frozen=True)
class RejectUnresolved(Decision):
    code: ClassVar[ErrorCode] = ErrorCode.UNRESOLVED_INTENT


@dataclass(frozen=True)
class RejectNotFound(Decision):
    code: ClassVar[ErrorCode] = ErrorCode.PRODUCT_NOT_FOUND
    product_name: str = ""


@dataclass(frozen=True)
class RejectPrescriptionRequired(Decision):
    code: ClassVar[ErrorCode] = ErrorCode.PRESCRIPTION_REQUIRED
    product: Optional[Product] = None


@dataclass(frozen=True)
class RejectInsufficientStock(Decision):
    code: ClassVar[ErrorCode] = ErrorCode.INSUFFICIENT_STOCK
    product: Optional[Product] = None
    requested: int = 0


@dataclass(frozen=True)
class Approve(Decision):
    product: Optional[Product] = None
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    total_price: Decimal = Decimal("0.00")

    @property
    def approved(self) -> bool:
        return True


def decision_product(decision: Decision) -> Optional[Product]:
    """Catalog product behind a decision, None when the gate never found one."""
    if isinstance(decision, (RejectUnresolved, RejectNotFound)):
        return None
    if isinstance(decision, (RejectPrescriptionRequired, RejectInsufficientStock, Approve)):
        return decision.product
    raise TypeError(f"Unhandled decision type: {type(decision).__name__}")


def approve(product: Product, quantity: int) -> Approve:
    # DETERMINISTIC BILLING: unit price × quantity, computed once here
    unit_price = to_money(product.unit_price)
    return Approve(
        product=product,
        quantity=quantity,
        unit_price=unit_price,
        total_price=to_money(unit_price * quantity),
    )


def evaluate(intent: Intent, lookup: Callable[[str], Optional[Product]]) -> Decision:
    """
    Pure policy evaluation.

    Args:
        intent: Resolved intent (empty product name = unresolved)
        lookup: Exact, case/format-normalized store lookup by name

    Returns:
        One Decision variant. Never raises for policy outcomes; a failing
        lookup propagates CollaboratorUnavailable.
    """
    if not intent.resolved:
        logger.info("[PolicyGate] Rejected: medicine not identified")
        return RejectUnresolved()

    product = lookup(intent.product_name_guess)
    if product is None:
        logger.info(f"[PolicyGate] Rejected: '{intent.product_name_guess}' not found")
        return RejectNotFound(product_name=intent.product_name_guess)

    if product.requires_prescription:
        logger.info(f"[PolicyGate] Rejected: '{product.name}' requires prescription")
        return RejectPrescriptionRequired(product=product)

    if product.stock < intent.quantity:
        logger.info(
            f"[PolicyGate] Rejected: '{product.name}' requested={intent.quantity}, stock={product.stock}"
        )
        return RejectInsufficientStock(product=product, requested=intent.quantity)

    decision = approve(product, intent.quantity)
    logger.info(
        f"[PolicyGate] Approved: '{product.name}' qty={decision.quantity}, "
        f"unit_price={decision.unit_price}, total={decision.total_price}"
    )
    return decision


class DecisionEngine:
    """Interface shared by the local and remote policy gates."""

    name = "base"

    def evaluate(self, intent: Intent) -> Decision:
        raise NotImplementedError


class LocalDecisionEngine(DecisionEngine):
    """Authoritative rules against the inventory store."""

    name = "local"

    def __init__(self, store):
        self.store = store

    def evaluate(self, intent: Intent) -> Decision:
        return evaluate(intent, self.store.get_product)


class RemoteDecisionEngine(DecisionEngine):
    """
    Policy service client.

    Request:  POST {url} {"medicine_name": str, "quantity": int}
    Response: {"decision": "APPROVE" | "REJECT_NOT_FOUND" |
               "REJECT_PRESCRIPTION_REQUIRED" | "REJECT_INSUFFICIENT_STOCK",
               "medicine": {"medicine_name", "stock", "price", "requires_prescription"}}

    Unresolved intents are rejected locally and never sent.
    """

    name = "remote"

    def __init__(self, url: str, timeout: float = 10, http=None):
        if not url:
            raise ValueError("RemoteDecisionEngine requires a policy URL")
        self.url = url
        self.timeout = timeout
        self.http = http or requests.Session()

    def evaluate(self, intent: Intent) -> Decision:
        if not intent.resolved:
            return RejectUnresolved()

        try:
            resp = self.http.post(
                self.url,
                json={"medicine_name": intent.product_name_guess, "quantity": intent.quantity},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise CollaboratorUnavailable("policy service", str(e)) from e

        verdict = str(data.get("decision", "")).upper()
        if verdict == "REJECT_NOT_FOUND":
            return RejectNotFound(product_name=intent.product_name_guess)

        product = self._parse_product(data.get("medicine"))
        if verdict == "REJECT_PRESCRIPTION_REQUIRED":
            return RejectPrescriptionRequired(product=product)
        if verdict == "REJECT_INSUFFICIENT_STOCK":
            return RejectInsufficientStock(product=product, requested=intent.quantity)
        if verdict == "APPROVE":
            return approve(product, intent.quantity)

        raise CollaboratorUnavailable("policy service", f"unknown decision {verdict!r}")

    @staticmethod
    def _parse_product(raw) -> Product:
        if not isinstance(raw, dict):
            raise CollaboratorUnavailable("policy service", "response missing medicine")
        try:
            return Product(
                name=raw["medicine_name"],
                stock=int(raw.get("stock", 0)),
                unit_price=Decimal(str(raw.get("price", 0))),
                requires_prescription=bool(raw.get("requires_prescription", False)),
            )
        except (KeyError, ValueError, ArithmeticError) as e:
            raise CollaboratorUnavailable("policy service", f"malformed medicine: {e}") from e


class FallbackDecisionEngine(DecisionEngine):
    """Try primary; on CollaboratorUnavailable evaluate with fallback instead."""

    def __init__(self, primary: DecisionEngine, fallback: DecisionEngine):
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"

    def evaluate(self, intent: Intent) -> Decision:
        try:
            return self.primary.evaluate(intent)
        except CollaboratorUnavailable as e:
            logger.warning(f"[PolicyGate] {self.primary.name} engine unavailable ({e.reason}); using {self.fallback.name}")
            return self.fallback.evaluate(intent)


def build_decision_engine(settings, store) -> DecisionEngine:
    local = LocalDecisionEngine(store)
    if settings.DECISION_ENGINE != "remote":
        return local
    remote = RemoteDecisionEngine(settings.REMOTE_POLICY_URL, timeout=settings.EXTERNAL_TIMEOUT_SECONDS)
    if settings.REMOTE_POLICY_FALLBACK:
        return FallbackDecisionEngine(remote, local)
    return remote
