"""Checkout state machine: start / confirm / cancel / pay / expire."""
from decimal import Decimal

import pytest

from app.agent.catalog_cache import CatalogCache
from app.agent.checkout import CheckoutSession, CheckoutSlot, CheckoutStateMachine, is_valid_email
from app.agent.decision_engine import LocalDecisionEngine
from app.agent.entities import CheckoutStage, CommitResult, RunOutcome, RunRecord, TraceStage
from app.agent.intent_parser import resolve
from app.agent.run_history import RunHistory
from app.core.exceptions import CollaboratorUnavailable, InvalidEmail, InvalidStage, SessionAlreadyActive
from conftest import FakeClock, FakeNotifier, StubStore, make_product


def start(machine, store, slot, text):
    intent = resolve(text, store.get_catalog())
    decision = LocalDecisionEngine(store).evaluate(intent)
    return machine.start(slot, text, intent, decision)


def open_payment(machine, store, slot, text="I need 3 ParacetamolXL"):
    session = start(machine, store, slot, text)
    machine.confirm(slot, session.id)
    return session


def test_approve_opens_session_in_confirm(machine, store):
    slot = CheckoutSlot()
    session = start(machine, store, slot, "I need 3 ParacetamolXL")

    assert isinstance(session, CheckoutSession)
    assert slot.session is session
    assert session.stage == CheckoutStage.CONFIRM
    assert session.product_name == "ParacetamolXL"
    assert session.quantity == 3
    assert session.total_price == Decimal("15.00")
    assert session.suggestion_score == 100
    assert [e.stage for e in session.trace] == [TraceStage.INTENT_EXTRACTION, TraceStage.SAFETY_POLICY]
    assert session.trace.events[0].summary == "medicine=ParacetamolXL, qty=3"


def test_insufficient_stock_finalizes_without_session(machine, store, history):
    slot = CheckoutSlot()
    record = start(machine, store, slot, "need 20 paracetamolxl")

    assert isinstance(record, RunRecord)
    assert slot.session is None
    assert not record.approved
    assert record.outcome == RunOutcome.REJECTED
    assert record.error_code == "INSUFFICIENT_STOCK"
    assert record.response_text == "Order rejected: requested 20, available 10."
    assert record.trace[-1].stage == TraceStage.SAFETY_POLICY
    assert record.trace[-1].summary == "Rejected: insufficient stock"
    assert record.suggestion_score == 50
    assert history.latest() == record


def test_prescription_rejected(machine, store):
    record = start(machine, store, CheckoutSlot(), "need 2 Tramadol 50mg")
    assert record.error_code == "PRESCRIPTION_REQUIRED"
    assert record.response_text == "Order rejected: Tramadol 50mg requires prescription."
    assert [e.summary for e in record.trace] == [
        "medicine=Tramadol 50mg, qty=2",
        "stock=30, prescription=yes",
        "Rejected: prescription required",
    ]


def test_unresolved_rejected(machine, store):
    record = start(machine, store, CheckoutSlot(), "order 2 aspirin")
    assert record.error_code == "UNRESOLVED_INTENT"
    assert record.suggestion_score == 25
    assert [e.summary for e in record.trace] == [
        "medicine=UNKNOWN, qty=2",
        "Rejected: medicine not identified",
    ]


def test_second_start_is_refused_and_session_untouched(machine, store):
    slot = CheckoutSlot()
    first = start(machine, store, slot, "I need 3 ParacetamolXL")
    trace_before = first.trace.events

    with pytest.raises(SessionAlreadyActive):
        start(machine, store, slot, "need 2 dolo 650")

    assert slot.session is first
    assert first.stage == CheckoutStage.CONFIRM
    assert first.trace.events == trace_before


def test_confirm_moves_to_payment_once(machine, store):
    slot = CheckoutSlot()
    session = start(machine, store, slot, "I need 3 ParacetamolXL")
    machine.confirm(slot, session.id)

    assert session.stage == CheckoutStage.PAYMENT
    assert session.trace.last.stage == TraceStage.SUPERVISOR

    with pytest.raises(InvalidStage):
        machine.confirm(slot, session.id)
    assert len(session.trace) == 3


def test_confirm_with_wrong_id_is_refused(machine, store):
    slot = CheckoutSlot()
    session = start(machine, store, slot, "I need 3 ParacetamolXL")
    with pytest.raises(InvalidStage):
        machine.confirm(slot, "not-the-session")
    assert session.stage == CheckoutStage.CONFIRM


def test_actions_without_session_are_refused(machine):
    slot = CheckoutSlot()
    with pytest.raises(InvalidStage):
        machine.confirm(slot, None)
    with pytest.raises(InvalidStage):
        machine.cancel(slot, None)
    with pytest.raises(InvalidStage):
        machine.pay(slot, None, "a@b.co")


def test_pay_before_confirm_is_refused(machine, store):
    slot = CheckoutSlot()
    session = start(machine, store, slot, "I need 3 ParacetamolXL")
    with pytest.raises(InvalidStage):
        machine.pay(slot, session.id, "jane@example.com")
    assert slot.session is session


@pytest.mark.parametrize("stage_after_confirm", [False, True])
def test_cancel_from_either_stage(machine, store, history, stage_after_confirm):
    slot = CheckoutSlot()
    session = start(machine, store, slot, "I need 3 ParacetamolXL")
    if stage_after_confirm:
        machine.confirm(slot, session.id)

    record = machine.cancel(slot, session.id)

    assert slot.session is None
    assert record.outcome == RunOutcome.CANCELED
    assert not record.approved
    assert record.response_text == "Order canceled by user."
    assert record.trace[-1].summary == "Canceled by user"
    assert [e.step for e in record.trace] == list(range(1, len(record.trace) + 1))
    assert store.get_product("ParacetamolXL").stock == 10


def test_invalid_email_keeps_session_in_payment(machine, store):
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)

    with pytest.raises(InvalidEmail):
        machine.pay(slot, session.id, "not-an-email")

    assert slot.session is session
    assert session.stage == CheckoutStage.PAYMENT
    assert session.customer_email is None
    assert store.get_product("ParacetamolXL").stock == 10


def test_pay_commits_and_clears_session(machine, store, notifier, history):
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)

    record = machine.pay(slot, session.id, "jane@example.com")

    assert slot.session is None
    assert record.outcome == RunOutcome.COMMITTED
    assert record.approved and record.commit_ok
    assert record.order_id
    assert record.response_text.startswith(f"Order placed for 3 ParacetamolXL. Order ID: {record.order_id}.")
    assert record.response_text.endswith("Invoice sent to jane@example.com.")
    assert [e.stage for e in record.trace][-2:] == [TraceStage.ACTION, TraceStage.SUPERVISOR]
    assert record.trace[-1].summary == "Committed"
    assert store.get_product("ParacetamolXL").stock == 7
    assert len(store.list_orders()) == 1

    invoice = record.invoice
    assert invoice.invoice_id == "INV-" + record.order_id[:8].upper()
    assert invoice.total_paid == Decimal("15.00")
    assert invoice.customer_email == "jane@example.com"
    assert notifier.sent == [("jane@example.com", invoice)]
    assert record.invoice_delivered is True


def test_pay_refreshes_catalog(machine, store, catalog):
    catalog.refresh()
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)
    machine.pay(slot, session.id, "jane@example.com")
    stock = {p.name: p.stock for p in catalog.products}
    assert stock["ParacetamolXL"] == 7


def test_undelivered_invoice_is_only_a_notice(store, catalog, history):
    machine = CheckoutStateMachine(store, catalog, FakeNotifier(delivered=False), history)
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)
    record = machine.pay(slot, session.id, "jane@example.com")
    assert record.commit_ok
    assert record.invoice_delivered is False
    assert record.response_text.endswith("Order placed. Invoice prepared for jane@example.com.")


def test_notifier_exception_does_not_roll_back(store, catalog, history):
    machine = CheckoutStateMachine(store, catalog, FakeNotifier(raises=RuntimeError("smtp down")), history)
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)
    record = machine.pay(slot, session.id, "jane@example.com")
    assert record.commit_ok
    assert record.invoice_delivered is False
    assert store.get_product("ParacetamolXL").stock == 7


def test_race_lost_at_commit_surfaces_store_reason():
    reason = "Insufficient stock: requested 3, available 1"
    stub = StubStore([make_product("ParacetamolXL", stock=10)], commit_result=CommitResult.failed(reason))
    notifier = FakeNotifier()
    machine = CheckoutStateMachine(stub, CatalogCache(stub), notifier, RunHistory())
    slot = CheckoutSlot()
    session = open_payment(machine, stub, slot)

    record = machine.pay(slot, session.id, "jane@example.com")

    assert slot.session is None
    assert record.outcome == RunOutcome.COMMIT_FAILED
    assert not record.approved and not record.commit_ok
    assert record.error_code == "COMMIT_FAILED"
    assert record.response_text == f"Order failed: {reason}"
    assert record.trace[-1].summary == f"Failed: {reason}"
    assert notifier.sent == []


def test_commit_error_still_clears_session():
    stub = StubStore(
        [make_product("ParacetamolXL", stock=10)],
        commit_error=CollaboratorUnavailable("inventory store", "order commit failed"),
    )
    machine = CheckoutStateMachine(stub, CatalogCache(stub), FakeNotifier(), RunHistory())
    slot = CheckoutSlot()
    session = open_payment(machine, stub, slot)

    record = machine.pay(slot, session.id, "jane@example.com")

    assert slot.session is None
    assert not record.commit_ok
    assert "order commit failed" in record.response_text


def test_trace_round_trips_into_record(machine, store):
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)
    seen = session.trace.events
    record = machine.pay(slot, session.id, "jane@example.com")
    assert record.trace[:len(seen)] == seen
    assert [e.step for e in record.trace] == [1, 2, 3, 4, 5]


def test_idle_session_expires(store, catalog, history):
    clock = FakeClock()
    machine = CheckoutStateMachine(store, catalog, FakeNotifier(), history, session_ttl_seconds=60, clock=clock)
    slot = CheckoutSlot()
    start(machine, store, slot, "I need 3 ParacetamolXL")

    clock.advance(59)
    assert machine.expire_if_stale(slot) is None
    assert slot.active

    clock.advance(1)
    record = machine.expire_if_stale(slot)
    assert slot.session is None
    assert record.outcome == RunOutcome.EXPIRED
    assert record.error_code == "SESSION_EXPIRED"
    assert record.trace[-1].summary == "Expired after inactivity"


def test_expiry_disabled_by_default(machine, store):
    slot = CheckoutSlot()
    start(machine, store, slot, "I need 3 ParacetamolXL")
    assert machine.expire_if_stale(slot) is None
    assert slot.active


@pytest.mark.parametrize("email, ok", [
    ("jane@example.com", True),
    (" jane@example.com ", True),
    ("jane@example", False),
    ("jane example.com", False),
    ("@example.com", False),
    ("", False),
    (None, False),
])
def test_email_syntax(email, ok):
    assert is_valid_email(email) is ok


class BadRowStore(StubStore):
    """Commits fine, but the catalog read after the commit blows up."""

    def get_catalog(self):
        if self.commits:
            raise RuntimeError("bad row")
        return super().get_catalog()


def test_refresh_error_after_commit_still_finalizes_once():
    stub = BadRowStore([make_product("ParacetamolXL", stock=10)])
    history = RunHistory()
    machine = CheckoutStateMachine(stub, CatalogCache(stub), FakeNotifier(), history)
    slot = CheckoutSlot()
    session = open_payment(machine, stub, slot)

    record = machine.pay(slot, session.id, "jane@example.com")

    assert slot.session is None
    assert record.outcome == RunOutcome.COMMITTED
    assert record.commit_ok
    assert history.latest() is record
    with pytest.raises(InvalidStage):
        machine.pay(slot, session.id, "jane@example.com")
    assert stub.commits == [("ParacetamolXL", 3)]


def test_unexpected_error_after_guards_never_leaves_session_payable(store, catalog, history, monkeypatch):
    machine = CheckoutStateMachine(store, catalog, FakeNotifier(), history)
    slot = CheckoutSlot()
    session = open_payment(machine, store, slot)

    def explode(*args, **kwargs):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(machine, "_finalize_session", explode)
    with pytest.raises(RuntimeError):
        machine.pay(slot, session.id, "jane@example.com")

    assert slot.session is None
    assert store.get_product("ParacetamolXL").stock == 7
