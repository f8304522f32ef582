"""FastAPI dependencies: DB session, shared checkout services, per-conversation orchestrator.

The conversation is identified by the X-Conversation-Id header. Each id gets
its own checkout slot; everything else (catalog cache, store, policy engine,
run history) is shared process-wide.
"""
import logging
from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.agent.catalog_cache import CatalogCache
from app.agent.checkout import CheckoutStateMachine
from app.agent.decision_engine import build_decision_engine
from app.agent.orchestrator import ConversationRegistry, DecisionOrchestrator
from app.agent.run_history import RunHistory
from app.core.config import settings as app_settings
from app.db.session import SessionLocal
from app.services.inventory_service import SqlInventoryStore
from app.services.invoice_service import EmailInvoiceNotifier
from app.services.transcription_service import build_transcriber

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_ID = "default"


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class CheckoutServices:
    """Process-wide collaborators wired from Settings."""

    def __init__(self, settings, session_factory, transcriber=None, notifier=None):
        self.settings = settings
        self.store = SqlInventoryStore(session_factory)
        self.catalog = CatalogCache(self.store, max_age_seconds=settings.CATALOG_MAX_AGE_SECONDS)
        self.history = RunHistory(limit=settings.RUN_HISTORY_LIMIT)
        self.decision_engine = build_decision_engine(settings, self.store)
        self.notifier = notifier or EmailInvoiceNotifier(
            settings.INVOICE_EMAIL_URL, timeout=settings.EXTERNAL_TIMEOUT_SECONDS
        )
        self.transcriber = transcriber if transcriber is not None else self._build_transcriber(settings)
        self.checkout = CheckoutStateMachine(
            self.store,
            self.catalog,
            self.notifier,
            self.history,
            session_ttl_seconds=settings.CHECKOUT_SESSION_TTL_SECONDS,
        )
        self.registry = ConversationRegistry(self.new_orchestrator, limit=settings.CONVERSATION_LIMIT)

    @staticmethod
    def _build_transcriber(settings):
        try:
            return build_transcriber(settings)
        except ValueError as e:
            logger.warning(f"[Deps] Voice input disabled: {e}")
            return None

    def new_orchestrator(self) -> DecisionOrchestrator:
        return DecisionOrchestrator(self.catalog, self.decision_engine, self.checkout, self.transcriber)


@lru_cache()
def get_services() -> CheckoutServices:
    return CheckoutServices(app_settings, SessionLocal)


def get_orchestrator(
    x_conversation_id: Optional[str] = Header(default=None),
    services: CheckoutServices = Depends(get_services),
) -> DecisionOrchestrator:
    """One orchestrator (and checkout slot) per conversation."""
    conversation_id = (x_conversation_id or "").strip() or DEFAULT_CONVERSATION_ID
    return services.registry.get(conversation_id)
