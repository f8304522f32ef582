"""Create all tables. Run on app startup."""
import logging

from app.db.base import Base
from app.db.session import engine
from app.models import inventory, order  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured: %s", ", ".join(sorted(Base.metadata.tables)))
