"""
Catalog cache: last fetched product snapshot used for name resolution.

The snapshot is read-only and replaced wholesale on refresh; nothing in the
core mutates it. A failed refresh keeps the previous snapshot.
"""
import logging
import threading
import time
from typing import Callable, Optional, Tuple

from app.agent.entities import Product
from app.core.audit import AuditLog
from app.core.exceptions import CollaboratorUnavailable

logger = logging.getLogger(__name__)


class CatalogCache:
    def __init__(self, store, max_age_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._products: Tuple[Product, ...] = ()
        self._refreshed_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def products(self) -> Tuple[Product, ...]:
        return self._products

    @property
    def loaded(self) -> bool:
        return self._refreshed_at is not None

    def is_stale(self) -> bool:
        if not self.loaded:
            return True
        if not self.max_age_seconds:
            return False
        return self._clock() - self._refreshed_at >= self.max_age_seconds

    def refresh(self) -> Tuple[Product, ...]:
        """Refetch from the store. Raises CollaboratorUnavailable, keeping the old snapshot."""
        try:
            products = tuple(self.store.get_catalog())
        except CollaboratorUnavailable as e:
            AuditLog.log_collaborator_failure("catalog", e.reason)
            raise
        with self._lock:
            self._products = products
            self._refreshed_at = self._clock()
        logger.info(f"[CatalogCache] Refreshed: {len(products)} products")
        return products

    def snapshot(self) -> Tuple[Product, ...]:
        """
        Current products, refreshed first when stale.

        A stale snapshot is still served if the refresh fails; only a cache
        that never loaded propagates CollaboratorUnavailable.
        """
        if self.is_stale():
            try:
                return self.refresh()
            except CollaboratorUnavailable:
                if not self.loaded:
                    raise
                logger.warning("[CatalogCache] Refresh failed, serving stale snapshot")
        return self._products
