"""
Snapshot Management

An immutable, normalized copy of the five PCP collections, and the store
that refreshes it from the Data Store.

Refresh semantics:
- readers always get a complete snapshot; during a fetch they keep getting
  the previous one
- background requests each run on their own thread, never queued behind an
  older fetch
- every refresh request takes a ticket; a fetch is applied only if its
  ticket is newer than the one already applied, so a slow, older fetch can
  never overwrite a newer snapshot
- a failed fetch is logged and the previous snapshot (empty on first load)
  stays in place
"""

import hashlib
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple

from core.records.models import Line, Order, Product, ProductionRecord, WeeklyPlanEntry
from core.records.normalizer import normalize_collections

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Normalized collections at one point in time."""
    products: Tuple[Product, ...] = ()
    lines: Tuple[Line, ...] = ()
    orders: Tuple[Order, ...] = ()
    records: Tuple[ProductionRecord, ...] = ()
    plan: Tuple[WeeklyPlanEntry, ...] = ()
    version: str = "empty"
    fetched_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], fetched_at: Optional[datetime] = None) -> "Snapshot":
        """
        Normalize raw collections into a snapshot.

        Args:
            raw: Raw collections (see normalize_collections)
            fetched_at: When the data was read from the Data Store

        Returns:
            Snapshot whose version fingerprints its content
        """
        collections = normalize_collections(raw)
        return cls(
            products=collections["products"],
            lines=collections["lines"],
            orders=collections["orders"],
            records=collections["records"],
            plan=collections["plan"],
            version=fingerprint(collections),
            fetched_at=fetched_at,
        )

    def find_order(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == str(order_id):
                return order
        return None

    def find_product(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.key == str(product_id):
                return product
        return None


def fingerprint(collections: Mapping[str, tuple]) -> str:
    """Content hash of normalized collections; equal data gives equal versions."""
    digest = hashlib.sha256()
    for name in sorted(collections):
        digest.update(name.encode("utf-8"))
        digest.update(repr(collections[name]).encode("utf-8"))
    return digest.hexdigest()[:16]


class SnapshotStore:
    """Holds the current snapshot and refreshes it from a loader callable."""

    def __init__(self, loader: Callable[[], Mapping[str, Any]]):
        """
        Args:
            loader: Returns the raw collections (e.g. core.db.fetchers.fetch_collections)
        """
        self._loader = loader
        self._snapshot = Snapshot.empty()
        self._lock = threading.Lock()
        self._workers: Set[threading.Thread] = set()
        self._requested = 0
        self._applied = 0
        self.stats = {
            "refreshes": 0,
            "failures": 0,
            "discarded": 0,
        }

    @property
    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def _next_ticket(self) -> int:
        with self._lock:
            self._requested += 1
            return self._requested

    def refresh(self) -> Snapshot:
        """
        Fetch and apply a new snapshot synchronously.

        Returns:
            The snapshot in place after the refresh (the previous one on failure)
        """
        return self._load(self._next_ticket())

    def request_refresh(self) -> Future:
        """
        Fetch a new snapshot on its own background thread.

        Every request starts immediately, so a hung fetch never delays a newer one.

        Returns:
            Future resolving to the snapshot in place once the fetch completes
        """
        ticket = self._next_ticket()
        future: Future = Future()
        future.set_running_or_notify_cancel()

        worker = threading.Thread(
            target=self._run, args=(ticket, future), name=f"snapshot-refresh-{ticket}", daemon=True
        )
        with self._lock:
            self._workers.add(worker)
        worker.start()
        return future

    def _run(self, ticket: int, future: Future):
        try:
            future.set_result(self._load(ticket))
        except Exception as e:
            future.set_exception(e)
        finally:
            with self._lock:
                self._workers.discard(threading.current_thread())

    def _load(self, ticket: int) -> Snapshot:
        try:
            raw = self._loader()
            snapshot = Snapshot.from_raw(raw, fetched_at=datetime.now(timezone.utc))
        except Exception as e:
            logger.error(f"Snapshot refresh #{ticket} failed, keeping previous snapshot: {e}", exc_info=True)
            with self._lock:
                self.stats["failures"] += 1
            return self.snapshot

        return self._apply(ticket, snapshot)

    def _apply(self, ticket: int, snapshot: Snapshot) -> Snapshot:
        with self._lock:
            if ticket <= self._applied:
                self.stats["discarded"] += 1
                logger.info(f"Discarding refresh #{ticket}: refresh #{self._applied} is newer")
                return self._snapshot

            previous = self._snapshot.version
            self._snapshot = snapshot
            self._applied = ticket
            self.stats["refreshes"] += 1

        if snapshot.version == previous:
            logger.debug(f"Refresh #{ticket} applied, content unchanged ({snapshot.version})")
        else:
            logger.info(f"Refresh #{ticket} applied, snapshot version {snapshot.version}")
        return snapshot

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = self.stats.copy()
            stats["version"] = self._snapshot.version
            stats["requested"] = self._requested
            stats["applied"] = self._applied
        return stats

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Wait for in-flight background refreshes.

        Refresh threads are daemons, so with wait=False (or on timeout) a hung
        fetch does not keep the process alive.
        """
        with self._lock:
            workers = list(self._workers)
        if not wait:
            return
        for worker in workers:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning(f"{worker.name} still running at shutdown")
