"""
Outbox between the in-memory ledger and the durable store.

WHY: Ledger mutations must not block on, or fail because of, persistence.
Each mutation enqueues its writes here in order; the outbox drains them to
the store either on a single background worker ("background") or before
the mutation returns ("inline", used by the CLI and tests).

DELIVERY RULES:
- Writes are delivered in enqueue order; a retryable failure stops the
  drain so later writes never overtake earlier ones.
- A failed write stays at the head of the queue and is retried on the next
  flush, up to max_attempts, then dropped with an ERROR log.
- close() makes one final flush; anything still queued is dropped with an
  ERROR log.
- A conflict (stale version) is never retried: logged and dropped.
- flush() never raises to ledger callers.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .store_client import DurableStore, StoreConflictError, StoreError


logger = logging.getLogger(__name__)


SYNC_BACKGROUND = "background"
SYNC_INLINE = "inline"


@dataclass
class SyncOp:
    kind: str  # "upsert" | "delete" | "batch"
    collection: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0

    def describe(self) -> str:
        if self.kind == "batch":
            return f"batch({len(self.payload.get('transactions') or [])} transactions)"
        return f"{self.kind} {self.collection}/{self.payload.get('id')}"


class StoreSync:
    def __init__(self, store: DurableStore, *, mode: str = SYNC_BACKGROUND, max_attempts: int = 5):
        self.store = store
        self.mode = mode
        self.max_attempts = max_attempts
        self.dropped: list[SyncOp] = []
        self._outbox: deque[SyncOp] = deque()
        self._queue_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue_upsert(self, collection: str, record: Dict[str, Any]) -> None:
        self._enqueue(SyncOp(kind="upsert", collection=collection, payload=record))

    def enqueue_delete(self, collection: str, record_id: str) -> None:
        self._enqueue(SyncOp(kind="delete", collection=collection, payload={"id": record_id}))

    def enqueue_batch(
        self,
        *,
        transactions: list,
        inventory_updates: list,
        customer_update: Optional[dict] = None,
        shift_update: Optional[dict] = None,
    ) -> None:
        self._enqueue(SyncOp(
            kind="batch",
            payload={
                "transactions": transactions,
                "inventory_updates": inventory_updates,
                "customer_update": customer_update,
                "shift_update": shift_update,
            },
        ))

    def _enqueue(self, op: SyncOp) -> None:
        with self._queue_lock:
            self._outbox.append(op)

        if self.mode == SYNC_INLINE:
            self.flush()
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rims-sync")
        self._executor.submit(self._flush_in_background)

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    def _send(self, op: SyncOp) -> None:
        if op.kind == "upsert":
            self.store.upsert(op.collection, op.payload)
        elif op.kind == "delete":
            self.store.delete(op.collection, op.payload["id"])
        elif op.kind == "batch":
            self.store.submit_batch(**op.payload)
        else:
            raise ValueError(f"Unknown sync operation: {op.kind}")

    def flush(self) -> int:
        """Deliver queued writes in order. Returns how many were written."""
        written = 0
        with self._flush_lock:
            while True:
                with self._queue_lock:
                    if not self._outbox:
                        break
                    op = self._outbox[0]

                try:
                    self._send(op)
                except StoreConflictError as exc:
                    logger.error("Dropping conflicting write %s: %s", op.describe(), exc)
                    self._drop_head(op)
                    continue
                except StoreError as exc:
                    op.attempts += 1
                    if op.attempts >= self.max_attempts:
                        logger.error(
                            "Dropping %s after %d attempts: %s", op.describe(), op.attempts, exc
                        )
                        self._drop_head(op)
                        continue
                    logger.warning(
                        "Store write %s failed (attempt %d/%d), will retry: %s",
                        op.describe(), op.attempts, self.max_attempts, exc,
                    )
                    break

                with self._queue_lock:
                    self._outbox.popleft()
                written += 1
        return written

    def _drop_head(self, op: SyncOp) -> None:
        with self._queue_lock:
            self._outbox.popleft()
        self.dropped.append(op)

    def _flush_in_background(self) -> None:
        try:
            self.flush()
        except Exception:
            logger.exception("Background store sync failed")

    # ------------------------------------------------------------------
    # Introspection / shutdown
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        with self._queue_lock:
            return len(self._outbox)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every flush scheduled so far has run."""
        if self._executor is not None:
            self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        """Stop the worker, make one last delivery attempt, drop what is left."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

        self.flush()
        with self._queue_lock:
            leftover = list(self._outbox)
            self._outbox.clear()
        for op in leftover:
            logger.error("Dropping unsent %s at shutdown after %d attempts", op.describe(), op.attempts)
            self.dropped.append(op)

        self.store.close()
