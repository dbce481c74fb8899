"""
Ingestion queue: an unbounded, thread-safe FIFO of transactions.

Producers ``put`` from any thread; workers ``drain_up_to`` a bounded chunk.
Both operations are atomic with respect to each other.
"""
from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, List

from audit_engine.models import Transaction


class TransactionQueue:
    """Multi-producer / multi-consumer FIFO backed by a locked deque."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._items: Deque[Transaction] = deque()

    def put(self, tx: Transaction) -> int:
        """Append ``tx`` and return the depth right after the append."""
        with self._lock:
            self._items.append(tx)
            return len(self._items)

    def drain_up_to(self, n: int) -> List[Transaction]:
        """Remove and return at most ``n`` items from the head. Never blocks."""
        if n <= 0:
            return []
        with self._lock:
            count = min(n, len(self._items))
            return [self._items.popleft() for _ in range(count)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
