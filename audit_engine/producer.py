"""
Synthetic transaction producer.

Two dedicated threads, one emitting credits and one emitting debits, each at
a fixed rate.  Amounts are uniform in [min_amount, max_amount).
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, List, Optional

from audit_engine.balance import BalanceTracker
from audit_engine.models import Transaction

logger = logging.getLogger(__name__)

MIN_AMOUNT: float = 200
MAX_AMOUNT: float = 500_000
DEFAULT_INTERVAL_SECONDS: float = 0.04


class TransactionProducer:
    """Feeds random credits and debits into a BalanceTracker until stopped."""

    def __init__(
        self,
        tracker: BalanceTracker,
        rng: Optional[random.Random] = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        min_amount: float = MIN_AMOUNT,
        max_amount: float = MAX_AMOUNT,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if not 0 <= min_amount <= max_amount:
            raise ValueError(f"Invalid amount range [{min_amount}, {max_amount})")
        self._tracker = tracker
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self.interval = interval
        self.min_amount = min_amount
        self.max_amount = max_amount

        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        for name, factory in (("credit", Transaction.credit), ("debit", Transaction.debit)):
            t = threading.Thread(
                target=self._loop, args=(name, factory),
                name=f"producer-{name}", daemon=True,
            )
            self._threads.append(t)
            t.start()
        logger.info(
            "TransactionProducer started with dedicated threads for credits and debits "
            "(interval=%ss)", self.interval,
        )

    def stop(self) -> None:
        """Stop both threads and wait for them. Idempotent."""
        if self._stop.is_set():
            return
        self._stop.set()
        for t in self._threads:
            t.join()
        logger.info("TransactionProducer shutdown.")

    def random_amount(self) -> float:
        with self._rng_lock:
            r = self._rng.random()
        return self.min_amount + (self.max_amount - self.min_amount) * r

    def produce_once(self, factory: Callable[[float], Transaction]) -> Transaction:
        tx = factory(self.random_amount())
        self._tracker.process_transaction(tx)
        return tx

    # ------------------------------------------------------------------
    def _loop(self, name: str, factory: Callable[[float], Transaction]) -> None:
        next_tick = time.monotonic()
        while not self._stop.wait(max(0.0, next_tick - time.monotonic())):
            try:
                tx = self.produce_once(factory)
                logger.debug("Produced %s: %s amount=%s", name, tx.id, tx.amount)
            except Exception:
                logger.exception("Error generating %s transaction", name)
            next_tick += self.interval
            now = time.monotonic()
            if next_tick < now:
                next_tick = now
