"""
Balance tracker — the account balance plus the hand-off to the audit engine.

The balance is kept in integer PENCE so repeated credits and debits never
accumulate floating-point drift.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from audit_engine.engine import AuditEngine
from audit_engine.models import InvalidTransaction, Transaction

logger = logging.getLogger(__name__)


class BalanceTracker:
    """Applies transactions to the balance, then forwards them for audit."""

    def __init__(self, engine: AuditEngine, opening_balance_pence: int = 0) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        self._balance_pence: int = opening_balance_pence
        self._processed: int = 0

    def process_transaction(self, tx: Optional[Transaction]) -> int:
        """Apply ``tx`` and submit it for audit; returns the new balance in pence."""
        if tx is None:
            logger.warning("Invalid or null transaction received")
            raise InvalidTransaction("Transaction is null")

        amount_pence = round(tx.amount * 100)
        with self._lock:
            self._balance_pence += amount_pence
            self._processed += 1
            updated = self._balance_pence

        self._engine.submit(tx)
        logger.debug("Processed transaction %s. New balance: %d pence", tx.id, updated)
        return updated

    @property
    def balance_pence(self) -> int:
        with self._lock:
            return self._balance_pence

    @property
    def processed(self) -> int:
        with self._lock:
            return self._processed

    def balance(self) -> float:
        return self.balance_pence / 100

    def formatted_balance(self) -> str:
        pence = self.balance_pence
        sign = "-" if pence < 0 else ""
        return f"{sign}{abs(pence) // 100}.{abs(pence) % 100:02d}"
