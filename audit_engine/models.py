"""
Data models for the audit batching engine.

A Transaction carries a signed amount (credit > 0, debit < 0).  Only its
magnitude matters to the audit core; Batches and Submissions aggregate
magnitudes and never hold on to the transactions themselves.
"""
from __future__ import annotations

import json
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class AuditError(Exception):
    """Base class for everything the audit engine raises."""


class IngestFailed(AuditError):
    """The transaction could not be enqueued and was NOT accepted."""


class EngineStopped(AuditError):
    """The engine is draining or stopped and no longer accepts transactions."""


class SinkError(AuditError):
    """Raised by a sink that rejects a submission."""


class InvalidTransaction(AuditError, ValueError):
    """A transaction that the balance tracker refuses to process."""


# ---------------------------------------------------------------------------
# Transaction (input)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Transaction:
    """A single credit or debit event."""

    id:     str
    amount: float                             # sign encodes credit/debit

    def __post_init__(self) -> None:
        if not isinstance(self.id, str):
            raise TypeError(f"id must be str, got {type(self.id).__name__}")
        if not self.id:
            raise ValueError("Transaction id must be non-empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, (int, float)):
            raise TypeError(
                f"amount must be a number, got {type(self.amount).__name__}"
            )
        try:
            finite = math.isfinite(self.amount)
        except OverflowError:
            raise ValueError(f"amount out of range, got {self.amount!r}") from None
        if not finite:
            raise ValueError(f"amount must be finite, got {self.amount!r}")

    @property
    def magnitude(self) -> float:
        return abs(self.amount)

    @staticmethod
    def credit(amount: float) -> "Transaction":
        return Transaction(id=str(uuid.uuid4()), amount=abs(amount))

    @staticmethod
    def debit(amount: float) -> "Transaction":
        return Transaction(id=str(uuid.uuid4()), amount=-abs(amount))

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Transaction":
        return Transaction(id=d["id"], amount=d["amount"])

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "amount": self.amount}


# ---------------------------------------------------------------------------
# Batch (aggregate of magnitudes)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Batch:
    """Running count and running total of the magnitudes placed into it."""

    count: int = 0
    total: float = 0

    def add(self, value: float) -> None:
        self.total += value
        self.count += 1

    def admits(self, value: float, max_total: float, max_count: int) -> bool:
        return self.total + value <= max_total and self.count < max_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalValueOfAllTransactions": self.total,
            "countOfTransactions": self.count,
        }


# ---------------------------------------------------------------------------
# Submission (output of one packing run)
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Submission:
    """Batches produced by a single packing run, in creation order.

    ``oversized`` is the number of drained transactions the packer had to
    skip.  It is bookkeeping only and is not part of the wire shape.
    """

    batches:   List[Batch] = field(default_factory=list)
    oversized: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.batches

    @property
    def transaction_count(self) -> int:
        return sum(b.count for b in self.batches)

    @property
    def total_value(self) -> float:
        return sum(b.total for b in self.batches)

    def to_dict(self) -> Dict[str, Any]:
        return {"submission": {"batches": [b.to_dict() for b in self.batches]}}

    def to_json(self) -> str:
        # Key order is part of the wire shape, so no sort_keys here.
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        return self.to_json()
