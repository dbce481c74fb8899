"""
Batch packer — bin-packing of transaction magnitudes into Batches.

The default strategy is best-fit: every magnitude goes into the admissible
batch that is left with the least spare capacity, i.e. the admissible batch
with the largest running total.  Ties go to the earliest batch.  A batch is
admissible for ``v`` when ``total + v <= max_batch_total_value`` and it still
holds fewer than ``max_transactions_per_submission`` transactions.

Magnitudes are consumed in input (drain) order unless ``presort_descending``
is set.  Anything larger than ``max_batch_total_value`` can never fit and is
skipped with a warning.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional

from audit_engine.config import PACKING_BEST_FIT, PACKING_FIRST_FIT, AuditConfig
from audit_engine.models import Batch, Submission, Transaction

logger = logging.getLogger(__name__)


def pack(
    transactions: Iterable[Transaction],
    max_batch_total_value: float,
    max_transactions_per_submission: int,
    *,
    strategy: str = PACKING_BEST_FIT,
    presort_descending: bool = False,
) -> Submission:
    """Pack ``transactions`` into a Submission. Pure and deterministic."""
    _check_caps(max_batch_total_value, max_transactions_per_submission)
    if strategy == PACKING_BEST_FIT:
        select = _best_fit
    elif strategy == PACKING_FIRST_FIT:
        select = _first_fit
    else:
        raise ValueError(f"Invalid packing strategy: {strategy!r}")

    values: List[float] = []
    oversized = 0
    for tx in transactions:
        value = tx.magnitude
        if value > max_batch_total_value:
            oversized += 1
            logger.warning(
                "Transaction %s value %s exceeds max allowed batch total %s; skipped",
                tx.id, value, max_batch_total_value,
            )
            continue
        values.append(value)

    if presort_descending:
        values.sort(reverse=True)

    batches: List[Batch] = []
    for value in values:
        batch = select(batches, value, max_batch_total_value, max_transactions_per_submission)
        if batch is not None:
            batch.add(value)
        else:
            batches.append(Batch(count=1, total=value))

    logger.debug(
        "Packed %d transactions into %d batches (%d oversized)",
        len(values), len(batches), oversized,
    )
    return Submission(batches=batches, oversized=oversized)


def pack_with_config(transactions: Iterable[Transaction], config: AuditConfig) -> Submission:
    return pack(
        transactions,
        config.max_batch_total_value,
        config.max_transactions_per_submission,
        strategy=config.packing_strategy,
        presort_descending=config.presort_descending,
    )


def _check_caps(max_batch_total_value: float, max_transactions_per_submission: int) -> None:
    if (
        isinstance(max_transactions_per_submission, bool)
        or not isinstance(max_transactions_per_submission, int)
        or max_transactions_per_submission <= 0
    ):
        raise ValueError(
            "max_transactions_per_submission must be a positive int, "
            f"got {max_transactions_per_submission!r}"
        )
    if (
        isinstance(max_batch_total_value, bool)
        or not isinstance(max_batch_total_value, (int, float))
        or not math.isfinite(max_batch_total_value)
        or max_batch_total_value <= 0
    ):
        raise ValueError(
            "max_batch_total_value must be positive and finite, "
            f"got {max_batch_total_value!r}"
        )


# ---------------------------------------------------------------------------
# Placement strategies
# ---------------------------------------------------------------------------
def _best_fit(
    batches: List[Batch], value: float, max_total: float, max_count: int
) -> Optional[Batch]:
    best: Optional[Batch] = None
    for batch in batches:
        if not batch.admits(value, max_total, max_count):
            continue
        # Strict ">" keeps the earliest batch on ties.
        if best is None or batch.total > best.total:
            best = batch
    return best


def _first_fit(
    batches: List[Batch], value: float, max_total: float, max_count: int
) -> Optional[Batch]:
    for batch in batches:
        if batch.admits(value, max_total, max_count):
            return batch
    return None
