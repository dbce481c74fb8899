"""
Synthetic transaction file generator.

Produces a JSONL file of ``{"id", "amount"}`` records that exercises:
  - ordinary credits and debits across the producer's amount range
  - zero-amount transactions (consume count capacity, add no value)
  - amounts exactly at the batch value cap
  - oversized amounts (skipped by the packer)
"""
from __future__ import annotations

import json
import random
import uuid
from pathlib import Path
from typing import Any, Dict, List

from audit_engine.config import DEFAULT_MAX_BATCH_TOTAL_VALUE
from audit_engine.producer import MAX_AMOUNT, MIN_AMOUNT


def _make_transaction(rng: random.Random, amount: float) -> Dict[str, Any]:
    # Seeded rng for deterministic UUIDs
    tx_id = str(uuid.UUID(int=rng.getrandbits(128), version=4))
    return {"id": tx_id, "amount": amount}


def _signed(rng: random.Random, magnitude: float) -> float:
    return magnitude if rng.random() < 0.5 else -magnitude


def generate_transactions(
    output_path: str,
    count: int = 1000,
    seed: int = 42,
    max_batch_total_value: float = DEFAULT_MAX_BATCH_TOTAL_VALUE,
) -> int:
    """Write ``count`` synthetic transactions; returns the number written."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    rng = random.Random(seed)
    txs: List[Dict[str, Any]] = []

    # A handful of edge cases, scaled down for very small files
    edge = min(count // 10, 20)
    for _ in range(edge // 4):
        txs.append(_make_transaction(rng, 0.0))
    for _ in range(edge // 4):
        txs.append(_make_transaction(rng, _signed(rng, max_batch_total_value)))
    for _ in range(edge // 4):
        over = max_batch_total_value + rng.randint(1, 100_000)
        txs.append(_make_transaction(rng, _signed(rng, float(over))))

    # Fill the rest with producer-style credits and debits
    while len(txs) < count:
        magnitude = round(rng.uniform(MIN_AMOUNT, MAX_AMOUNT), 2)
        txs.append(_make_transaction(rng, _signed(rng, magnitude)))

    # Interleave the edge cases instead of front-loading them
    rng.shuffle(txs)

    p = Path(output_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        for tx in txs:
            f.write(json.dumps(tx, sort_keys=True) + "\n")
    return len(txs)


if __name__ == "__main__":
    generate_transactions("transactions.jsonl", 1000, 42)
    print("Generated transactions.jsonl")
