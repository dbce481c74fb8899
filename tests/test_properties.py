"""
Property-based tests for the packer and engine using Hypothesis.

Tests properties that must ALWAYS hold:
  - No batch exceeds the value cap
  - Every batch holds between 1 and max_transactions_per_submission items
  - Batch totals add up to the non-oversized magnitudes
  - Oversized transactions never reach a batch
  - Same inputs always produce the same submission (determinism)
  - Strategy and presort switches keep every invariant
  - Engine conserves transactions and never delivers an empty submission
"""
import math

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from audit_engine.config import PACKING_BEST_FIT, PACKING_FIRST_FIT, AuditConfig
from audit_engine.engine import AuditEngine
from audit_engine.models import Transaction
from audit_engine.packer import pack
from audit_engine.sinks import MemorySink


# -----------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------
int_amounts = st.integers(min_value=-2_000, max_value=2_000)
float_amounts = st.floats(
    min_value=-2_000, max_value=2_000, allow_nan=False, allow_infinity=False,
)
strategies_ = st.sampled_from([PACKING_BEST_FIT, PACKING_FIRST_FIT])


@st.composite
def packing_case(draw, amounts=int_amounts):
    max_tx = draw(st.integers(min_value=1, max_value=40))
    max_value = draw(st.integers(min_value=1, max_value=1_500))
    values = draw(st.lists(amounts, min_size=0, max_size=max_tx))
    txs = [Transaction(id=f"prop-{i}", amount=a) for i, a in enumerate(values)]
    return txs, max_value, max_tx


def _fits(txs, max_value):
    return [tx for tx in txs if tx.magnitude <= max_value]


# -----------------------------------------------------------------------
# Property 1: Batch caps
# -----------------------------------------------------------------------
class TestPropertyCaps:
    @given(case=packing_case(), strategy=strategies_, presort=st.booleans())
    @settings(max_examples=200)
    def test_batches_within_caps(self, case, strategy, presort):
        txs, max_value, max_tx = case
        sub = pack(txs, max_value, max_tx, strategy=strategy, presort_descending=presort)
        for batch in sub.batches:
            assert batch.total <= max_value
            assert 1 <= batch.count <= max_tx
        assert sub.transaction_count <= max_tx

    @given(case=packing_case(amounts=float_amounts))
    @settings(max_examples=200)
    def test_float_batches_within_value_cap(self, case):
        txs, max_value, max_tx = case
        for batch in pack(txs, max_value, max_tx).batches:
            assert batch.total <= max_value


# -----------------------------------------------------------------------
# Property 2: Value conservation inside one packing run
# -----------------------------------------------------------------------
class TestPropertyConservation:
    @given(case=packing_case(), strategy=strategies_, presort=st.booleans())
    @settings(max_examples=200)
    def test_totals_match_non_oversized_magnitudes(self, case, strategy, presort):
        txs, max_value, max_tx = case
        sub = pack(txs, max_value, max_tx, strategy=strategy, presort_descending=presort)
        fitting = _fits(txs, max_value)
        assert sub.total_value == sum(tx.magnitude for tx in fitting)
        assert sub.transaction_count == len(fitting)
        assert sub.oversized == len(txs) - len(fitting)

    @given(case=packing_case(amounts=float_amounts))
    @settings(max_examples=200)
    def test_float_totals_match(self, case):
        txs, max_value, max_tx = case
        sub = pack(txs, max_value, max_tx)
        expected = sum(tx.magnitude for tx in _fits(txs, max_value))
        assert math.isclose(sub.total_value, expected, rel_tol=1e-9, abs_tol=1e-6)


# -----------------------------------------------------------------------
# Property 3: Oversized transactions never contribute
# -----------------------------------------------------------------------
class TestPropertyOversized:
    @given(
        max_value=st.integers(min_value=1, max_value=1_000),
        excess=st.lists(st.integers(min_value=1, max_value=10_000), min_size=1, max_size=20),
    )
    @settings(max_examples=100)
    def test_only_oversized_gives_empty_submission(self, max_value, excess):
        txs = [Transaction(id=f"big-{i}", amount=max_value + e) for i, e in enumerate(excess)]
        sub = pack(txs, max_value, len(txs))
        assert sub.is_empty
        assert sub.oversized == len(txs)


# -----------------------------------------------------------------------
# Property 4: Determinism
# -----------------------------------------------------------------------
class TestPropertyDeterminism:
    @given(case=packing_case(amounts=float_amounts), strategy=strategies_)
    @settings(max_examples=100)
    def test_same_input_same_submission(self, case, strategy):
        txs, max_value, max_tx = case
        first = pack(txs, max_value, max_tx, strategy=strategy)
        second = pack(list(txs), max_value, max_tx, strategy=strategy)
        assert first == second
        assert first.to_json() == second.to_json()


# -----------------------------------------------------------------------
# Property 5: Any-fit density — at most one batch is half full or less
# -----------------------------------------------------------------------
class TestPropertyDensity:
    @given(
        values=st.lists(int_amounts, min_size=0, max_size=40),
        max_value=st.integers(min_value=1, max_value=1_500),
        strategy=strategies_,
    )
    @settings(max_examples=200)
    def test_at_most_one_half_empty_batch(self, values, max_value, strategy):
        txs = [Transaction(id=f"dense-{i}", amount=a) for i, a in enumerate(values)]
        # Count cap never binds here, so a new batch is opened only when the
        # value cannot fit any existing one.
        sub = pack(txs, max_value, max(1, len(txs)), strategy=strategy)
        half_or_less = [b for b in sub.batches if 2 * b.total <= max_value]
        assert len(half_or_less) <= 1
        assert len(sub.batches) <= len(_fits(txs, max_value))


# -----------------------------------------------------------------------
# Property 6: Engine conservation and non-empty delivery
# -----------------------------------------------------------------------
class TestPropertyEngine:
    @given(
        amounts=st.lists(int_amounts, min_size=0, max_size=60),
        max_tx=st.integers(min_value=1, max_value=15),
        max_value=st.integers(min_value=1, max_value=2_500),
    )
    @settings(
        max_examples=30, deadline=None,
        suppress_health_check=[HealthCheck.too_slow],
    )
    def test_engine_accounts_for_every_transaction(self, amounts, max_tx, max_value):
        sink = MemorySink()
        engine = AuditEngine(sink, AuditConfig(
            max_transactions_per_submission=max_tx,
            max_batch_total_value=max_value,
            worker_pool_size=2,
            periodic_flush_interval=60.0,
        ))
        for i, a in enumerate(amounts):
            engine.submit(Transaction(id=f"eng-{i}", amount=a))
        engine.shutdown()

        stats = engine.stats()
        assert stats.submitted == len(amounts)
        assert stats.submitted == stats.packed + stats.oversized + stats.pending
        assert sum(s.transaction_count for s in sink.submissions) == stats.packed
        for s in sink.submissions:
            assert not s.is_empty
            assert s.transaction_count <= max_tx
