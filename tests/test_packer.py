"""
Unit tests for the batch packer.
"""
import itertools

import pytest

from audit_engine.config import PACKING_BEST_FIT, PACKING_FIRST_FIT, AuditConfig
from audit_engine.models import Batch, Submission, Transaction
from audit_engine.packer import pack, pack_with_config


# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------
_counter = itertools.count(1)


def _txs(*amounts):
    return [Transaction(id=f"tx-{next(_counter)}", amount=a) for a in amounts]


def _shape(submission: Submission):
    return [(b.count, b.total) for b in submission.batches]


# -----------------------------------------------------------------------
# Test: Reference scenarios
# -----------------------------------------------------------------------
class TestScenarios:
    def test_best_fit_ten_of_twelve(self):
        # First 10 of 30,-40,45,25,-45,65,-11,5,75,25,-62,24 in FIFO order
        sub = pack(_txs(30, -40, 45, 25, -45, 65, -11, 5, 75, 25), 100.0, 10)
        assert _shape(sub) == [
            (4, 100),   # 30, 40, 25, 5
            (2, 90),    # 45, 45
            (2, 76),    # 65, 11
            (2, 100),   # 75, 25
        ]

    def test_single_oversize(self):
        sub = pack(_txs(101), 100.0, 1)
        assert sub.is_empty
        assert sub.oversized == 1

    def test_saturated_by_ones(self):
        sub = pack(_txs(*[1.0] * 1000), 100_000.0, 1000)
        assert _shape(sub) == [(1000, 1000.0)]

    def test_exact_fit_single(self):
        sub = pack(_txs(100.0), 100.0, 1)
        assert _shape(sub) == [(1, 100.0)]

    def test_each_equals_cap(self):
        sub = pack(_txs(*[100] * 20), 100, 20)
        assert len(sub.batches) == 20
        assert all(b.count == 1 and b.total == 100 for b in sub.batches)

    def test_zero_magnitudes_mixed(self):
        sub = pack(_txs(1, 0, 1, 0, 1, 0, 1, 0, 1, 0), 5, 10)
        assert _shape(sub) == [(10, 5)]


# -----------------------------------------------------------------------
# Test: Best-fit placement
# -----------------------------------------------------------------------
class TestBestFit:
    def test_prefers_fullest_admissible_batch(self):
        # Batches 60 and 80; a 15 fits both, best-fit picks the 80
        sub = pack(_txs(60, 80, 15), 100, 10)
        assert _shape(sub) == [(1, 60), (2, 95)]

    def test_tie_goes_to_earliest_batch(self):
        sub = pack(_txs(70, 70, 10), 100, 10)
        assert _shape(sub) == [(2, 80), (1, 70)]

    def test_count_cap_opens_new_batch(self):
        sub = pack(_txs(1, 1, 1, 1, 1), 100, 2)
        assert _shape(sub) == [(2, 2), (2, 2), (1, 1)]

    def test_count_cap_skips_full_batch_for_next_best(self):
        # Batch 1 has room by value but is full by count; 5 goes to batch 2
        sub = pack(_txs(50, 40, 60, 5), 100, 2)
        assert _shape(sub) == [(2, 90), (2, 65)]

    def test_zero_goes_into_fullest_batch(self):
        sub = pack(_txs(30, 80, 0), 100, 10)
        assert _shape(sub) == [(1, 30), (2, 80)]

    def test_signs_are_ignored(self):
        assert _shape(pack(_txs(-30, 30), 100, 10)) == [(2, 60)]

    def test_no_presort_keeps_fifo_order(self):
        fifo = pack(_txs(10, 60, 40, 90), 100, 10)
        assert _shape(fifo) == [(2, 70), (1, 40), (1, 90)]

    def test_presort_descending_packs_denser(self):
        sub = pack(_txs(10, 60, 40, 90), 100, 10, presort_descending=True)
        assert _shape(sub) == [(2, 100), (2, 100)]


# -----------------------------------------------------------------------
# Test: First-fit placement
# -----------------------------------------------------------------------
class TestFirstFit:
    def test_takes_first_admissible_batch(self):
        sub = pack(_txs(60, 80, 15), 100, 10, strategy=PACKING_FIRST_FIT)
        assert _shape(sub) == [(2, 75), (1, 80)]

    def test_respects_count_cap(self):
        sub = pack(_txs(1, 1, 1), 100, 2, strategy=PACKING_FIRST_FIT)
        assert _shape(sub) == [(2, 2), (1, 1)]


# -----------------------------------------------------------------------
# Test: Oversized & degenerate inputs
# -----------------------------------------------------------------------
class TestOversized:
    def test_oversized_skipped_others_packed(self):
        sub = pack(_txs(50, 150, -101, 50), 100, 10)
        assert _shape(sub) == [(2, 100)]
        assert sub.oversized == 2

    def test_oversized_logs_warning(self, caplog):
        with caplog.at_level("WARNING", logger="audit_engine.packer"):
            pack(_txs(500), 100, 10)
        assert any("exceeds max allowed batch total" in r.message for r in caplog.records)

    def test_empty_input(self):
        sub = pack([], 100, 10)
        assert sub.is_empty
        assert sub.oversized == 0

    def test_invalid_strategy_raises(self):
        with pytest.raises(ValueError, match="Invalid packing strategy"):
            pack(_txs(1), 100, 10, strategy="WORST_FIT")


# -----------------------------------------------------------------------
# Test: Cap validation
# -----------------------------------------------------------------------
class TestCapValidation:
    @pytest.mark.parametrize("max_tx", [0, -1, 2.5, True])
    def test_invalid_count_cap_raises(self, max_tx):
        with pytest.raises(ValueError, match="max_transactions_per_submission"):
            pack(_txs(1, 2), 100, max_tx)

    @pytest.mark.parametrize("max_value", [0, -5.0, float("inf"), float("nan")])
    def test_invalid_value_cap_raises(self, max_value):
        with pytest.raises(ValueError, match="max_batch_total_value"):
            pack(_txs(1, 2), max_value, 10)

    def test_validated_even_for_empty_input(self):
        with pytest.raises(ValueError):
            pack([], 100, 0)


# -----------------------------------------------------------------------
# Test: Config wiring
# -----------------------------------------------------------------------
class TestPackWithConfig:
    def test_uses_config_caps(self):
        config = AuditConfig(max_transactions_per_submission=2, max_batch_total_value=10)
        sub = pack_with_config(_txs(5, 5, 5, 11), config)
        assert _shape(sub) == [(2, 10), (1, 5)]
        assert sub.oversized == 1

    def test_uses_config_strategy(self):
        config = AuditConfig(
            max_transactions_per_submission=10,
            max_batch_total_value=100,
            packing_strategy=PACKING_FIRST_FIT,
        )
        assert _shape(pack_with_config(_txs(60, 80, 15), config)) == [(2, 75), (1, 80)]

    def test_default_strategy_is_best_fit(self):
        assert AuditConfig().packing_strategy == PACKING_BEST_FIT
