"""
The audit engine — ingestion, triggering, worker dispatch and delivery.

  submit(tx)      enqueue; when depth >= max_transactions_per_submission,
                  try to dispatch a worker
  periodic tick   every periodic_flush_interval, try to dispatch a worker
  worker          drain up to max_transactions_per_submission, pack,
                  hand non-empty submissions to the sink
  shutdown()      stop ticking, wait for workers, one final synchronous
                  drain-and-pack

Worker dispatch never blocks: when all ``worker_pool_size`` permits are
taken the trigger is dropped and the next enqueue or tick retries.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from audit_engine.config import AuditConfig
from audit_engine.ingestion import TransactionQueue
from audit_engine.models import (
    EngineStopped,
    IngestFailed,
    Submission,
    Transaction,
)
from audit_engine.packer import pack_with_config
from audit_engine.sinks import SubmissionSink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine state / statistics
# ---------------------------------------------------------------------------
STATE_RUNNING  = "RUNNING"
STATE_DRAINING = "DRAINING"
STATE_STOPPED  = "STOPPED"

WORKER_THREAD_PREFIX = "audit-worker"


@dataclass(frozen=True, slots=True)
class EngineStats:
    """Point-in-time counters.

    Once the engine is idle: submitted == packed + oversized + pending.
    """

    submitted:             int
    drained:               int
    packed:                int
    oversized:             int
    submissions_delivered: int
    sink_failures:         int
    triggers_dropped:      int
    pending:               int


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class AuditEngine:
    """
    Threaded audit batching engine.

    Usage:
        engine = AuditEngine(sink, AuditConfig()).start()
        engine.submit(tx)
        ...
        engine.shutdown()
    """

    def __init__(
        self,
        sink: SubmissionSink,
        config: Optional[AuditConfig] = None,
        queue: Optional[TransactionQueue] = None,
    ) -> None:
        self.config: AuditConfig = config or AuditConfig()
        self._sink = sink
        self._queue = queue if queue is not None else TransactionQueue()

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.worker_pool_size,
            thread_name_prefix=WORKER_THREAD_PREFIX,
        )
        self._permits = threading.BoundedSemaphore(self.config.worker_pool_size)

        self._state = STATE_RUNNING
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()

        self._flusher: Optional[threading.Thread] = None
        self._stop_flusher = threading.Event()

        self._stats_lock = threading.Lock()
        self._submitted = 0
        self._drained = 0
        self._packed = 0
        self._oversized = 0
        self._delivered = 0
        self._sink_failures = 0
        self._triggers_dropped = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    def start(self) -> "AuditEngine":
        """Start the periodic flusher. Calling it again is a no-op."""
        with self._state_lock:
            if self._state != STATE_RUNNING:
                raise EngineStopped(f"Cannot start engine in state {self._state}")
            if self._flusher is not None:
                return self
            self._flusher = threading.Thread(
                target=self._flush_loop, name="audit-flusher", daemon=True,
            )
            self._flusher.start()
        logger.info(
            "Audit engine started: max_tx=%d max_value=%s workers=%d interval=%ss strategy=%s",
            self.config.max_transactions_per_submission,
            self.config.max_batch_total_value,
            self.config.worker_pool_size,
            self.config.periodic_flush_interval,
            self.config.packing_strategy,
        )
        return self

    def submit(self, tx: Transaction) -> None:
        """Enqueue ``tx``; dispatch a worker once the queue is full enough."""
        if not isinstance(tx, Transaction):
            raise TypeError(f"Expected Transaction, got {type(tx).__name__}")
        with self._state_lock:
            if self._state != STATE_RUNNING:
                raise EngineStopped(
                    f"Engine is {self._state}; transaction {tx.id!r} rejected"
                )
            try:
                depth = self._queue.put(tx)
            except InterruptedError as exc:
                raise IngestFailed(f"Failed to enqueue transaction {tx.id!r}") from exc
            with self._stats_lock:
                self._submitted += 1

        logger.debug("Enqueued transaction %s amount=%s depth=%d", tx.id, tx.amount, depth)
        if depth >= self.config.max_transactions_per_submission:
            self.try_trigger()

    def try_trigger(self) -> bool:
        """Dispatch one worker if a permit is free. Returns whether it did."""
        if not self._permits.acquire(blocking=False):
            with self._stats_lock:
                self._triggers_dropped += 1
            logger.debug(
                "All %d processing workers busy; trigger dropped",
                self.config.worker_pool_size,
            )
            return False

        with self._state_lock:
            if self._state != STATE_RUNNING:
                self._permits.release()
                return False
            self._executor.submit(self._run_worker)
        return True

    def drain_and_pack(self) -> Submission:
        """Drain one chunk, pack it, and deliver it unless it is empty."""
        items = self._queue.drain_up_to(self.config.max_transactions_per_submission)
        if not items:
            return Submission()

        submission = pack_with_config(items, self.config)
        with self._stats_lock:
            self._drained += len(items)
            self._packed += submission.transaction_count
            self._oversized += submission.oversized

        if submission.is_empty:
            logger.debug(
                "Drained %d transactions, all oversized; nothing to deliver", len(items),
            )
            return submission

        self._deliver(submission)
        return submission

    def shutdown(self) -> None:
        """Stop the flusher, wait for workers, then flush once more. Idempotent.

        Must not be called from a worker thread (i.e. from inside a sink):
        the pool cannot wait for the thread that is asking it to stop.
        """
        if threading.current_thread().name.startswith(WORKER_THREAD_PREFIX):
            raise RuntimeError("shutdown() cannot be called from an audit worker thread")
        with self._state_lock:
            first_call = self._state == STATE_RUNNING
            if first_call:
                self._state = STATE_DRAINING
        if not first_call:
            self._stopped.wait()
            return

        logger.info("Audit engine draining")
        try:
            self._stop_flusher.set()
            if self._flusher is not None and self._flusher is not threading.current_thread():
                self._flusher.join()
            self._executor.shutdown(wait=True)
            self.drain_and_pack()
        finally:
            with self._state_lock:
                self._state = STATE_STOPPED
            self._stopped.set()

        remaining = len(self._queue)
        if remaining:
            logger.warning(
                "%d transactions still queued after final flush", remaining,
            )
        logger.info("Audit engine stopped: %s", self.stats())

    def pending(self) -> int:
        return len(self._queue)

    def stats(self) -> EngineStats:
        with self._stats_lock:
            return EngineStats(
                submitted=self._submitted,
                drained=self._drained,
                packed=self._packed,
                oversized=self._oversized,
                submissions_delivered=self._delivered,
                sink_failures=self._sink_failures,
                triggers_dropped=self._triggers_dropped,
                pending=len(self._queue),
            )

    def __enter__(self) -> "AuditEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_worker(self) -> None:
        try:
            self.drain_and_pack()
        except Exception:
            logger.exception("Audit worker failed")
        finally:
            self._permits.release()

    def _deliver(self, submission: Submission) -> None:
        try:
            self._sink.handle(submission)
        except Exception:
            with self._stats_lock:
                self._sink_failures += 1
            logger.exception(
                "Sink rejected submission (%d batches, %d transactions); dropped",
                len(submission.batches), submission.transaction_count,
            )
            return
        with self._stats_lock:
            self._delivered += 1
        logger.debug(
            "Delivered submission: batches=%d transactions=%d total=%s",
            len(submission.batches), submission.transaction_count, submission.total_value,
        )

    def _flush_loop(self) -> None:
        interval = self.config.periodic_flush_interval
        next_tick = time.monotonic() + interval
        while not self._stop_flusher.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.try_trigger()
            except Exception:
                logger.exception("Periodic flush tick failed")
            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                # Coalesce missed ticks into the one just fired.
                skipped = int((now - next_tick) // interval) + 1
                next_tick += skipped * interval


# ---------------------------------------------------------------------------
# High-level runners
# ---------------------------------------------------------------------------
def create_engine(
    sink: SubmissionSink,
    config: Optional[AuditConfig] = None,
    queue: Optional[TransactionQueue] = None,
) -> AuditEngine:
    """Build an engine around ``sink`` and start its periodic flusher."""
    return AuditEngine(sink, config, queue).start()


def load_transactions(path: str) -> List[Transaction]:
    """Read a JSONL file of ``{"id": ..., "amount": ...}`` objects."""
    transactions: List[Transaction] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                transactions.append(Transaction.from_dict(json.loads(line)))
            except (KeyError, ValueError, TypeError, OverflowError) as exc:
                raise ValueError(
                    f"Invalid transaction on line {line_no}: {exc}"
                ) from exc
    return transactions


def pack_file(path: str, config: Optional[AuditConfig] = None) -> List[Submission]:
    """
    Pack a transaction file offline, one submission per drain-sized chunk.

    Runs synchronously in file order, so the result is exactly what a single
    worker draining the same file would produce.
    """
    config = config or AuditConfig()
    transactions = load_transactions(path)
    logger.info("Loaded %d transactions from %s", len(transactions), path)

    size = config.max_transactions_per_submission
    submissions = [
        pack_with_config(transactions[i:i + size], config)
        for i in range(0, len(transactions), size)
    ]
    logger.info(
        "Packed %d chunks into %d batches",
        len(submissions), sum(len(s.batches) for s in submissions),
    )
    return submissions
