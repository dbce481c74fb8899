"""
Submission sinks.

The engine only needs something with ``handle(submission)``.  It holds the
sink by reference and never closes it; the sink outlives the engine.
``handle`` runs on an audit worker thread and must not call
``engine.shutdown()``.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Protocol, runtime_checkable

from audit_engine.models import SinkError, Submission

logger = logging.getLogger(__name__)


@runtime_checkable
class SubmissionSink(Protocol):
    def handle(self, submission: Submission) -> None:
        ...


class LoggingSink:
    """Logs the canonical wire form of every submission at INFO."""

    def handle(self, submission: Submission) -> None:
        logger.info("Handling submission: %s", submission.to_json())


class JsonlFileSink:
    """Appends one JSON line per submission to ``path``."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def handle(self, submission: Submission) -> None:
        line = submission.to_json() + "\n"
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as exc:
            raise SinkError(f"Cannot append submission to {self.path}: {exc}") from exc


class MemorySink:
    """Keeps every submission in memory; safe to call from many workers."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self.submissions: List[Submission] = []

    def handle(self, submission: Submission) -> None:
        with self._cond:
            self.submissions.append(submission)
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float) -> bool:
        """Block until at least ``count`` submissions arrived or ``timeout`` expires."""
        with self._cond:
            return self._cond.wait_for(lambda: len(self.submissions) >= count, timeout=timeout)

    def __len__(self) -> int:
        with self._cond:
            return len(self.submissions)
