"""
Configuration for the audit engine and the balance API.

Every option has a default and can be overridden from the environment
(``AUDIT_*`` / ``BALANCE_API_*``).  The CLI layers its flags on top.
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_MAX_TRANSACTIONS_PER_SUBMISSION: int = 1000
DEFAULT_MAX_BATCH_TOTAL_VALUE: float = 1_000_000.0
DEFAULT_WORKER_POOL_SIZE: int = 4
DEFAULT_PERIODIC_FLUSH_INTERVAL: float = 5.0      # seconds

PACKING_BEST_FIT  = "BEST_FIT"
PACKING_FIRST_FIT = "FIRST_FIT"
PACKING_STRATEGIES = (PACKING_BEST_FIT, PACKING_FIRST_FIT)

DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8080


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Not a boolean: {raw!r}")


# ---------------------------------------------------------------------------
# AuditConfig
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AuditConfig:
    """Caps and scheduling knobs, fixed at engine construction."""

    max_transactions_per_submission: int   = DEFAULT_MAX_TRANSACTIONS_PER_SUBMISSION
    max_batch_total_value:           float = DEFAULT_MAX_BATCH_TOTAL_VALUE
    worker_pool_size:                int   = DEFAULT_WORKER_POOL_SIZE
    periodic_flush_interval:         float = DEFAULT_PERIODIC_FLUSH_INTERVAL
    presort_descending:              bool  = False
    packing_strategy:                str   = PACKING_BEST_FIT

    def __post_init__(self) -> None:
        for name in ("max_transactions_per_submission", "worker_pool_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be int, got {type(value).__name__}")
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        for name in ("max_batch_total_value", "periodic_flush_interval"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"{name} must be a number, got {type(value).__name__}")
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be positive and finite, got {value}")
        if self.packing_strategy not in PACKING_STRATEGIES:
            raise ValueError(f"Invalid packing strategy: {self.packing_strategy!r}")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "AuditConfig":
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if "AUDIT_MAX_TRANSACTIONS_PER_SUBMISSION" in env:
            kwargs["max_transactions_per_submission"] = int(env["AUDIT_MAX_TRANSACTIONS_PER_SUBMISSION"])
        if "AUDIT_MAX_BATCH_TOTAL_VALUE" in env:
            kwargs["max_batch_total_value"] = float(env["AUDIT_MAX_BATCH_TOTAL_VALUE"])
        if "AUDIT_WORKER_POOL_SIZE" in env:
            kwargs["worker_pool_size"] = int(env["AUDIT_WORKER_POOL_SIZE"])
        if "AUDIT_PERIODIC_FLUSH_INTERVAL" in env:
            kwargs["periodic_flush_interval"] = float(env["AUDIT_PERIODIC_FLUSH_INTERVAL"])
        if "AUDIT_PRESORT_DESCENDING" in env:
            kwargs["presort_descending"] = _parse_bool(env["AUDIT_PRESORT_DESCENDING"])
        if "AUDIT_PACKING_STRATEGY" in env:
            kwargs["packing_strategy"] = env["AUDIT_PACKING_STRATEGY"].strip().upper()
        return AuditConfig(**kwargs)

    def with_overrides(self, **overrides: Any) -> "AuditConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


# ---------------------------------------------------------------------------
# ApiConfig
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ApiConfig:
    """HTTP basic-auth credentials and bind address for the balance API."""

    username: str = "test"
    password: str = "p@ssword12"
    host:     str = DEFAULT_API_HOST
    port:     int = DEFAULT_API_PORT

    def __post_init__(self) -> None:
        if not self.username:
            raise ValueError("username must be non-empty")
        if not self.password:
            raise ValueError("password must be non-empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "ApiConfig":
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if "BALANCE_API_USER" in env:
            kwargs["username"] = env["BALANCE_API_USER"]
        if "BALANCE_API_PASSWORD" in env:
            kwargs["password"] = env["BALANCE_API_PASSWORD"]
        if "BALANCE_API_HOST" in env:
            kwargs["host"] = env["BALANCE_API_HOST"]
        if "BALANCE_API_PORT" in env:
            kwargs["port"] = int(env["BALANCE_API_PORT"])
        return ApiConfig(**kwargs)
