"""
CLI interface for the audit batching engine.

Supports four modes:
  pack     — Pack a transaction file offline and print the submissions.
  generate — Generate a synthetic transaction file.
  simulate — Run producer → balance tracker → engine for a while, print stats.
  serve    — Run the full system plus the balance HTTP API until interrupted.
"""
from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from typing import Optional

from audit_engine.config import PACKING_STRATEGIES, ApiConfig, AuditConfig


def _setup_logging(verbose: bool = False) -> None:
    """Configure structured logging."""
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s [%(levelname)-7s] %(name)s — %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _add_audit_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--max-transactions", type=int, default=None,
                   help="Max transactions per submission (drain size)")
    p.add_argument("--max-value", type=float, default=None,
                   help="Max total magnitude per batch")
    p.add_argument("--workers", type=int, default=None, help="Worker pool size")
    p.add_argument("--flush-interval", type=float, default=None,
                   help="Periodic flush interval in seconds")
    p.add_argument("--strategy", choices=PACKING_STRATEGIES, default=None,
                   help="Packing strategy")
    p.add_argument("--presort", action="store_true", default=None,
                   help="Sort magnitudes descending before packing")


def _audit_config(args: argparse.Namespace) -> AuditConfig:
    return AuditConfig.from_env().with_overrides(
        max_transactions_per_submission=args.max_transactions,
        max_batch_total_value=args.max_value,
        worker_pool_size=args.workers,
        periodic_flush_interval=args.flush_interval,
        packing_strategy=args.strategy,
        presort_descending=args.presort,
    )


def _make_sink(kind: str, output: Optional[str]):
    from audit_engine.sinks import JsonlFileSink, LoggingSink, MemorySink

    if kind == "jsonl":
        if not output:
            raise ValueError("--output is required for the jsonl sink")
        return JsonlFileSink(output)
    if kind == "memory":
        return MemorySink()
    return LoggingSink()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="audit_engine",
        description="Bank account audit batching engine",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug-level logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # --- pack ---
    pack_p = sub.add_parser("pack", help="Pack a transaction file offline")
    pack_p.add_argument("--input", required=True, help="Path to transactions.jsonl")
    _add_audit_options(pack_p)

    # --- generate ---
    gen_p = sub.add_parser("generate", help="Generate synthetic transactions")
    gen_p.add_argument("--output", required=True, help="Path to output transactions.jsonl")
    gen_p.add_argument(
        "--count", type=int, default=1000, help="Number of transactions (default 1000)"
    )
    gen_p.add_argument(
        "--seed", type=int, default=42, help="Random seed for reproducibility"
    )

    # --- simulate ---
    sim_p = sub.add_parser("simulate", help="Run the producer against the engine")
    sim_p.add_argument("--duration", type=float, default=10.0,
                       help="Seconds to run the producer (default 10)")
    sim_p.add_argument("--sink", choices=("log", "jsonl", "memory"), default="log")
    sim_p.add_argument("--output", help="Output path for the jsonl sink")
    sim_p.add_argument("--seed", type=int, default=None, help="Producer random seed")
    sim_p.add_argument("--interval", type=float, default=0.04,
                       help="Seconds between producer ticks (default 0.04)")
    _add_audit_options(sim_p)

    # --- serve ---
    serve_p = sub.add_parser("serve", help="Run the system and the balance API")
    serve_p.add_argument("--host", default=None, help="Bind address")
    serve_p.add_argument("--port", type=int, default=None, help="Bind port")
    serve_p.add_argument("--sink", choices=("log", "jsonl"), default="log")
    serve_p.add_argument("--output", help="Output path for the jsonl sink")
    _add_audit_options(serve_p)

    args = parser.parse_args(argv)
    _setup_logging(verbose=args.verbose)

    logger = logging.getLogger("audit_engine.cli")

    if args.command == "pack":
        from audit_engine.engine import pack_file

        try:
            config = _audit_config(args)
            submissions = pack_file(args.input, config)
            delivered = [s for s in submissions if not s.is_empty]
            for s in delivered:
                print(s.to_json())
            print(
                f"PACK OK — {len(delivered)} submissions, "
                f"{sum(len(s.batches) for s in delivered)} batches, "
                f"{sum(s.transaction_count for s in delivered)} transactions, "
                f"{sum(s.oversized for s in submissions)} oversized skipped",
                file=sys.stderr,
            )
        except Exception as exc:
            logger.exception("Pack failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(1)

    elif args.command == "generate":
        from audit_engine.generate_transactions import generate_transactions

        try:
            written = generate_transactions(args.output, args.count, args.seed)
            print(f"Generated {written} transactions → {args.output}")
        except Exception as exc:
            logger.exception("Generation failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(1)

    elif args.command == "simulate":
        from audit_engine.balance import BalanceTracker
        from audit_engine.engine import create_engine
        from audit_engine.producer import TransactionProducer

        try:
            config = _audit_config(args)
            engine = create_engine(_make_sink(args.sink, args.output), config)
            tracker = BalanceTracker(engine)
            rng = random.Random(args.seed) if args.seed is not None else None
            producer = TransactionProducer(tracker, rng=rng, interval=args.interval)
            producer.start()
            try:
                time.sleep(args.duration)
            finally:
                producer.stop()
                engine.shutdown()
            stats = engine.stats()
            print(
                f"SIMULATE OK — balance {tracker.formatted_balance()}, "
                f"submitted {stats.submitted}, packed {stats.packed}, "
                f"oversized {stats.oversized}, pending {stats.pending}, "
                f"submissions {stats.submissions_delivered}, "
                f"sink failures {stats.sink_failures}"
            )
        except Exception as exc:
            logger.exception("Simulation failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(1)

    elif args.command == "serve":
        from audit_engine.api import create_app
        from audit_engine.balance import BalanceTracker
        from audit_engine.engine import create_engine
        from audit_engine.producer import TransactionProducer

        try:
            config = _audit_config(args)
            api_config = ApiConfig.from_env()
            host = args.host or api_config.host
            port = args.port or api_config.port
            engine = create_engine(_make_sink(args.sink, args.output), config)
            tracker = BalanceTracker(engine)
            producer = TransactionProducer(tracker)
            producer.start()
            try:
                create_app(tracker, api_config).run(host=host, port=port)
            finally:
                producer.stop()
                engine.shutdown()
        except KeyboardInterrupt:
            pass
        except Exception as exc:
            logger.exception("Serve failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
