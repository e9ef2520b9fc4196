#!/usr/bin/env python3
"""Clean up expired uploads and orphaned multipart uploads.

Usage:
  .venv/bin/python scripts/reconcile_uploads.py --dry-run
  .venv/bin/python scripts/reconcile_uploads.py
  .venv/bin/python scripts/reconcile_uploads.py --loop --interval 600

By default runs one reconciliation pass. Use --dry-run to list the expired
file ids without deleting anything.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from tus_s3store.common.cancellation import CancellationToken
from tus_s3store.common.config import get_settings
from tus_s3store.common.logging import setup_logging
from tus_s3store.infra.observability.metrics import serve_metrics
from tus_s3store.services.store import TusS3Store

logger = logging.getLogger("tus_s3store.startup")


async def reconcile_uploads(store: TusS3Store, *, dry_run: bool = False) -> int:
    if dry_run:
        expired = (await store.get_expired_files()).unwrap()
        for file_id in expired:
            print(file_id)
        return len(expired)
    return (await store.remove_expired_files()).unwrap()


async def _run_loop(store: TusS3Store, interval: float | None) -> None:
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel.cancel)
    await store.sweeper(interval).run(cancel)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Remove expired uploads and orphaned multipart uploads"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the expired file ids without deleting them",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running, reconciling every --interval seconds",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between passes with --loop (default: RECONCILE_INTERVAL_SECONDS)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while running",
    )
    args = parser.parse_args()

    setup_logging()
    settings = get_settings()
    if args.metrics_port and settings.ENABLE_METRICS:
        serve_metrics(args.metrics_port)
        logger.info("Serving metrics on port %s", args.metrics_port)

    store = TusS3Store(settings=settings)
    if args.loop:
        asyncio.run(_run_loop(store, args.interval))
        return

    count = asyncio.run(reconcile_uploads(store, dry_run=args.dry_run))
    if args.dry_run:
        print(f"[DRY-RUN] {count} expired uploads would be removed")
    else:
        print(f"Removed {count} expired uploads")


if __name__ == "__main__":
    main()
