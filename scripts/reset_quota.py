#!/usr/bin/env python3
"""
Replenish daily quotas by hand (administrative repair).

Usage:
  python scripts/reset_quota.py --user-id 42
  python scripts/reset_quota.py --all-due
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta

from dating_api.core.config import get_settings
from dating_api.core.logging_config import configure_logging
from dating_api.domain.quota import QuotaNotFoundError, QuotaPolicy
from dating_api.repositories.quota_store import SQLQuotaStore
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.quota_service import QuotaService

logger = logging.getLogger("reset_quota")


def build_service() -> QuotaService:
    settings = get_settings()
    policy = QuotaPolicy(
        capacity=settings.quota_daily_capacity,
        interval=timedelta(seconds=settings.quota_window_seconds),
    )
    return QuotaService(
        SQLQuotaStore(),
        policy,
        SQLRepository().user_exists,
        max_retries=settings.quota_max_retries,
    )


def main() -> None:
    ap = argparse.ArgumentParser(description="Reset daily selection quotas")
    group = ap.add_mutually_exclusive_group(required=True)
    group.add_argument("--user-id", type=int, help="Reset a single user's quota if its window has elapsed")
    group.add_argument("--all-due", action="store_true", help="Run the full reset pass once")
    args = ap.parse_args()

    configure_logging(get_settings().log_level)
    service = build_service()

    if args.all_due:
        count = service.reset_all_due()
        logger.info("Reset %d quota record(s)", count)
        return

    try:
        record = service.reset_one(args.user_id)
    except QuotaNotFoundError as exc:
        raise SystemExit(str(exc))
    logger.info(
        "User %s: remaining=%d/%d window=%s..%s",
        record.user_id,
        record.remaining,
        record.capacity,
        record.window_start.isoformat(),
        record.window_end.isoformat(),
    )


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
