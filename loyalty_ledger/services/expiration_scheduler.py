from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from zoneinfo import ZoneInfo

from croniter import croniter

from loyalty_ledger.db import SessionLocal
from loyalty_ledger.services.clock import utcnow
from loyalty_ledger.services.expiration_runner import run_expiration_sweep
from loyalty_ledger.services.movement_service import MovementService, default_movement_service


logger = logging.getLogger(__name__)


def _as_utc_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(ZoneInfo("UTC"))


def _to_utc_naive(dt: datetime) -> datetime:
    return _as_utc_aware(dt).replace(tzinfo=None)


def compute_next_run_at(*, base_utc: datetime, cron_expr: str, tz_name: str = "UTC") -> datetime:
    if not cron_expr:
        raise ValueError("cron expression is required")
    if not croniter.is_valid(cron_expr):
        raise ValueError(f"Invalid cron expression: {cron_expr}")

    tz = ZoneInfo(tz_name or "UTC")
    base_local = _as_utc_aware(base_utc).astimezone(tz)
    next_local: datetime = croniter(cron_expr, base_local).get_next(datetime)
    return _to_utc_naive(next_local)


def run_sweep_loop(
    *,
    cron_expr: str,
    tz_name: str = "UTC",
    service: MovementService = default_movement_service,
    max_sleep_seconds: int = 60,
    session_factory=SessionLocal,
):
    next_run_at = compute_next_run_at(base_utc=utcnow(), cron_expr=cron_expr, tz_name=tz_name)
    logger.info(
        "expiration scheduler started",
        extra={"cron": cron_expr, "timezone": tz_name, "next_run_at": next_run_at.isoformat()},
    )

    while True:
        now = utcnow()
        if now < next_run_at:
            time.sleep(min(max_sleep_seconds, max(1, int((next_run_at - now).total_seconds()))))
            continue

        db = session_factory()
        try:
            run_expiration_sweep(db, service=service, now=now)
        except Exception:
            logger.exception("expiration sweep failed", extra={"run_at": now.isoformat()})
        finally:
            db.close()

        # Always move forward, even after a failure, to avoid a tight retry loop.
        next_run_at = compute_next_run_at(base_utc=now, cron_expr=cron_expr, tz_name=tz_name)
        logger.debug("next expiration sweep scheduled", extra={"next_run_at": next_run_at.isoformat()})


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL") or "INFO")
    run_sweep_loop(
        cron_expr=os.getenv("EXPIRATION_SWEEP_CRON") or "0 3 * * *",
        tz_name=os.getenv("EXPIRATION_SWEEP_TIMEZONE") or "UTC",
        max_sleep_seconds=int(os.getenv("EXPIRATION_SWEEP_MAX_SLEEP_SECONDS") or "60"),
    )


if __name__ == "__main__":
    main()
