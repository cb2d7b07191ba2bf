from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from loyalty_ledger.errors import ClosedAccountError, LedgerError
from loyalty_ledger.models.account import Account
from loyalty_ledger.models.loyalty_program import LoyaltyProgram
from loyalty_ledger.services.account_service import close
from loyalty_ledger.services.clock import utcnow
from loyalty_ledger.services.movement_service import MovementService


logger = logging.getLogger(__name__)

INACTIVITY_DAYS = int(os.getenv("EXPIRATION_INACTIVITY_DAYS") or "365")
BATCH_SIZE = int(os.getenv("EXPIRATION_SWEEP_BATCH_SIZE") or "500")

INACTIVITY_REASON = "inactivity"
PROGRAM_ENDED_REASON = "program ended"


@dataclass
class ExpirationRunStats:
    processed: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0
    closed: int = 0


def select_inactive_accounts(db: Session, *, now: datetime, cutoff: datetime, limit: int):
    return (
        db.query(Account.id)
        .filter(or_(Account.closed_at.is_(None), Account.closed_at > now))
        .filter(Account.current_balance > 0)
        .filter(
            or_(
                Account.last_activity_at < cutoff,
                and_(Account.last_activity_at.is_(None), Account.enrolled_at < cutoff),
            )
        )
        .order_by(Account.last_activity_at.asc())
        .limit(limit)
        .all()
    )


def select_accounts_of_ended_programs(db: Session, *, now: datetime):
    return [
        row.id
        for row in (
            db.query(Account.id)
            .join(LoyaltyProgram, LoyaltyProgram.id == Account.program_id)
            .filter(Account.closed_at.is_(None))
            .filter(LoyaltyProgram.end_date.isnot(None))
            .filter(LoyaltyProgram.end_date <= now)
            .all()
        )
    ]


def run_expiration_sweep(
    db: Session,
    *,
    service: MovementService,
    now: datetime | None = None,
    inactivity_days: int | None = None,
    batch_size: int | None = None,
) -> ExpirationRunStats:
    """
    Expire the balance of inactive accounts, then close accounts of ended
    programs. Each account is its own unit of work; one failing account is
    logged and the sweep moves on.
    """
    if now is None:
        now = utcnow()
    if inactivity_days is None:
        inactivity_days = INACTIVITY_DAYS
    if batch_size is None:
        batch_size = BATCH_SIZE

    stats = ExpirationRunStats()

    cutoff = now - timedelta(days=int(inactivity_days))
    candidates = select_inactive_accounts(db, now=now, cutoff=cutoff, limit=batch_size)
    for (account_id,) in candidates:
        stats.processed += 1
        try:
            movement = service.expire_if_inactive(db, account_id, cutoff, INACTIVITY_REASON)
            if movement is None:
                stats.skipped += 1
                logger.info(
                    "account active again or emptied before expiration; skipped",
                    extra={"account_id": str(account_id)},
                )
                continue
            stats.expired += 1
        except ClosedAccountError:
            stats.skipped += 1
            logger.warning("account closed before expiration; skipped", extra={"account_id": str(account_id)})
        except LedgerError as e:
            stats.failed += 1
            logger.warning(
                "expiration failed",
                extra={"account_id": str(account_id), "error": type(e).__name__, "reason": e.message},
            )
        except Exception:
            stats.failed += 1
            logger.exception("expiration failed", extra={"account_id": str(account_id)})

    for account_id in select_accounts_of_ended_programs(db, now=now):
        try:
            close(db, account_id, PROGRAM_ENDED_REASON)
            stats.closed += 1
        except Exception:
            db.rollback()
            stats.failed += 1
            logger.exception("closing account of ended program failed", extra={"account_id": str(account_id)})

    logger.info(
        "expiration sweep finished",
        extra={
            "processed": stats.processed,
            "expired": stats.expired,
            "skipped": stats.skipped,
            "failed": stats.failed,
            "closed": stats.closed,
        },
    )
    return stats
