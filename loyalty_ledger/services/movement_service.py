"""
Movement service: the only component that mutates balances.

Every operation runs as one unit of work per account:

    lock account row -> decide -> update cached balance -> append movement -> commit

The account row is taken with ``SELECT ... FOR UPDATE`` where the backend
supports it, and every balance update is conditional on the account's
``version`` column. A stale version or a lock timeout rolls the unit of work
back and replays it from the read, up to ``LEDGER_MAX_RETRIES`` attempts,
after which the caller gets a ``ConcurrencyError`` that is safe to retry.
"""

import logging
import math
import os
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from loyalty_ledger.errors import (
    ClosedAccountError,
    ConcurrencyError,
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from loyalty_ledger.models.account import Account
from loyalty_ledger.models.movement import ADJUSTED, EARNED, EXPIRED, REDEEMED, Movement
from loyalty_ledger.services.clock import utcnow
from loyalty_ledger.services.ledger_service import append_movement
from loyalty_ledger.services.notification_service import LoggingNotificationSink, NotificationHook, audit_log_hook
from loyalty_ledger.services.program_service import get_program, is_within_validity_window
from loyalty_ledger.services.tier_service import tier_of


logger = logging.getLogger(__name__)

MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES") or "3")
RETRY_BACKOFF_MS = int(os.getenv("LEDGER_RETRY_BACKOFF_MS") or "25")

EARN = "EARN"
REDEEM = "REDEEM"
ADJUST = "ADJUST"
EXPIRE = "EXPIRE"

_RETRYABLE = (StaleDataError, OperationalError)


@dataclass(frozen=True)
class MovementRequest:
    operation: str
    account_id: Any
    value: Any
    reason: str | None = None
    reference: str | None = None


@dataclass
class MovementOutcome:
    request: MovementRequest
    movement: Movement
    account: Account
    balance_before: int
    tier_before: str
    tier_after: str


BeforeHook = Callable[[Session, MovementRequest], None]
AfterHook = Callable[[MovementOutcome], None]


def points_for_purchase(purchase_amount, accrual_rate) -> int:
    return math.floor(Decimal(str(purchase_amount)) * Decimal(str(accrual_rate)))


class MovementService:
    """
    Earn / redeem / adjust / expire against one account.

    ``before_hooks`` run before the unit of work starts and may raise to
    refuse the operation (capability checks). ``after_hooks`` run once the
    movement is committed; their failures are logged and never propagate.
    """

    def __init__(
        self,
        *,
        before_hooks: Iterable[BeforeHook] = (),
        after_hooks: Iterable[AfterHook] = (),
        max_retries: int | None = None,
        retry_backoff_ms: int | None = None,
        clock: Callable = utcnow,
    ):
        self.before_hooks = list(before_hooks)
        self.after_hooks = list(after_hooks)
        self.max_retries = max(1, max_retries if max_retries is not None else MAX_RETRIES)
        self.retry_backoff_ms = retry_backoff_ms if retry_backoff_ms is not None else RETRY_BACKOFF_MS
        self.clock = clock

    # ------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------
    def earn(self, db: Session, account_id, purchase_amount, reference: str | None = None) -> Movement:
        request = MovementRequest(EARN, account_id, purchase_amount, reference=reference)

        def decide(account: Account, now):
            self._ensure_open(account, now)
            if purchase_amount is None or Decimal(str(purchase_amount)) <= 0:
                raise PolicyViolationError(
                    "Purchase amount must be greater than zero",
                    rule="purchase_amount",
                    details={"purchase_amount": str(purchase_amount)},
                )
            program = get_program(db, account.program_id)
            if not program.active:
                raise PolicyViolationError(
                    f"Loyalty program {program.id} is inactive",
                    rule="program_inactive",
                )
            if not is_within_validity_window(program, now):
                raise PolicyViolationError(
                    f"Loyalty program {program.id} is outside its validity window",
                    rule="program_validity_window",
                )

            points = points_for_purchase(purchase_amount, program.accrual_rate)
            account.lifetime_earned = int(account.lifetime_earned or 0) + points
            return append_movement(
                db,
                account,
                EARNED,
                points,
                occurred_at=now,
                reference=reference,
                description=f"Points for purchase of {Decimal(str(purchase_amount)):.2f}",
            )

        return self._execute(db, request, decide)

    def redeem(self, db: Session, account_id, points: int, reason: str) -> Movement:
        request = MovementRequest(REDEEM, account_id, points, reason=reason)

        def decide(account: Account, now):
            self._ensure_open(account, now)
            requested = self._positive_points(points, "points")
            available = int(account.current_balance or 0)
            if available < requested:
                raise InsufficientBalanceError(account.id, available, requested)

            account.lifetime_redeemed = int(account.lifetime_redeemed or 0) + requested
            return append_movement(db, account, REDEEMED, -requested, occurred_at=now, description=reason)

        return self._execute(db, request, decide)

    def adjust(self, db: Session, account_id, delta: int, reason: str) -> Movement:
        request = MovementRequest(ADJUST, account_id, delta, reason=reason)

        def decide(account: Account, now):
            # administrative corrections are allowed on closed accounts
            if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
                raise ValidationError("delta must be a non-zero integer", details={"delta": delta})
            available = int(account.current_balance or 0)
            if delta < 0 and available + delta < 0:
                raise InsufficientBalanceError(account.id, available, -delta)

            if delta > 0:
                account.lifetime_earned = int(account.lifetime_earned or 0) + delta
            return append_movement(db, account, ADJUSTED, delta, occurred_at=now, description=reason)

        return self._execute(db, request, decide)

    def expire(self, db: Session, account_id, amount: int, reason: str) -> Movement:
        request = MovementRequest(EXPIRE, account_id, amount, reason=reason)

        def decide(account: Account, now):
            self._ensure_open(account, now)
            requested = self._positive_points(amount, "amount")
            clamped = min(requested, int(account.current_balance or 0))
            description = reason
            if clamped < requested:
                description = f"{reason} (requested {requested}, clamped to {clamped})"
            return append_movement(db, account, EXPIRED, -clamped, occurred_at=now, description=description)

        return self._execute(db, request, decide)

    def expire_if_inactive(self, db: Session, account_id, cutoff, reason: str) -> Movement | None:
        """
        Expire the whole balance if the account has had no activity since
        ``cutoff``. Activity is re-read under the row lock, so an account that
        moved after it was selected is left untouched and ``None`` is returned.
        """
        request = MovementRequest(EXPIRE, account_id, None, reason=reason)

        def decide(account: Account, now):
            self._ensure_open(account, now)
            last_activity = account.last_activity_at or account.enrolled_at
            balance = int(account.current_balance or 0)
            if last_activity >= cutoff or balance <= 0:
                return None
            return append_movement(db, account, EXPIRED, -balance, occurred_at=now, description=reason)

        return self._execute(db, request, decide)

    def process_batch(self, db: Session, operations) -> dict:
        """Run each operation in its own unit of work; failures stay isolated."""
        dispatch = {
            EARN: lambda op: self.earn(db, op.account_id, op.value, reference=op.reference),
            REDEEM: lambda op: self.redeem(db, op.account_id, self._whole_points(op.value, "points"), op.reason),
            ADJUST: lambda op: self.adjust(db, op.account_id, self._whole_points(op.value, "delta"), op.reason),
            EXPIRE: lambda op: self.expire(db, op.account_id, self._whole_points(op.value, "amount"), op.reason),
        }

        results = []
        succeeded = 0
        failed = 0
        for op in operations:
            try:
                movement = dispatch[op.type](op)
            except LedgerError as e:
                failed += 1
                results.append(
                    {"account_id": op.account_id, "success": False, "message": e.message, "error": type(e).__name__}
                )
                continue
            except Exception as e:
                failed += 1
                logger.exception("batch operation failed", extra={"account_id": str(op.account_id), "type": op.type})
                results.append(
                    {"account_id": op.account_id, "success": False, "message": str(e), "error": type(e).__name__}
                )
                continue

            succeeded += 1
            results.append(
                {"account_id": op.account_id, "success": True, "message": "Operation completed", "movement": movement}
            )

        logger.info("batch processed", extra={"succeeded": succeeded, "failed": failed})
        return {"succeeded": succeeded, "failed": failed, "results": results}

    # ------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------
    def _execute(self, db: Session, request: MovementRequest, decide) -> Movement | None:
        for hook in self.before_hooks:
            hook(db, request)

        attempt = 0
        while True:
            attempt += 1
            try:
                now = self.clock()
                account = self._lock_account(db, request.account_id)
                balance_before = int(account.current_balance or 0)
                movement = decide(account, now)
                db.commit()
            except _RETRYABLE as e:
                db.rollback()
                if attempt >= self.max_retries:
                    logger.warning(
                        "ledger conflict; retries exhausted",
                        extra={"account_id": str(request.account_id), "operation": request.operation, "attempt": attempt},
                    )
                    raise ConcurrencyError(request.account_id, attempt) from e
                logger.warning(
                    "ledger conflict; retrying",
                    extra={"account_id": str(request.account_id), "operation": request.operation, "attempt": attempt},
                )
                time.sleep(self.retry_backoff_ms * attempt / 1000)
                continue
            except Exception:
                db.rollback()
                raise
            break

        if movement is None:
            return None

        db.refresh(account)
        db.refresh(movement)
        outcome = MovementOutcome(
            request=request,
            movement=movement,
            account=account,
            balance_before=balance_before,
            tier_before=tier_of(balance_before),
            tier_after=tier_of(account.current_balance),
        )
        self._run_after_hooks(outcome)
        return movement

    def _run_after_hooks(self, outcome: MovementOutcome) -> None:
        for hook in self.after_hooks:
            try:
                hook(outcome)
            except Exception:
                logger.exception(
                    "after-commit hook failed",
                    extra={"account_id": str(outcome.account.id), "movement_id": str(outcome.movement.id)},
                )

    @staticmethod
    def _lock_account(db: Session, account_id) -> Account:
        account = (
            db.query(Account)
            .filter(Account.id == account_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not account:
            raise NotFoundError("Account", account_id)
        return account

    @staticmethod
    def _ensure_open(account: Account, now) -> None:
        if account.is_closed(now):
            raise ClosedAccountError(account.id)

    @staticmethod
    def _whole_points(value, field: str):
        if value is None or isinstance(value, (bool, int)):
            return value
        try:
            whole = int(value)
        except (TypeError, ValueError, OverflowError) as e:
            raise ValidationError(f"{field} must be a whole number of points", details={field: value}) from e
        if whole != value:
            raise ValidationError(f"{field} must be a whole number of points", details={field: value})
        return whole

    @staticmethod
    def _positive_points(value, field: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"{field} must be a positive integer", details={field: value})
        return value


default_movement_service = MovementService(
    after_hooks=(audit_log_hook, NotificationHook(LoggingNotificationSink())),
)
