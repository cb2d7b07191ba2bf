import logging
import time

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from loyalty_ledger.errors import ConcurrencyError, ConflictError, NotFoundError, PolicyViolationError, ValidationError
from loyalty_ledger.models.account import Account
from loyalty_ledger.models.movement import ADJUSTED
from loyalty_ledger.services.clock import to_utc_naive, utcnow
from loyalty_ledger.services.customer_service import CustomerDirectory, SqlCustomerDirectory
from loyalty_ledger.services.ledger_service import append_movement
from loyalty_ledger.services.movement_service import MAX_RETRIES, RETRY_BACKOFF_MS
from loyalty_ledger.services.program_service import get_program, is_program_usable
from loyalty_ledger.services.tier_service import TierInfo, compute_tier as compute_tier_for_balance


logger = logging.getLogger(__name__)

default_directory = SqlCustomerDirectory()


def _open_accounts_query(db: Session, now):
    return db.query(Account).filter(or_(Account.closed_at.is_(None), Account.closed_at > now))


def find_active_account(db: Session, customer_id, program_id, now=None):
    now = now or utcnow()
    return (
        _open_accounts_query(db, now)
        .filter(Account.customer_id == customer_id, Account.program_id == program_id)
        .first()
    )


def enroll(
    db: Session,
    customer_id,
    program_id,
    initial_balance: int = 0,
    *,
    directory: CustomerDirectory | None = None,
) -> Account:
    directory = directory or default_directory
    now = utcnow()

    if isinstance(initial_balance, bool) or not isinstance(initial_balance, int) or initial_balance < 0:
        raise ValidationError("initial_balance must be a non-negative integer")

    customer = directory.find(db, customer_id)
    if not customer:
        raise NotFoundError("Customer", customer_id)

    program = get_program(db, program_id)
    if customer.company_id != program.company_id:
        # customers outside the program's company are unknown to it
        raise NotFoundError("Customer", customer_id)
    if customer.status != "ACTIVE":
        raise PolicyViolationError(f"Customer {customer_id} is not active", rule="customer_inactive")
    if not is_program_usable(program, now):
        raise NotFoundError("LoyaltyProgram", program_id)

    if find_active_account(db, customer_id, program_id, now):
        raise ConflictError(
            f"Customer {customer_id} already has an active account in program {program_id}",
            details={"customer_id": str(customer_id), "program_id": str(program_id)},
        )

    account = Account(
        customer_id=customer_id,
        program_id=program_id,
        enrolled_at=now,
        current_balance=0,
        lifetime_earned=0,
        lifetime_redeemed=0,
        last_sequence=0,
        last_activity_at=now,
    )
    db.add(account)

    try:
        db.flush()
        if initial_balance > 0:
            account.lifetime_earned = initial_balance
            append_movement(db, account, ADJUSTED, initial_balance, occurred_at=now, description="Opening balance")
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            f"Customer {customer_id} already has an active account in program {program_id}",
            details={"customer_id": str(customer_id), "program_id": str(program_id)},
        ) from e

    db.refresh(account)
    logger.info(
        "customer enrolled",
        extra={"account_id": str(account.id), "customer_id": str(customer_id), "program_id": str(program_id)},
    )
    return account


def get_account(db: Session, customer_id, program_id) -> Account:
    """The customer's active account in the program, else its latest one."""
    account = (
        db.query(Account)
        .filter(Account.customer_id == customer_id, Account.program_id == program_id)
        .order_by(Account.enrolled_at.desc())
        .first()
    )
    if not account:
        raise NotFoundError("Account", f"{customer_id}/{program_id}")
    return find_active_account(db, customer_id, program_id) or account


def get_account_by_id(db: Session, account_id) -> Account:
    account = db.query(Account).filter(Account.id == account_id).first()
    if not account:
        raise NotFoundError("Account", account_id)
    return account


def close(
    db: Session,
    account_id,
    reason: str,
    effective_at=None,
    *,
    max_retries: int | None = None,
    retry_backoff_ms: int | None = None,
) -> Account:
    max_retries = max(1, max_retries if max_retries is not None else MAX_RETRIES)
    retry_backoff_ms = retry_backoff_ms if retry_backoff_ms is not None else RETRY_BACKOFF_MS
    effective_at = to_utc_naive(effective_at)

    attempt = 0
    while True:
        attempt += 1
        try:
            now = utcnow()
            account = (
                db.query(Account)
                .filter(Account.id == account_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if not account:
                raise NotFoundError("Account", account_id)

            if account.is_closed(now):
                # already closed: retries get the closed account back
                db.rollback()
                return account

            account.closed_at = effective_at if effective_at and effective_at > now else now
            account.close_reason = reason
            db.commit()
        except (StaleDataError, OperationalError) as e:
            db.rollback()
            if attempt >= max_retries:
                logger.warning(
                    "close conflict; retries exhausted",
                    extra={"account_id": str(account_id), "attempt": attempt},
                )
                raise ConcurrencyError(account_id, attempt) from e
            logger.warning("close conflict; retrying", extra={"account_id": str(account_id), "attempt": attempt})
            time.sleep(retry_backoff_ms * attempt / 1000)
            continue
        except Exception:
            db.rollback()
            raise
        break

    db.refresh(account)

    logger.info(
        "account closed",
        extra={"account_id": str(account.id), "closed_at": account.closed_at.isoformat(), "reason": reason},
    )
    return account


def compute_tier(account: Account) -> TierInfo:
    return compute_tier_for_balance(account.current_balance)


def get_tier(db: Session, account_id) -> TierInfo:
    return compute_tier(get_account_by_id(db, account_id))


def check_eligibility(db: Session, customer_id, program_id, *, directory: CustomerDirectory | None = None) -> dict:
    directory = directory or default_directory
    now = utcnow()

    customer = directory.find(db, customer_id)
    if not customer:
        return {"eligible": False, "reason": "Customer not found", "missing_requirements": []}

    try:
        program = get_program(db, program_id)
    except NotFoundError:
        return {"eligible": False, "reason": "Program not found", "missing_requirements": []}

    if customer.company_id != program.company_id:
        return {"eligible": False, "reason": "Customer does not belong to the program's company", "missing_requirements": []}
    if customer.status != "ACTIVE":
        return {"eligible": False, "reason": "Customer is not active", "missing_requirements": []}
    if not is_program_usable(program, now):
        return {"eligible": False, "reason": "Program is not active or outside its validity window", "missing_requirements": []}
    if find_active_account(db, customer_id, program_id, now):
        return {"eligible": False, "reason": "Customer already enrolled in program", "missing_requirements": []}

    missing = []
    if not customer.email:
        missing.append("email")
    if not customer.phone:
        missing.append("phone")

    return {
        "eligible": not missing,
        "reason": None if not missing else "Missing contact information",
        "missing_requirements": missing,
    }


def accounts_near_next_tier(db: Session, program_id, threshold_pct: float = 80) -> list[dict]:
    if threshold_pct < 0 or threshold_pct > 100:
        raise ValidationError("threshold_pct must be between 0 and 100")
    get_program(db, program_id)

    rows = []
    for account in _open_accounts_query(db, utcnow()).filter(Account.program_id == program_id).all():
        info = compute_tier(account)
        if info.next_tier is None or info.progress_pct < threshold_pct:
            continue
        rows.append(
            {
                "account_id": account.id,
                "customer_id": account.customer_id,
                "current_balance": int(account.current_balance),
                "current_tier": info.current,
                "next_tier": info.next_tier,
                "points_to_next": info.points_to_next,
                "progress_pct": info.progress_pct,
            }
        )

    return sorted(rows, key=lambda r: r["progress_pct"], reverse=True)
