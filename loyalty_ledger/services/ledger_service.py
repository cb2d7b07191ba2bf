"""
Ledger store.

``append_movement`` is the only write path for balances: it updates the
account's cached balance and appends the matching movement inside the
caller's unit of work, so both land in the same commit or neither does.
"""

from sqlalchemy import func
from sqlalchemy.orm import Session

from loyalty_ledger.errors import InsufficientBalanceError, NotFoundError, ValidationError
from loyalty_ledger.models.account import Account
from loyalty_ledger.models.movement import ADJUSTED, EARNED, EXPIRED, MOVEMENT_TYPES, REDEEMED, Movement
from loyalty_ledger.services.tier_service import tier_of


MAX_PAGE_SIZE = 500


def append_movement(
    db: Session,
    account: Account,
    movement_type: str,
    amount: int,
    *,
    occurred_at,
    reference: str | None = None,
    description: str | None = None,
) -> Movement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type {movement_type}")

    new_balance = int(account.current_balance or 0) + int(amount)
    if new_balance < 0:
        raise InsufficientBalanceError(account.id, int(account.current_balance or 0), -int(amount))

    account.current_balance = new_balance
    account.last_sequence = int(account.last_sequence or 0) + 1
    account.last_activity_at = occurred_at
    account.tier_cache = tier_of(new_balance)

    # Versioned UPDATE goes out before the insert: a concurrent writer fails
    # here with StaleDataError instead of on the sequence constraint.
    db.flush()

    movement = Movement(
        account_id=account.id,
        sequence=account.last_sequence,
        type=movement_type,
        amount=int(amount),
        reference=reference,
        description=description,
        occurred_at=occurred_at,
        balance_after=new_balance,
    )
    db.add(movement)
    db.flush()

    return movement


def _get_account(db: Session, account_id) -> Account:
    account = db.query(Account).filter(Account.id == account_id).populate_existing().first()
    if not account:
        raise NotFoundError("Account", account_id)
    return account


def get_history(db: Session, account_id, *, offset: int = 0, limit: int = 100) -> dict:
    account = _get_account(db, account_id)

    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    base = db.query(Movement).filter(Movement.account_id == account.id)
    total = base.count()
    movements = base.order_by(Movement.sequence.asc()).offset(offset).limit(limit).all()

    sums = dict(
        db.query(Movement.type, func.coalesce(func.sum(Movement.amount), 0))
        .filter(Movement.account_id == account.id)
        .group_by(Movement.type)
        .all()
    )

    return {
        "movements": movements,
        "meta": {"total": total, "offset": offset, "limit": limit},
        "summary": {
            "total_earned": int(sums.get(EARNED, 0)),
            "total_redeemed": -int(sums.get(REDEEMED, 0)),
            "total_expired": -int(sums.get(EXPIRED, 0)),
            "total_adjusted": int(sums.get(ADJUSTED, 0)),
            "current_balance": int(account.current_balance or 0),
        },
    }


def iter_movements(db: Session, account_id, *, chunk_size: int = MAX_PAGE_SIZE):
    """Yield every movement of an account in ledger order, one page at a time."""
    last_sequence = 0
    while True:
        chunk = (
            db.query(Movement)
            .filter(Movement.account_id == account_id)
            .filter(Movement.sequence > last_sequence)
            .order_by(Movement.sequence.asc())
            .limit(chunk_size)
            .all()
        )
        if not chunk:
            return
        yield from chunk
        last_sequence = chunk[-1].sequence


def verify_ledger(db: Session, account_id) -> dict:
    account = _get_account(db, account_id)

    running = 0
    snapshots_ok = True
    for movement in iter_movements(db, account.id):
        running += int(movement.amount)
        if movement.balance_after != running:
            snapshots_ok = False

    balance = int(account.current_balance or 0)
    return {
        "account_id": account.id,
        "balance": balance,
        "replayed_balance": running,
        "consistent": running == balance,
        "balance_after_consistent": snapshots_ok,
    }
