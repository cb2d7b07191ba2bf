import threading

import pytest

from loyalty_ledger.errors import ConcurrencyError, InsufficientBalanceError
from loyalty_ledger.models.account import Account
from loyalty_ledger.services import account_service, ledger_service
from loyalty_ledger.services.movement_service import MovementService


def _run_concurrently(session_factory, fn, n):
    barrier = threading.Barrier(n)
    outcomes = [None] * n

    def worker(i):
        session = session_factory()
        try:
            barrier.wait()
            outcomes[i] = ("ok", fn(session, i))
        except Exception as e:  # collected and asserted on below
            outcomes[i] = ("error", e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_two_concurrent_redeems_never_both_succeed(db, session_factory, customer, program):
    account = account_service.enroll(db, customer.id, program.id, initial_balance=100)
    service = MovementService(max_retries=10, retry_backoff_ms=5)

    outcomes = _run_concurrently(
        session_factory,
        lambda session, i: service.redeem(session, account.id, 80, f"reward {i}").balance_after,
        2,
    )

    successes = [value for kind, value in outcomes if kind == "ok"]
    failures = [value for kind, value in outcomes if kind == "error"]
    assert successes == [20]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientBalanceError)

    db.expire_all()
    assert db.query(Account).filter(Account.id == account.id).one().current_balance == 20
    assert ledger_service.verify_ledger(db, account.id)["consistent"] is True


def test_concurrent_earns_are_all_applied(db, session_factory, customer, program):
    account = account_service.enroll(db, customer.id, program.id)
    service = MovementService(max_retries=20, retry_backoff_ms=5)

    outcomes = _run_concurrently(
        session_factory,
        lambda session, i: service.earn(session, account.id, 1000, reference=f"ORDER-{i}").amount,
        4,
    )

    assert all(kind == "ok" for kind, _ in outcomes), outcomes
    db.expire_all()
    history = ledger_service.get_history(db, account.id)
    assert history["summary"]["current_balance"] == 40
    assert [m.sequence for m in history["movements"]] == [1, 2, 3, 4]
    assert [m.balance_after for m in history["movements"]] == [10, 20, 30, 40]


def test_stale_version_surfaces_concurrency_error_after_retries(db, session_factory, customer, program):
    account = account_service.enroll(db, customer.id, program.id, initial_balance=100)
    other = session_factory()

    def bump_version_behind_our_back(session, request):
        # another writer commits between our read and our write on every attempt
        row = other.query(Account).filter(Account.id == request.account_id).one()
        row.current_balance = row.current_balance
        row.tier_cache = None if row.tier_cache else "BRONZE"
        other.commit()

    class InterleavingService(MovementService):
        def _lock_account(self, session, account_id):
            found = super()._lock_account(session, account_id)
            bump_version_behind_our_back(session, type("R", (), {"account_id": account_id}))
            return found

    service = InterleavingService(max_retries=3, retry_backoff_ms=1)
    try:
        with pytest.raises(ConcurrencyError) as exc:
            service.redeem(db, account.id, 10, "gift")
    finally:
        other.close()

    assert exc.value.retryable is True
    assert exc.value.details["attempts"] == 3
    db.expire_all()
    assert db.query(Account).filter(Account.id == account.id).one().current_balance == 100
