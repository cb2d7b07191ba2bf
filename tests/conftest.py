"""
Pytest configuration for the loyalty ledger.

Every test gets its own file-backed SQLite database so that the
contention tests can open independent connections against it.
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from loyalty_ledger.db import Base, make_engine
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.loyalty_program import LoyaltyProgram  # noqa: F401 (registers table)
from loyalty_ledger.models.account import Account  # noqa: F401
from loyalty_ledger.models.movement import Movement  # noqa: F401
from loyalty_ledger.schemas.loyalty_program import LoyaltyProgramCreate
from loyalty_ledger.services import account_service, program_service
from loyalty_ledger.services.clock import utcnow
from loyalty_ledger.services.movement_service import MovementService
from loyalty_ledger.services.notification_service import NotificationHook


VALID_DESCRIPTION = (
    "Earn points on every purchase and redeem them for discounts, "
    "free shipping and exclusive rewards across all stores."
)


class RecordingSink:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def service(sink):
    return MovementService(after_hooks=[NotificationHook(sink)], retry_backoff_ms=1)


@pytest.fixture
def make_customer(db):
    counter = {"n": 0}

    def _make(company_id="acme", email="ana@example.com", phone="+51 999 111 222", status="ACTIVE"):
        counter["n"] += 1
        customer = Customer(
            company_id=company_id,
            profile_id=f"profile-{counter['n']}",
            email=email,
            phone=phone,
            status=status,
        )
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    return _make


def program_payload(**overrides):
    data = {
        "company_id": "acme",
        "name": "Acme Rewards",
        "description": VALID_DESCRIPTION,
        "accrual_rate": Decimal("0.01"),
        "point_value": Decimal("0.05"),
        "start_date": utcnow() - timedelta(days=1),
        "end_date": None,
    }
    data.update(overrides)
    return LoyaltyProgramCreate(**data)


@pytest.fixture
def make_program(db):
    def _make(**overrides):
        return program_service.create_program(db, program_payload(**overrides))

    return _make


@pytest.fixture
def program(make_program):
    return make_program()


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def account(db, customer, program):
    return account_service.enroll(db, customer.id, program.id)


@pytest.fixture
def make_payload():
    return program_payload
