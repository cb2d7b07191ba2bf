from typing import Protocol

from sqlalchemy.orm import Session

from loyalty_ledger.models.customer import Customer


class CustomerDirectory(Protocol):
    """Existence checks against whatever system owns customers."""

    def find(self, db: Session, customer_id) -> Customer | None:
        ...


class SqlCustomerDirectory:
    def find(self, db: Session, customer_id):
        return db.query(Customer).filter(Customer.id == customer_id).first()


def get_customer(db: Session, company_id: str, profile_id: str):
    return (
        db.query(Customer)
        .filter(
            Customer.company_id == company_id,
            Customer.profile_id == profile_id,
        )
        .first()
    )


def _normalize_contact(value: str | None) -> str | None:
    v = (value or "").strip()
    return v or None


def get_or_create_customer(db: Session, company_id: str, profile_id: str, payload: dict | None = None):
    customer = get_customer(db, company_id, profile_id)

    if not customer:
        customer = Customer(
            company_id=company_id,
            profile_id=profile_id,
            status="ACTIVE",
        )
        db.add(customer)
        db.flush()

    if payload:
        if payload.get("email"):
            customer.email = _normalize_contact(payload["email"])

        if payload.get("phone"):
            customer.phone = _normalize_contact(payload["phone"])

    return customer
