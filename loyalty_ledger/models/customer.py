import uuid
from sqlalchemy import Column, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base


class Customer(Base):
    """Local mirror of the customer directory, used for existence checks."""

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("company_id", "profile_id", name="uq_customers_company_profile"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    company_id = Column(String(50), nullable=False)
    profile_id = Column(String(100), nullable=False)

    email = Column(String(200))
    phone = Column(String(50))

    status = Column(String(20), nullable=False, default="ACTIVE")  # ACTIVE / INACTIVE

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
