import uuid

from sqlalchemy import JSON, Boolean, CheckConstraint, Column, Index, Numeric, String, Text, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from loyalty_ledger.db import Base


class LoyaltyProgram(Base):
    __tablename__ = "loyalty_programs"
    __table_args__ = (
        CheckConstraint("accrual_rate >= 0 AND accrual_rate <= 0.5", name="ck_loyalty_programs_accrual_rate"),
        CheckConstraint("point_value >= 0.01", name="ck_loyalty_programs_point_value"),
        Index("ix_loyalty_programs_company_active", "company_id", "active"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    company_id = Column(String(50), nullable=False)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)

    # fraction of the purchase value converted to points, 0..0.5
    accrual_rate = Column(Numeric(6, 4), nullable=False)
    # monetary value of one point
    point_value = Column(Numeric(12, 4), nullable=False)

    start_date = Column(TIMESTAMP, nullable=False)
    end_date = Column(TIMESTAMP, nullable=True)  # NULL = indefinite

    benefits_by_tier = Column(JSON, nullable=False, default=dict)

    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
