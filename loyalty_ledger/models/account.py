import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func, text

from loyalty_ledger.db import Base


class Account(Base):
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
        # One open account per (customer, program). Scheduled (future) closings
        # are still active and are guarded by the account service.
        Index(
            "uq_loyalty_accounts_customer_program_open",
            "customer_id",
            "program_id",
            unique=True,
            postgresql_where=text("closed_at IS NULL"),
            sqlite_where=text("closed_at IS NULL"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    program_id = Column(UUID(as_uuid=True), ForeignKey("loyalty_programs.id"), nullable=False)

    enrolled_at = Column(TIMESTAMP, nullable=False)
    closed_at = Column(TIMESTAMP, nullable=True)
    close_reason = Column(String(200), nullable=True)

    # write-through cache of SUM(loyalty_movements.amount)
    current_balance = Column(Integer, nullable=False, default=0)
    lifetime_earned = Column(Integer, nullable=False, default=0)
    lifetime_redeemed = Column(Integer, nullable=False, default=0)

    # last movement sequence written for this account
    last_sequence = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(TIMESTAMP, nullable=True)

    # display cache only; the tier is always recomputed from current_balance
    tier_cache = Column(String(20), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    def is_closed(self, at) -> bool:
        return self.closed_at is not None and self.closed_at <= at
