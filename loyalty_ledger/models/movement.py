import uuid
from sqlalchemy import Column, ForeignKey, Index, Integer, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from loyalty_ledger.db import Base


EARNED = "EARNED"
REDEEMED = "REDEEMED"
ADJUSTED = "ADJUSTED"
EXPIRED = "EXPIRED"

MOVEMENT_TYPES = (EARNED, REDEEMED, ADJUSTED, EXPIRED)


class Movement(Base):
    """Append-only ledger entry. Rows are never updated or deleted."""

    __tablename__ = "loyalty_movements"
    __table_args__ = (
        UniqueConstraint("account_id", "sequence", name="uq_loyalty_movements_account_sequence"),
        Index("ix_loyalty_movements_account_occurred", "account_id", "occurred_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    account_id = Column(UUID(as_uuid=True), ForeignKey("loyalty_accounts.id"), nullable=False)
    sequence = Column(Integer, nullable=False)

    type = Column(String(20), nullable=False)  # EARNED / REDEEMED / ADJUSTED / EXPIRED
    amount = Column(Integer, nullable=False)  # signed

    reference = Column(String(200), nullable=True)
    description = Column(String(500), nullable=True)

    occurred_at = Column(TIMESTAMP, nullable=False)
    balance_after = Column(Integer, nullable=False)
