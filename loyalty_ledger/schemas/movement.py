from datetime import datetime
from typing import List, Literal, Optional

from uuid import UUID

from pydantic import BaseModel


class EarnRequest(BaseModel):
    purchase_amount: float
    reference: Optional[str] = None


class RedeemRequest(BaseModel):
    points: int
    reason: str


class AdjustRequest(BaseModel):
    delta: int
    reason: str


class ExpireRequest(BaseModel):
    amount: int
    reason: str


class MovementOut(BaseModel):
    id: UUID
    account_id: UUID
    sequence: int

    type: str
    amount: int

    reference: Optional[str] = None
    description: Optional[str] = None

    occurred_at: datetime
    balance_after: int

    class Config:
        from_attributes = True


class HistoryMeta(BaseModel):
    total: int
    offset: int
    limit: int


class HistorySummary(BaseModel):
    total_earned: int
    total_redeemed: int
    total_expired: int
    total_adjusted: int
    current_balance: int


class HistoryOut(BaseModel):
    movements: List[MovementOut]
    meta: HistoryMeta
    summary: HistorySummary


class LedgerCheckOut(BaseModel):
    account_id: UUID
    balance: int
    replayed_balance: int
    consistent: bool
    balance_after_consistent: bool


class BatchOperation(BaseModel):
    account_id: UUID
    type: Literal["EARN", "REDEEM", "ADJUST", "EXPIRE"]
    # purchase amount for EARN, points for REDEEM/EXPIRE, signed delta for ADJUST
    value: float
    reason: str = ""
    reference: Optional[str] = None


class BatchResultItem(BaseModel):
    account_id: UUID
    success: bool
    message: str
    error: Optional[str] = None
    movement: Optional[MovementOut] = None


class BatchResultOut(BaseModel):
    succeeded: int
    failed: int
    results: List[BatchResultItem]
