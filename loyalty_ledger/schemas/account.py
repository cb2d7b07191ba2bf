from datetime import datetime
from typing import List, Optional

from uuid import UUID

from pydantic import BaseModel


class EnrollRequest(BaseModel):
    customer_id: UUID
    program_id: UUID
    initial_balance: int = 0


class CloseRequest(BaseModel):
    reason: str
    effective_at: Optional[datetime] = None


class AccountOut(BaseModel):
    id: UUID
    customer_id: UUID
    program_id: UUID

    enrolled_at: datetime
    closed_at: Optional[datetime] = None
    close_reason: Optional[str] = None

    current_balance: int
    lifetime_earned: int
    lifetime_redeemed: int

    last_activity_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TierInfoOut(BaseModel):
    current: str
    next_tier: Optional[str] = None
    points_to_next: Optional[int] = None
    progress_pct: Optional[float] = None

    class Config:
        from_attributes = True


class EligibilityOut(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    missing_requirements: List[str] = []


class AccountNearNextTierOut(BaseModel):
    account_id: UUID
    customer_id: UUID
    current_balance: int
    current_tier: str
    next_tier: str
    points_to_next: int
    progress_pct: float
