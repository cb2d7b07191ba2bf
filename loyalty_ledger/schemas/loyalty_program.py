from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel


class LoyaltyProgramCreate(BaseModel):
    company_id: str

    name: str
    description: str

    accrual_rate: Decimal
    point_value: Decimal

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    benefits_by_tier: Optional[Dict[str, Dict[str, Any]]] = None

    active: bool = True


class LoyaltyProgramUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

    accrual_rate: Optional[Decimal] = None
    point_value: Optional[Decimal] = None

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    benefits_by_tier: Optional[Dict[str, Dict[str, Any]]] = None


class LoyaltyProgramOut(BaseModel):
    id: UUID
    company_id: str

    name: str
    description: str

    accrual_rate: Decimal
    point_value: Decimal

    start_date: datetime
    end_date: Optional[datetime] = None

    benefits_by_tier: Dict[str, Dict[str, Any]]

    active: bool

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
