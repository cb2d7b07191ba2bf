from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel


class CustomerUpsert(BaseModel):
    company_id: str
    profile_id: str

    email: Optional[str] = None
    phone: Optional[str] = None


class CustomerOut(BaseModel):
    id: UUID
    company_id: str
    profile_id: str

    email: Optional[str] = None
    phone: Optional[str] = None

    status: str

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
