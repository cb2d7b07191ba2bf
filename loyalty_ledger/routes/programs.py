from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.schemas.account import AccountNearNextTierOut
from loyalty_ledger.schemas.loyalty_program import LoyaltyProgramCreate, LoyaltyProgramOut, LoyaltyProgramUpdate
from loyalty_ledger.services import account_service, program_service
from loyalty_ledger.services.tier_service import TIERS, benefits_of


router = APIRouter(prefix="/programs", tags=["programs"])


@router.post("", response_model=LoyaltyProgramOut)
def create_program(payload: LoyaltyProgramCreate, db: Session = Depends(get_db)):
    return program_service.create_program(db, payload)


@router.get("", response_model=list[LoyaltyProgramOut])
def list_programs(company_id: str, active: bool | None = None, db: Session = Depends(get_db)):
    return program_service.list_programs(db, company_id, active=active)


@router.get("/{program_id}", response_model=LoyaltyProgramOut)
def get_program(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.get_program(db, program_id)


@router.patch("/{program_id}", response_model=LoyaltyProgramOut)
def update_program(program_id: UUID, payload: LoyaltyProgramUpdate, db: Session = Depends(get_db)):
    return program_service.update_program(db, program_id, payload)


@router.post("/{program_id}/deactivate", response_model=LoyaltyProgramOut)
def deactivate_program(program_id: UUID, db: Session = Depends(get_db)):
    return program_service.deactivate_program(db, program_id)


@router.get("/{program_id}/benefits/{tier}")
def get_tier_benefits(program_id: UUID, tier: str, db: Session = Depends(get_db)):
    tier = tier.upper()
    if tier not in TIERS:
        raise HTTPException(status_code=400, detail=f"Invalid tier. Valid tiers are: {', '.join(TIERS)}")
    program = program_service.get_program(db, program_id)
    return {"programId": str(program.id), "tier": tier, "benefits": benefits_of(tier, program)}


@router.get("/{program_id}/accounts/near-next-tier", response_model=list[AccountNearNextTierOut])
def list_accounts_near_next_tier(program_id: UUID, threshold_pct: float = 80, db: Session = Depends(get_db)):
    return account_service.accounts_near_next_tier(db, program_id, threshold_pct=threshold_pct)
