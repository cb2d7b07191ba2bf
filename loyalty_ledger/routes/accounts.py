from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.schemas.account import AccountOut, CloseRequest, EligibilityOut, EnrollRequest, TierInfoOut
from loyalty_ledger.schemas.movement import HistoryOut, LedgerCheckOut
from loyalty_ledger.services import account_service, ledger_service


router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", response_model=AccountOut)
def enroll(payload: EnrollRequest, db: Session = Depends(get_db)):
    return account_service.enroll(db, payload.customer_id, payload.program_id, payload.initial_balance)


@router.get("/lookup", response_model=AccountOut)
def lookup_account(customer_id: UUID, program_id: UUID, db: Session = Depends(get_db)):
    return account_service.get_account(db, customer_id, program_id)


@router.get("/eligibility", response_model=EligibilityOut)
def check_eligibility(customer_id: UUID, program_id: UUID, db: Session = Depends(get_db)):
    return account_service.check_eligibility(db, customer_id, program_id)


@router.get("/{account_id}", response_model=AccountOut)
def get_account(account_id: UUID, db: Session = Depends(get_db)):
    return account_service.get_account_by_id(db, account_id)


@router.post("/{account_id}/close", response_model=AccountOut)
def close_account(account_id: UUID, payload: CloseRequest, db: Session = Depends(get_db)):
    return account_service.close(db, account_id, payload.reason, effective_at=payload.effective_at)


@router.get("/{account_id}/tier", response_model=TierInfoOut)
def get_tier(account_id: UUID, db: Session = Depends(get_db)):
    return account_service.get_tier(db, account_id)


@router.get("/{account_id}/history", response_model=HistoryOut)
def get_history(account_id: UUID, limit: int = 100, offset: int = 0, db: Session = Depends(get_db)):
    return ledger_service.get_history(db, account_id, offset=offset, limit=limit)


@router.get("/{account_id}/ledger-check", response_model=LedgerCheckOut)
def verify_ledger(account_id: UUID, db: Session = Depends(get_db)):
    return ledger_service.verify_ledger(db, account_id)
