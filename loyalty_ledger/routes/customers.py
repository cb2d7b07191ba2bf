from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.schemas.customer import CustomerOut, CustomerUpsert
from loyalty_ledger.services.customer_service import get_customer, get_or_create_customer


router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("/{company_id}/{profile_id}", response_model=CustomerOut)
def read_customer(company_id: str, profile_id: str, db: Session = Depends(get_db)):
    customer = get_customer(db, company_id, profile_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer


@router.post("/upsert", response_model=CustomerOut)
def upsert_customer(payload: CustomerUpsert, db: Session = Depends(get_db)):
    customer = get_or_create_customer(
        db,
        payload.company_id,
        payload.profile_id,
        {"email": payload.email, "phone": payload.phone},
    )
    db.commit()
    db.refresh(customer)
    return customer
