from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.schemas.movement import (
    AdjustRequest,
    BatchOperation,
    BatchResultOut,
    EarnRequest,
    ExpireRequest,
    MovementOut,
    RedeemRequest,
)
from loyalty_ledger.services.movement_service import MovementService, default_movement_service


router = APIRouter(tags=["movements"])


def get_movement_service() -> MovementService:
    return default_movement_service


@router.post("/accounts/{account_id}/earn", response_model=MovementOut)
def earn(
    account_id: UUID,
    payload: EarnRequest,
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    return service.earn(db, account_id, payload.purchase_amount, reference=payload.reference)


@router.post("/accounts/{account_id}/redeem", response_model=MovementOut)
def redeem(
    account_id: UUID,
    payload: RedeemRequest,
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    return service.redeem(db, account_id, payload.points, payload.reason)


@router.post("/accounts/{account_id}/adjust", response_model=MovementOut)
def adjust(
    account_id: UUID,
    payload: AdjustRequest,
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    return service.adjust(db, account_id, payload.delta, payload.reason)


@router.post("/accounts/{account_id}/expire", response_model=MovementOut)
def expire(
    account_id: UUID,
    payload: ExpireRequest,
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    return service.expire(db, account_id, payload.amount, payload.reason)


@router.post("/movements/batch", response_model=BatchResultOut)
def process_batch(
    operations: list[BatchOperation],
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    return service.process_batch(db, operations)
