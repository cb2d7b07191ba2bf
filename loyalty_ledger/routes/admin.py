from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.routes.movements import get_movement_service
from loyalty_ledger.services.expiration_runner import run_expiration_sweep
from loyalty_ledger.services.movement_service import MovementService


router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/expiration-sweep")
def trigger_expiration_sweep(
    inactivity_days: int | None = None,
    db: Session = Depends(get_db),
    service: MovementService = Depends(get_movement_service),
):
    stats = run_expiration_sweep(db, service=service, inactivity_days=inactivity_days)
    return asdict(stats)
