import logging
import re
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from loyalty_ledger.errors import NotFoundError, PolicyViolationError, ValidationError
from loyalty_ledger.models.loyalty_program import LoyaltyProgram
from loyalty_ledger.schemas.loyalty_program import LoyaltyProgramCreate, LoyaltyProgramUpdate
from loyalty_ledger.services.clock import to_utc_naive, utcnow
from loyalty_ledger.services.tier_service import DEFAULT_BENEFITS_BY_TIER, TIERS


logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 50
MAX_ACCRUAL_RATE = Decimal("0.5")
MIN_POINT_VALUE = Decimal("0.01")
# three months, counted as 30-day months
MIN_PROGRAM_DURATION = timedelta(days=90)

SENSITIVE_MARKERS = (
    "dni",
    "ruc",
    "pasaporte",
    "passport",
    "password",
    "passwd",
    "contraseña",
    "tarjeta",
    "cuenta",
    "iban",
    "cvv",
)
_SENSITIVE_WORDS = re.compile(r"\b(" + "|".join(SENSITIVE_MARKERS) + r")\b")
# id documents (8+ digits), tax ids, card and bank account numbers
_LONG_DIGIT_RUN = re.compile(r"\d{8,}")


def validate_sensitive_data(serialized: str) -> None:
    text = serialized.lower()

    match = _SENSITIVE_WORDS.search(text)
    if match:
        raise PolicyViolationError(
            f"Sensitive information ({match.group(1)}) is not allowed in loyalty program data",
            rule="sensitive_data",
            details={"marker": match.group(1)},
        )

    if _LONG_DIGIT_RUN.search(text):
        raise PolicyViolationError(
            "Document or account-like numbers are not allowed in loyalty program data",
            rule="sensitive_data",
            details={"marker": "digit_sequence"},
        )


def validate_benefits(benefits_by_tier: dict | None) -> None:
    if not benefits_by_tier:
        return
    unknown = sorted(set(benefits_by_tier) - set(TIERS))
    if unknown:
        raise ValidationError(
            f"Invalid tiers in benefits_by_tier: {', '.join(unknown)}. Valid tiers are: {', '.join(TIERS)}",
            details={"invalid_tiers": unknown},
        )


def validate_program_fields(
    *,
    description: str,
    accrual_rate: Decimal,
    point_value: Decimal,
    start_date: datetime,
    end_date: datetime | None,
) -> None:
    # malformed input first, then regulatory rules
    if accrual_rate is None or accrual_rate < 0:
        raise ValidationError("accrual_rate must be >= 0", details={"field": "accrual_rate"})
    if point_value is None or point_value <= 0:
        raise ValidationError("point_value must be > 0", details={"field": "point_value"})
    if end_date is not None and end_date <= start_date:
        raise ValidationError(
            "end_date must be later than start_date",
            details={"field": "end_date"},
        )

    if not description or len(description.strip()) < MIN_DESCRIPTION_LENGTH:
        raise PolicyViolationError(
            f"Program description must be clear and detailed (at least {MIN_DESCRIPTION_LENGTH} characters)",
            rule="description_length",
            details={"length": len((description or "").strip())},
        )
    if accrual_rate > MAX_ACCRUAL_RATE:
        raise PolicyViolationError(
            f"accrual_rate cannot exceed {MAX_ACCRUAL_RATE}",
            rule="max_accrual_rate",
        )
    if point_value < MIN_POINT_VALUE:
        raise PolicyViolationError(
            f"point_value must be at least {MIN_POINT_VALUE}",
            rule="min_point_value",
        )
    if end_date is not None and end_date - start_date < MIN_PROGRAM_DURATION:
        raise PolicyViolationError(
            "Program must run for at least 3 months",
            rule="min_duration",
            details={"days": (end_date - start_date).days},
        )


def create_program(db: Session, payload: LoyaltyProgramCreate) -> LoyaltyProgram:
    if not (payload.company_id or "").strip():
        raise ValidationError("company_id is required", details={"field": "company_id"})
    if not (payload.name or "").strip():
        raise ValidationError("name is required", details={"field": "name"})

    start_date = to_utc_naive(payload.start_date) or utcnow()
    end_date = to_utc_naive(payload.end_date)

    validate_program_fields(
        description=payload.description,
        accrual_rate=payload.accrual_rate,
        point_value=payload.point_value,
        start_date=start_date,
        end_date=end_date,
    )
    validate_benefits(payload.benefits_by_tier)
    validate_sensitive_data(payload.model_dump_json(exclude={"company_id"}))

    program = LoyaltyProgram(
        company_id=payload.company_id,
        name=payload.name.strip(),
        description=payload.description.strip(),
        accrual_rate=payload.accrual_rate,
        point_value=payload.point_value,
        start_date=start_date,
        end_date=end_date,
        benefits_by_tier=payload.benefits_by_tier or DEFAULT_BENEFITS_BY_TIER,
        active=payload.active,
    )
    db.add(program)
    db.commit()
    db.refresh(program)

    logger.info(
        "loyalty program created",
        extra={"program_id": str(program.id), "company_id": program.company_id},
    )
    return program


def get_program(db: Session, program_id) -> LoyaltyProgram:
    program = db.query(LoyaltyProgram).filter(LoyaltyProgram.id == program_id).first()
    if not program:
        raise NotFoundError("LoyaltyProgram", program_id)
    return program


def list_programs(db: Session, company_id: str, active: bool | None = None):
    q = db.query(LoyaltyProgram).filter(LoyaltyProgram.company_id == company_id)
    if active is not None:
        q = q.filter(LoyaltyProgram.active.is_(active))
    return q.order_by(LoyaltyProgram.start_date.asc()).all()


def update_program(db: Session, program_id, payload: LoyaltyProgramUpdate) -> LoyaltyProgram:
    program = get_program(db, program_id)
    data = payload.model_dump(exclude_unset=True)

    if "start_date" in data:
        data["start_date"] = to_utc_naive(data["start_date"]) or program.start_date
    if "end_date" in data:
        data["end_date"] = to_utc_naive(data["end_date"])

    validate_program_fields(
        description=data.get("description", program.description),
        accrual_rate=data.get("accrual_rate", program.accrual_rate),
        point_value=data.get("point_value", program.point_value),
        start_date=data.get("start_date", program.start_date),
        end_date=data.get("end_date", program.end_date),
    )
    if "benefits_by_tier" in data:
        validate_benefits(data["benefits_by_tier"])
        if not data["benefits_by_tier"]:
            data["benefits_by_tier"] = DEFAULT_BENEFITS_BY_TIER
    validate_sensitive_data(payload.model_dump_json(exclude_unset=True))

    for k, v in data.items():
        setattr(program, k, v)

    db.commit()
    db.refresh(program)
    logger.info("loyalty program updated", extra={"program_id": str(program.id), "fields": sorted(data)})
    return program


def deactivate_program(db: Session, program_id) -> LoyaltyProgram:
    program = get_program(db, program_id)
    if program.active:
        program.active = False
        db.commit()
        db.refresh(program)
        logger.info("loyalty program deactivated", extra={"program_id": str(program.id)})
    return program


def is_within_validity_window(program: LoyaltyProgram, at_time: datetime) -> bool:
    at_time = to_utc_naive(at_time)
    if at_time < program.start_date:
        return False
    return program.end_date is None or at_time < program.end_date


def is_program_usable(program: LoyaltyProgram, at_time: datetime) -> bool:
    return bool(program.active) and is_within_validity_window(program, at_time)
