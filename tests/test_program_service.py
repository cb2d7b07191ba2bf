import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from loyalty_ledger.errors import NotFoundError, PolicyViolationError, ValidationError
from loyalty_ledger.models.loyalty_program import LoyaltyProgram
from loyalty_ledger.schemas.loyalty_program import LoyaltyProgramUpdate
from loyalty_ledger.services import program_service
from loyalty_ledger.services.tier_service import DEFAULT_BENEFITS_BY_TIER


START = datetime(2026, 1, 1)


class TestCreateProgram:
    def test_create_valid_program(self, db, make_payload):
        program = program_service.create_program(db, make_payload(start_date=START, end_date=START + timedelta(days=365)))

        assert program.id is not None
        assert program.active is True
        assert program.accrual_rate == Decimal("0.01")
        assert program.benefits_by_tier == DEFAULT_BENEFITS_BY_TIER

    def test_end_before_start_is_validation_error(self, db, make_payload):
        with pytest.raises(ValidationError):
            program_service.create_program(db, make_payload(start_date=START, end_date=START - timedelta(days=1)))

    def test_two_month_window_is_policy_violation(self, db, make_payload):
        with pytest.raises(PolicyViolationError) as exc:
            program_service.create_program(db, make_payload(start_date=START, end_date=datetime(2026, 3, 1)))
        assert exc.value.rule == "min_duration"

    def test_three_month_window_is_accepted(self, db, make_payload):
        program = program_service.create_program(db, make_payload(start_date=START, end_date=datetime(2026, 4, 1)))
        assert program.end_date == datetime(2026, 4, 1)

    def test_short_description_rejected(self, db, make_payload):
        with pytest.raises(PolicyViolationError) as exc:
            program_service.create_program(db, make_payload(description="x" * 40))
        assert exc.value.rule == "description_length"

    def test_accrual_rate_above_half_rejected(self, db, make_payload):
        with pytest.raises(PolicyViolationError) as exc:
            program_service.create_program(db, make_payload(accrual_rate=Decimal("0.51")))
        assert exc.value.rule == "max_accrual_rate"

    def test_negative_accrual_rate_is_validation_error(self, db, make_payload):
        with pytest.raises(ValidationError):
            program_service.create_program(db, make_payload(accrual_rate=Decimal("-0.1")))

    def test_point_value_below_minimum_rejected(self, db, make_payload):
        with pytest.raises(PolicyViolationError) as exc:
            program_service.create_program(db, make_payload(point_value=Decimal("0.005")))
        assert exc.value.rule == "min_point_value"

    @pytest.mark.parametrize(
        "name",
        ["Rewards for password holders", "Program DNI bonus", "Card 4111111111111111 club"],
    )
    def test_sensitive_data_is_policy_violation(self, db, make_payload, name):
        with pytest.raises(PolicyViolationError) as exc:
            program_service.create_program(db, make_payload(name=name))
        assert exc.value.rule == "sensitive_data"

    def test_unknown_benefit_tier_rejected(self, db, make_payload):
        with pytest.raises(ValidationError):
            program_service.create_program(db, make_payload(benefits_by_tier={"GOLD": {"discount": 5}}))

    def test_nothing_persisted_on_rejection(self, db, make_payload):
        with pytest.raises(PolicyViolationError):
            program_service.create_program(db, make_payload(description="too short"))
        assert program_service.list_programs(db, "acme") == []


class TestProgramLookupAndUpdate:
    def test_get_missing_program(self, db):
        with pytest.raises(NotFoundError):
            program_service.get_program(db, uuid.UUID(int=0))

    def test_update_reapplies_policy(self, db, program):
        with pytest.raises(PolicyViolationError):
            program_service.update_program(db, program.id, LoyaltyProgramUpdate(accrual_rate=Decimal("0.9")))

        updated = program_service.update_program(db, program.id, LoyaltyProgramUpdate(accrual_rate=Decimal("0.05")))
        assert updated.accrual_rate == Decimal("0.05")

    def test_deactivate_is_soft(self, db, program):
        program_service.deactivate_program(db, program.id)

        reloaded = program_service.get_program(db, program.id)
        assert reloaded.active is False
        assert program_service.list_programs(db, "acme", active=False)[0].id == program.id


class TestValidityWindow:
    def test_open_ended_program(self, db, make_program):
        program = make_program(start_date=START, end_date=None)
        assert program_service.is_within_validity_window(program, datetime(2099, 1, 1))
        assert not program_service.is_within_validity_window(program, START - timedelta(seconds=1))

    def test_window_is_half_open(self, db, make_program):
        end = START + timedelta(days=120)
        program = make_program(start_date=START, end_date=end)
        assert program_service.is_within_validity_window(program, START)
        assert program_service.is_within_validity_window(program, end - timedelta(seconds=1))
        assert not program_service.is_within_validity_window(program, end)


class TestSchemaConstraints:
    def test_rate_and_point_value_are_checked_by_the_database(self, db, program):
        names = {c.name for c in LoyaltyProgram.__table__.constraints}
        assert {"ck_loyalty_programs_accrual_rate", "ck_loyalty_programs_point_value"} <= names

        row = db.query(LoyaltyProgram).filter(LoyaltyProgram.id == program.id).one()
        row.accrual_rate = Decimal("0.75")
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
