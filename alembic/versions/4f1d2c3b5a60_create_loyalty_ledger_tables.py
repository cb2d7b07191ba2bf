"""create loyalty ledger tables

Revision ID: 4f1d2c3b5a60
Revises: 
Create Date: 2026-10-19 09:12:41.305118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1d2c3b5a60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("customers"):
        op.create_table(
            "customers",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("company_id", sa.String(length=50), nullable=False),
            sa.Column("profile_id", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("company_id", "profile_id", name="uq_customers_company_profile"),
        )

    if not inspector.has_table("loyalty_programs"):
        op.create_table(
            "loyalty_programs",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("company_id", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("accrual_rate", sa.Numeric(6, 4), nullable=False),
            sa.Column("point_value", sa.Numeric(12, 4), nullable=False),
            sa.Column("start_date", sa.TIMESTAMP(), nullable=False),
            sa.Column("end_date", sa.TIMESTAMP(), nullable=True),
            sa.Column("benefits_by_tier", sa.JSON(), nullable=False),
            sa.Column("active", sa.Boolean(), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.CheckConstraint("accrual_rate >= 0 AND accrual_rate <= 0.5", name="ck_loyalty_programs_accrual_rate"),
            sa.CheckConstraint("point_value >= 0.01", name="ck_loyalty_programs_point_value"),
        )
        op.create_index("ix_loyalty_programs_company_active", "loyalty_programs", ["company_id", "active"])

    if not inspector.has_table("loyalty_accounts"):
        op.create_table(
            "loyalty_accounts",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("program_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("loyalty_programs.id"), nullable=False),
            sa.Column("enrolled_at", sa.TIMESTAMP(), nullable=False),
            sa.Column("closed_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("close_reason", sa.String(length=200), nullable=True),
            sa.Column("current_balance", sa.Integer(), server_default="0", nullable=False),
            sa.Column("lifetime_earned", sa.Integer(), server_default="0", nullable=False),
            sa.Column("lifetime_redeemed", sa.Integer(), server_default="0", nullable=False),
            sa.Column("last_sequence", sa.Integer(), server_default="0", nullable=False),
            sa.Column("last_activity_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("tier_cache", sa.String(length=20), nullable=True),
            sa.Column("version", sa.Integer(), server_default="1", nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.CheckConstraint("current_balance >= 0", name="ck_loyalty_accounts_balance_non_negative"),
        )
        op.create_index(
            "uq_loyalty_accounts_customer_program_open",
            "loyalty_accounts",
            ["customer_id", "program_id"],
            unique=True,
            postgresql_where=sa.text("closed_at IS NULL"),
        )

    if not inspector.has_table("loyalty_movements"):
        op.create_table(
            "loyalty_movements",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("account_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("loyalty_accounts.id"), nullable=False),
            sa.Column("sequence", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("reference", sa.String(length=200), nullable=True),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("occurred_at", sa.TIMESTAMP(), nullable=False),
            sa.Column("balance_after", sa.Integer(), nullable=False),
            sa.UniqueConstraint("account_id", "sequence", name="uq_loyalty_movements_account_sequence"),
        )
        op.create_index(
            "ix_loyalty_movements_account_occurred",
            "loyalty_movements",
            ["account_id", "occurred_at"],
        )


def downgrade() -> None:
    """Downgrade schema."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if inspector.has_table("loyalty_movements"):
        op.drop_index("ix_loyalty_movements_account_occurred", table_name="loyalty_movements")
        op.drop_table("loyalty_movements")

    if inspector.has_table("loyalty_accounts"):
        op.drop_index("uq_loyalty_accounts_customer_program_open", table_name="loyalty_accounts")
        op.drop_table("loyalty_accounts")

    if inspector.has_table("loyalty_programs"):
        op.drop_index("ix_loyalty_programs_company_active", table_name="loyalty_programs")
        op.drop_table("loyalty_programs")

    if inspector.has_table("customers"):
        op.drop_table("customers")
