"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.BIGINT().with_variant(sa.Integer(), "sqlite"), autoincrement=True, nullable=False),
        sa.Column("patient_code", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=20), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("day_type", sa.String(length=10), nullable=False),
        sa.Column("total_day", sa.Integer(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("contact", sa.String(length=30), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_patients_patient_code", "patients", ["patient_code"], unique=True)

    op.create_table(
        "registrations",
        sa.Column("id", sa.BIGINT().with_variant(sa.Integer(), "sqlite"), autoincrement=True, nullable=False),
        sa.Column("patient_id", sa.BIGINT().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.Column("doctor_name", sa.String(length=255), nullable=True),
        sa.Column("hospital_name", sa.String(length=255), nullable=True),
        sa.Column("bill_no", sa.String(length=50), nullable=True),
        sa.Column("tpa", sa.Boolean(), nullable=False),
        sa.Column("discount_amount", sa.Float(), nullable=False),
        sa.Column("amount_paid", sa.Float(), nullable=False),
        sa.Column("tests_json", sa.Text(), nullable=False),
        sa.Column("results_json", sa.Text(), nullable=False),
        sa.Column("payment_history_json", sa.Text(), nullable=True),
        sa.Column("registration_time", sa.DateTime(), nullable=False),
        sa.Column("sample_collected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_registrations_patient_id", "registrations", ["patient_id"], unique=False)
    op.create_index("ix_registrations_registration_time", "registrations", ["registration_time"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_registrations_registration_time", table_name="registrations")
    op.drop_index("ix_registrations_patient_id", table_name="registrations")
    op.drop_table("registrations")
    op.drop_index("ix_patients_patient_code", table_name="patients")
    op.drop_table("patients")
