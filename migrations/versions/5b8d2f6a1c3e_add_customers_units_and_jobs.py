"""add customers, units, jobs and job items

Revision ID: 5b8d2f6a1c3e
Revises: 3e7a9c1d2b4f
Create Date: 2026-09-28

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "5b8d2f6a1c3e"
down_revision: Union[str, Sequence[str], None] = "3e7a9c1d2b4f"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=False),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=False),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    def _has_index(table: str, name: str) -> bool:
        try:
            return any(ix.get("name") == name for ix in insp.get_indexes(table))
        except Exception:
            return False

    if "customers" not in existing_tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("first_name", sa.Text(), nullable=False),
            sa.Column("last_name", sa.Text(), nullable=False),
            sa.Column("middle_initial", sa.String(length=1), nullable=True),
            sa.Column("address", sa.Text(), nullable=False),
            sa.Column("phone_number", sa.Text(), nullable=False),
            sa.Column("email", sa.Text(), nullable=False),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        existing_tables.add("customers")

    if "units" not in existing_tables:
        op.create_table(
            "units",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("brand", sa.Text(), nullable=False),
            sa.Column("model", sa.Text(), nullable=False),
            sa.Column("year", sa.Integer(), nullable=False),
            sa.Column("plate_number", sa.String(length=32), nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        )
        existing_tables.add("units")

    if "jobs" not in existing_tables:
        op.create_table(
            "jobs",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("unit_id", sa.Integer(), nullable=False),
            sa.Column("work_date", sa.Date(), nullable=False),
            sa.Column("duration_hours", sa.Float(), nullable=False),
            sa.Column("remarks", sa.Text(), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
            sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
            sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )
        existing_tables.add("jobs")

    if "job_items" not in existing_tables:
        op.create_table(
            "job_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("job_id", sa.Integer(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("products_used", sa.Text(), nullable=True),
            sa.Column(
                "created_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["job_id"], ["jobs.id"], ondelete="CASCADE"),
        )
        existing_tables.add("job_items")

    insp = inspect(op.get_bind())
    for table, idx_name, cols in (
        ("customers", "idx_customers_last_name", ["last_name", "first_name"]),
        ("customers", "idx_customers_email", ["email"]),
        ("customers", "idx_customers_created_at", ["created_at"]),
        ("units", "idx_units_customer_id", ["customer_id", "created_at"]),
        ("units", "idx_units_plate_number", ["plate_number"]),
        ("jobs", "idx_jobs_customer_id", ["customer_id", "work_date"]),
        ("jobs", "idx_jobs_unit_id", ["unit_id"]),
        ("job_items", "idx_job_items_job_id", ["job_id"]),
    ):
        if table in existing_tables and not _has_index(table, idx_name):
            op.create_index(idx_name, table, cols)


def downgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    for table in ("job_items", "jobs", "units", "customers"):
        if table in existing_tables:
            op.drop_table(table)
