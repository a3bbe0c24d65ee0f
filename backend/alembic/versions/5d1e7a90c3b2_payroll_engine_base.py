"""payroll_engine_base: employees, attendance, advances, deductions, payrolls

- UUID PKs (sa.Uuid: native uuid on PostgreSQL, CHAR(32) elsewhere)
- JSONB snapshot columns on PostgreSQL, JSON elsewhere
- Enums stored as VARCHAR + CHECK (native_enum=False) to match the ORM models
- one payroll per employee per month: uq_payroll_employee_period
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql import func

# --- Alembic headers ---------------------------------------------------------
revision: str = "5d1e7a90c3b2"
down_revision: str | None = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

# --- Enumerations ------------------------------------------------------------
employment_type = sa.Enum("monthly", "daily", "hourly", name="employment_type", native_enum=False)
attendance_status = sa.Enum(
    "present", "absent", "late", "half_day", "leave", "weekly_off",
    name="attendance_status", native_enum=False,
)
advance_status = sa.Enum(
    "pending", "approved", "rejected", "paid", "completed",
    name="advance_status", native_enum=False,
)
deduction_type = sa.Enum(
    "absence", "late", "penalty", "loan", "insurance", "tax", "other",
    name="deduction_type", native_enum=False,
)
payroll_status = sa.Enum(
    "draft", "pending", "approved", "paid", "locked",
    name="payroll_status", native_enum=False,
)


def _money(name: str, precision: int = 12, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.Numeric(precision, 2), nullable=True)
    return sa.Column(name, sa.Numeric(precision, 2), nullable=False, server_default="0")


def upgrade() -> None:
    # employees ---------------------------------------------------------------
    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("department", sa.String(length=120), nullable=True),
        sa.Column("position", sa.String(length=120), nullable=True),
        sa.Column("employment_type", employment_type, nullable=False),
        _money("monthly_rate", nullable=True),
        _money("daily_rate", nullable=True),
        _money("hourly_rate", nullable=True),
        sa.Column("overtime_multiplier", sa.Numeric(6, 3), nullable=True),
        _money("allowance_transport"),
        _money("allowance_food"),
        _money("allowance_housing"),
        sa.Column("commission_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("commission_rate", sa.Numeric(6, 3), nullable=False, server_default="0"),
        _money("commission_target"),
        sa.Column("meta", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
    )

    # attendance_records ------------------------------------------------------
    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("status", attendance_status, nullable=False),
        sa.Column("check_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_hours", sa.Numeric(6, 2), nullable=False, server_default="0"),
        sa.Column("regular_hours", sa.Numeric(6, 2), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Numeric(6, 2), nullable=False, server_default="0"),
        sa.Column("late_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("excused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_date"),
    )
    op.create_index("ix_attendance_records_employee_id", "attendance_records", ["employee_id"])

    # advances ----------------------------------------------------------------
    op.create_table(
        "advances",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        _money("amount"),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("request_date", sa.Date(), nullable=True),
        sa.Column("status", advance_status, nullable=False, server_default="pending"),
        sa.Column("installments", sa.Integer(), nullable=False, server_default="1"),
        _money("amount_per_month"),
        _money("total_paid"),
        _money("remaining_amount"),
        sa.Column("deduction_history", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
    )
    op.create_index("ix_advances_employee_id", "advances", ["employee_id"])

    # deductions --------------------------------------------------------------
    op.create_table(
        "deductions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", deduction_type, nullable=False),
        _money("amount"),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
    )
    op.create_index("ix_deductions_employee_id", "deductions", ["employee_id"])
    op.create_index("ix_deductions_month", "deductions", ["month"])

    # payrolls ----------------------------------------------------------------
    op.create_table(
        "payrolls",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("payroll_id", sa.String(length=64), nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("employee_name", sa.String(length=200), nullable=True),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("status", payroll_status, nullable=False, server_default="draft"),
        sa.Column("employee_snapshot", JSONType, nullable=False),
        sa.Column("attendance", JSONType, nullable=False),
        sa.Column("earnings", JSONType, nullable=False),
        sa.Column("deductions", JSONType, nullable=False),
        sa.Column("summary", JSONType, nullable=False),
        sa.Column("workflow", JSONType, nullable=False),
        sa.Column("revisions", JSONType, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _money("gross_salary", 14),
        _money("total_deductions", 14),
        _money("net_salary", 14),
        _money("paid_amount", 14),
        _money("unpaid_balance", 14),
        _money("carried_forward_to_next", 14),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("employee_id", "month", "year", name="uq_payroll_employee_period"),
    )
    op.create_index("ix_payrolls_payroll_id", "payrolls", ["payroll_id"])
    op.create_index("ix_payrolls_employee_id", "payrolls", ["employee_id"])
    op.create_index("ix_payrolls_status", "payrolls", ["status"])


def downgrade() -> None:
    op.drop_index("ix_payrolls_status", table_name="payrolls")
    op.drop_index("ix_payrolls_employee_id", table_name="payrolls")
    op.drop_index("ix_payrolls_payroll_id", table_name="payrolls")
    op.drop_table("payrolls")
    op.drop_index("ix_deductions_month", table_name="deductions")
    op.drop_index("ix_deductions_employee_id", table_name="deductions")
    op.drop_table("deductions")
    op.drop_index("ix_advances_employee_id", table_name="advances")
    op.drop_table("advances")
    op.drop_index("ix_attendance_records_employee_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_table("employees")
