# backend/paydesk/models/payroll.py
"""
Payroll ORM models for Paydesk.

Tables:
- employees            (compensation profile)
- attendance_records   (one row per employee per recorded day)
- advances             (salary advances + repayment ledger)
- deductions           (manual deductions, one calculation month each)
- payrolls             (one computed payroll per employee per month)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from paydesk.db import Base


# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")


# ---------- Enums (stored as VARCHAR + CHECK so sqlite and postgres agree) ----------
EmploymentType = Enum(
    "monthly", "daily", "hourly", name="employment_type", native_enum=False
)
AttendanceStatusType = Enum(
    "present", "absent", "late", "half_day", "leave", "weekly_off",
    name="attendance_status", native_enum=False,
)
AdvanceStatusType = Enum(
    "pending", "approved", "rejected", "paid", "completed",
    name="advance_status", native_enum=False,
)
DeductionType = Enum(
    "absence", "late", "penalty", "loan", "insurance", "tax", "other",
    name="deduction_type", native_enum=False,
)
PayrollStatusType = Enum(
    "draft", "pending", "approved", "paid", "locked",
    name="payroll_status", native_enum=False,
)


# --------------------------------- MODELS --------------------------------- #

class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    department: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    # Pay & rates
    employment_type: Mapped[str] = mapped_column(EmploymentType, nullable=False)
    monthly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    daily_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    overtime_multiplier: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3), nullable=True)

    # Fixed monthly allowances
    allowance_transport: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    allowance_food: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    allowance_housing: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    # Commission settings (carried on the payroll, not computed)
    commission_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=0)
    commission_target: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    attendance: Mapped[list["AttendanceRecord"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan"
    )
    advances: Mapped[list["Advance"]] = relationship(
        back_populates="employee", cascade="all, delete-orphan"
    )
    payrolls: Mapped[list["Payroll"]] = relationship(back_populates="employee")

    def __repr__(self) -> str:
        return f"<Employee {self.code} {self.name}>"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    work_date: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[str] = mapped_column(AttendanceStatusType, nullable=False)
    check_in: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    total_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    regular_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=0)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    excused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    employee: Mapped["Employee"] = relationship(back_populates="attendance")

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.work_date} {self.status}>"


class Advance(Base):
    __tablename__ = "advances"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    request_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    status: Mapped[str] = mapped_column(AdvanceStatusType, nullable=False, default="pending")

    # Repayment plan + ledger
    installments: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    amount_per_month: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    deduction_history: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    employee: Mapped["Employee"] = relationship(back_populates="advances")

    def __repr__(self) -> str:
        return f"<Advance {self.id} {self.amount} remaining={self.remaining_amount}>"


class Deduction(Base):
    __tablename__ = "deductions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(DeductionType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # YYYY-MM
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Deduction {self.type} {self.amount} {self.month}>"


class Payroll(Base):
    __tablename__ = "payrolls"
    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="uq_payroll_employee_period"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payroll_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    employee_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(PayrollStatusType, nullable=False, default="draft", index=True)

    # Snapshot payload (see paydesk.schemas.payroll.PayrollRecord)
    employee_snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    attendance: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    earnings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    deductions: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    workflow: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    revisions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    # Denormalised totals for listing / stats queries
    gross_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    net_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    unpaid_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    carried_forward_to_next: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=func.now()
    )

    employee: Mapped["Employee"] = relationship(back_populates="payrolls")

    def __repr__(self) -> str:
        return f"<Payroll {self.payroll_id} {self.status} net={self.net_salary}>"
