# backend/paydesk/schemas/payroll.py
"""
Pydantic schemas for the Paydesk payroll engine.

Covers:
- Inputs: compensation profile, attendance entries, advances, manual deductions,
  the previous month's carry-forward
- Earnings / deductions breakdowns (typed line items, one model per category)
- Carry-forward details and the payroll summary
- The persisted payroll record (workflow metadata + revisions)

Notes:
- Keep string enums aligned with DB values used by paydesk.models.payroll.
- Monetary values use Decimal to avoid float rounding.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ------------------------- Enum Literals (string) ------------------------- #
PayType = Literal["monthly", "daily", "hourly"]

AttendanceStatus = Literal["present", "absent", "late", "half_day", "leave", "weekly_off"]

AdvanceStatus = Literal["pending", "approved", "rejected", "paid", "completed"]

ManualDeductionType = Literal["absence", "late", "penalty", "loan", "insurance", "tax", "other"]

PayrollStatus = Literal["draft", "pending", "approved", "paid", "locked"]

CarryCategory = Literal["mandatory", "attendance", "advance", "other"]

NonNegative = Annotated[Decimal, Field(ge=0)]

ZERO = Decimal("0")


# --------------------------- Compensation profile -------------------------- #
class Allowances(BaseModel):
    transport: NonNegative = ZERO
    food: NonNegative = ZERO
    housing: NonNegative = ZERO


class CommissionSettings(BaseModel):
    enabled: bool = False
    rate: NonNegative = ZERO
    target: NonNegative = ZERO


class CompensationProfile(BaseModel):
    employee_id: str = Field(..., min_length=1)
    employee_name: Optional[str] = None
    employment_type: PayType

    monthly_rate: Optional[NonNegative] = Field(None, description="Monthly basic rate (if monthly)")
    daily_rate: Optional[NonNegative] = Field(None, description="Daily basic rate (if daily)")
    hourly_rate: Optional[NonNegative] = Field(None, description="Hourly basic rate (if hourly)")
    overtime_multiplier: Optional[NonNegative] = None

    allowances: Allowances = Field(default_factory=Allowances)
    commission: CommissionSettings = Field(default_factory=CommissionSettings)

    department: Optional[str] = None
    position: Optional[str] = None


# ------------------------------- Attendance ------------------------------- #
class AttendanceEntry(BaseModel):
    date: date
    status: AttendanceStatus
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None

    total_hours: NonNegative = ZERO
    regular_hours: NonNegative = ZERO
    overtime_hours: NonNegative = ZERO
    late_minutes: int = Field(0, ge=0)

    excused: bool = False
    reason: Optional[str] = None
    notes: Optional[str] = None


class DailyRecord(BaseModel):
    date: date
    status: AttendanceStatus
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    hours: Decimal = ZERO
    overtime: Decimal = ZERO
    late_minutes: int = 0
    excused: bool = False
    reason: Optional[str] = None
    notes: Optional[str] = None


class AttendanceSummary(BaseModel):
    total_days: int = 0
    working_days: int = 0
    present: int = 0
    absent: int = 0
    absence_excused: int = 0
    absence_unexcused: int = 0
    late: int = 0
    late_excused: int = 0
    late_unexcused: int = 0
    leaves: int = 0
    half_days: int = 0
    weekly_offs: int = 0
    total_hours: Decimal = ZERO
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    daily_records: List[DailyRecord] = Field(default_factory=list)

    @property
    def days_present(self) -> int:
        return self.present


# -------------------------------- Advances -------------------------------- #
class RepaymentPlan(BaseModel):
    installment_count: int = Field(1, ge=1)
    amount_per_month: NonNegative


class AdvanceDeductionEntry(BaseModel):
    month: str
    amount: NonNegative
    payroll_record_id: str
    date: Optional[datetime] = None


class AdvanceRecord(BaseModel):
    advance_id: str = Field(..., min_length=1)
    employee_id: Optional[str] = None
    original_amount: NonNegative
    reason: str = ""
    request_date: Optional[date] = None

    repayment_plan: RepaymentPlan
    total_paid: NonNegative = ZERO
    remaining_amount: NonNegative = ZERO

    status: AdvanceStatus = "pending"
    deduction_history: List[AdvanceDeductionEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _derive_remaining(self) -> "AdvanceRecord":
        if self.total_paid > self.original_amount:
            raise ValueError("total_paid cannot exceed original_amount")
        self.remaining_amount = self.original_amount - self.total_paid
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ("approved", "paid") and self.remaining_amount > 0


# ---------------------------- Manual deductions --------------------------- #
class ManualDeduction(BaseModel):
    deduction_id: Optional[str] = None
    type: ManualDeductionType
    amount: NonNegative
    reason: str = ""
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


# -------------------------------- Earnings -------------------------------- #
class BasicPay(BaseModel):
    amount: NonNegative = ZERO
    rate: NonNegative = ZERO
    days: int = Field(0, ge=0)
    hours: NonNegative = ZERO
    calculation: str = ""


class AllowanceLine(BaseModel):
    kind: Literal["allowance"] = "allowance"
    type: str
    name: str
    amount: NonNegative
    reason: str = "Fixed monthly allowance"
    is_fixed: bool = True


class OvertimeDetail(BaseModel):
    date: date
    hours: NonNegative
    amount: NonNegative
    reason: str = "Overtime"


class Overtime(BaseModel):
    hours: NonNegative = ZERO
    rate: NonNegative = ZERO
    amount: NonNegative = ZERO
    calculation: str = ""
    reason: str = "Approved overtime hours"
    details: List[OvertimeDetail] = Field(default_factory=list)


class Commission(BaseModel):
    enabled: bool = False
    sales_amount: NonNegative = ZERO
    rate: NonNegative = ZERO
    target: NonNegative = ZERO
    amount: NonNegative = ZERO
    exceeded: bool = False
    exceedance_bonus: NonNegative = ZERO
    calculation: str = ""
    reason: str = "Monthly sales commission"


class BonusLine(BaseModel):
    kind: Literal["bonus"] = "bonus"
    type: str = "bonus"
    amount: NonNegative
    reason: str = ""


class Tips(BaseModel):
    amount: NonNegative = ZERO
    reason: str = ""
    distribution_method: str = "individual"


class Earnings(BaseModel):
    basic: BasicPay = Field(default_factory=BasicPay)
    allowances: List[AllowanceLine] = Field(default_factory=list)
    allowances_total: Decimal = ZERO
    overtime: Overtime = Field(default_factory=Overtime)
    commission: Commission = Field(default_factory=Commission)
    bonuses: List[BonusLine] = Field(default_factory=list)
    bonuses_total: Decimal = ZERO
    tips: Tips = Field(default_factory=Tips)
    total: Decimal = ZERO


# ------------------------------- Deductions ------------------------------- #
class MandatoryLine(BaseModel):
    kind: Literal["mandatory"] = "mandatory"
    code: Literal["insurance", "tax"]
    rate: NonNegative = ZERO
    base_amount: NonNegative = ZERO
    amount: NonNegative = ZERO
    calculation: str = ""
    reason: str = ""


class AttendanceLine(BaseModel):
    kind: Literal["attendance"] = "attendance"
    type: Literal["absence", "late"]
    date: date
    minutes: int = Field(0, ge=0)
    amount: NonNegative
    reason: str = ""
    excused: bool = False


class AdvanceLine(BaseModel):
    kind: Literal["advance"] = "advance"
    advance_id: str
    original_amount: Decimal = ZERO
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None
    amount: NonNegative
    remaining_after: Decimal = ZERO
    reason: str = ""
    is_carried_forward: bool = False


class ManualLine(BaseModel):
    kind: Literal["manual"] = "manual"
    deduction_id: Optional[str] = None
    type: str
    amount: NonNegative
    reason: str = ""
    is_carried_forward: bool = False
    carried_from: Optional[CarryCategory] = None


DeductionLine = Annotated[
    Union[MandatoryLine, AttendanceLine, AdvanceLine, ManualLine],
    Field(discriminator="kind"),
]


class Deductions(BaseModel):
    insurance: MandatoryLine = Field(default_factory=lambda: MandatoryLine(code="insurance"))
    tax: MandatoryLine = Field(default_factory=lambda: MandatoryLine(code="tax"))
    mandatory_total: Decimal = ZERO
    absence: List[AttendanceLine] = Field(default_factory=list)
    absence_total: Decimal = ZERO
    late: List[AttendanceLine] = Field(default_factory=list)
    late_total: Decimal = ZERO
    attendance_total: Decimal = ZERO
    advances: List[AdvanceLine] = Field(default_factory=list)
    advances_total: Decimal = ZERO
    penalties: List[ManualLine] = Field(default_factory=list)
    penalties_total: Decimal = ZERO
    other: List[ManualLine] = Field(default_factory=list)
    other_total: Decimal = ZERO
    total_requested: Decimal = ZERO
    # applied this month (after the carry-forward cascade)
    total: Decimal = ZERO


class DeductionTier(BaseModel):
    """One cascade tier: its category and the lines that make up its total."""
    category: CarryCategory
    reason: str
    lines: List[DeductionLine] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((ln.amount for ln in self.lines), Decimal("0.00"))


# ------------------------------ Carry-forward ------------------------------ #
class CarryforwardDetail(BaseModel):
    category: CarryCategory
    type: Optional[str] = None
    advance_id: Optional[str] = None
    original_amount: Decimal
    deducted_this_month: Decimal
    remaining_to_carryforward: Decimal
    reason: str = ""


class CarryforwardDetails(BaseModel):
    advances: List[CarryforwardDetail] = Field(default_factory=list)
    deductions: List[CarryforwardDetail] = Field(default_factory=list)

    def all(self) -> List[CarryforwardDetail]:
        return [*self.deductions, *self.advances]

    @property
    def total(self) -> Decimal:
        return sum((d.remaining_to_carryforward for d in self.all()), Decimal("0.00"))


class PreviousCarryforward(BaseModel):
    """What the prior month's record handed over to this month."""
    carried_forward_to_next: NonNegative = ZERO
    carryforward_details: CarryforwardDetails = Field(default_factory=CarryforwardDetails)


class PayrollSummary(BaseModel):
    gross_salary: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_deductions_requested: Decimal = ZERO
    net_salary: Decimal = ZERO
    paid_amount: Decimal = ZERO
    unpaid_balance: Decimal = ZERO
    carried_forward_from_previous: Decimal = ZERO
    carried_forward_to_next: Decimal = ZERO
    carryforward_details: CarryforwardDetails = Field(default_factory=CarryforwardDetails)


# ------------------------------- Computation ------------------------------- #
class EmployeeSnapshot(BaseModel):
    type: PayType
    monthly_rate: Optional[Decimal] = None
    daily_rate: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    overtime_multiplier: Optional[Decimal] = None
    allowances: Allowances = Field(default_factory=Allowances)
    department: Optional[str] = None
    position: Optional[str] = None


class PayrollRequest(BaseModel):
    profile: CompensationProfile
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    attendance: List[AttendanceEntry] = Field(default_factory=list)
    advances: List[AdvanceRecord] = Field(default_factory=list)
    manual_deductions: List[ManualDeduction] = Field(default_factory=list)
    previous: Optional[PreviousCarryforward] = None


class PayrollComputation(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_id: str
    employee_name: Optional[str] = None
    month: str  # "YYYY-MM"
    year: int
    employee_snapshot: EmployeeSnapshot
    attendance: AttendanceSummary
    earnings: Earnings
    deductions: Deductions
    summary: PayrollSummary


# ------------------------------ Payroll record ----------------------------- #
class WorkflowInfo(BaseModel):
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approval_notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    # set when a payment settles the record; any later edit clears it
    payment_confirmed: bool = False
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    lock_reason: Optional[str] = None
    unlock_reason: Optional[str] = None

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None


class FieldChange(BaseModel):
    field: str = Field(..., min_length=1)
    new_value: Any = None
    reason: Optional[str] = None


class RevisionChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None
    reason: Optional[str] = None


class Revision(BaseModel):
    revision_number: int
    date: datetime
    edited_by: Optional[str] = None
    changes: List[RevisionChange] = Field(default_factory=list)


class PayrollRecord(BaseModel):
    id: Optional[str] = None
    payroll_id: str
    employee_id: str
    employee_name: Optional[str] = None
    month: str
    year: int
    status: PayrollStatus = "draft"

    employee_snapshot: EmployeeSnapshot
    attendance: AttendanceSummary
    earnings: Earnings
    deductions: Deductions
    summary: PayrollSummary

    workflow: WorkflowInfo = Field(default_factory=WorkflowInfo)
    revisions: List[Revision] = Field(default_factory=list)
    notes: Optional[str] = None


__all__ = [
    "PayType",
    "AttendanceStatus",
    "AdvanceStatus",
    "ManualDeductionType",
    "PayrollStatus",
    "CarryCategory",
    "Allowances",
    "CommissionSettings",
    "CompensationProfile",
    "AttendanceEntry",
    "DailyRecord",
    "AttendanceSummary",
    "RepaymentPlan",
    "AdvanceDeductionEntry",
    "AdvanceRecord",
    "ManualDeduction",
    "BasicPay",
    "AllowanceLine",
    "OvertimeDetail",
    "Overtime",
    "Commission",
    "BonusLine",
    "Tips",
    "Earnings",
    "MandatoryLine",
    "AttendanceLine",
    "AdvanceLine",
    "ManualLine",
    "DeductionLine",
    "Deductions",
    "DeductionTier",
    "CarryforwardDetail",
    "CarryforwardDetails",
    "PreviousCarryforward",
    "PayrollSummary",
    "EmployeeSnapshot",
    "PayrollRequest",
    "PayrollComputation",
    "WorkflowInfo",
    "FieldChange",
    "RevisionChange",
    "Revision",
    "PayrollRecord",
]
