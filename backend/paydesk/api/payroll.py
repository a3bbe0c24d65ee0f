# backend/paydesk/api/payroll.py
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python
from sqlalchemy.orm import Session

from paydesk.dependencies import get_actor, get_db
from paydesk.models.payroll import Advance, AttendanceRecord, Deduction, Employee
from paydesk.schemas.payroll import (
    AdvanceStatus,
    AttendanceStatus,
    FieldChange,
    ManualDeductionType,
    PayrollStatus,
    PayType,
)
from paydesk.services import payroll_store as store
from paydesk.services.payroll_errors import (
    DuplicatePeriodError,
    PayrollError,
    PayrollNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payroll", tags=["payroll"])

# ----------------------------- helpers ----------------------------- #

def _out(obj: Any) -> Any:
    # Decimals are serialised as strings so money keeps its cents exactly
    return to_jsonable_python(obj)


def _http_error(e: PayrollError) -> HTTPException:
    if isinstance(e, PayrollNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DuplicatePeriodError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _employee_out(emp: Employee) -> Dict[str, Any]:
    return _out(
        {
            "id": emp.id,
            "code": emp.code,
            "name": emp.name,
            "active": emp.active,
            "department": emp.department,
            "position": emp.position,
            "employment_type": emp.employment_type,
            "monthly_rate": emp.monthly_rate,
            "daily_rate": emp.daily_rate,
            "hourly_rate": emp.hourly_rate,
            "overtime_multiplier": emp.overtime_multiplier,
            "allowances": {
                "transport": emp.allowance_transport,
                "food": emp.allowance_food,
                "housing": emp.allowance_housing,
            },
            "meta": emp.meta or {},
        }
    )


def _require_employee(db: Session, employee_id: UUID) -> Employee:
    emp = db.get(Employee, employee_id)
    if not emp:
        raise HTTPException(status_code=404, detail="Employee not found")
    return emp

# ----------------------------- reference data ----------------------------- #

class EmployeeCreate(BaseModel):
    code: str
    name: str
    active: bool = True
    department: Optional[str] = None
    position: Optional[str] = None
    employment_type: PayType
    monthly_rate: Optional[Decimal] = Field(None, ge=0)
    daily_rate: Optional[Decimal] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    overtime_multiplier: Optional[Decimal] = Field(None, gt=0)
    allowance_transport: Decimal = Field(Decimal("0"), ge=0)
    allowance_food: Decimal = Field(Decimal("0"), ge=0)
    allowance_housing: Decimal = Field(Decimal("0"), ge=0)
    commission_enabled: bool = False
    commission_rate: Decimal = Field(Decimal("0"), ge=0)
    commission_target: Decimal = Field(Decimal("0"), ge=0)
    meta: Dict[str, Any] = {}

@router.post("/employees")
def api_create_employee(payload: EmployeeCreate, db: Session = Depends(get_db)):
    emp = Employee(**payload.model_dump())
    db.add(emp)
    db.commit()
    db.refresh(emp)
    return _employee_out(emp)

class AttendanceCreate(BaseModel):
    employee_id: UUID
    date: date
    status: AttendanceStatus
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    total_hours: Decimal = Field(Decimal("0"), ge=0)
    regular_hours: Decimal = Field(Decimal("0"), ge=0)
    overtime_hours: Decimal = Field(Decimal("0"), ge=0)
    late_minutes: int = Field(0, ge=0)
    excused: bool = False
    reason: Optional[str] = None
    notes: Optional[str] = None

@router.post("/attendance")
def api_record_attendance(payload: AttendanceCreate, db: Session = Depends(get_db)):
    _require_employee(db, payload.employee_id)
    data = payload.model_dump()
    data["work_date"] = data.pop("date")
    row = AttendanceRecord(**data)
    db.add(row)
    db.commit()
    db.refresh(row)
    return _out({"id": row.id, "employee_id": row.employee_id, "date": row.work_date, "status": row.status})

class AdvanceCreate(BaseModel):
    employee_id: UUID
    amount: Decimal = Field(..., gt=0)
    reason: str = ""
    request_date: Optional[date] = None
    status: AdvanceStatus = "approved"
    installments: int = Field(1, ge=1)
    amount_per_month: Optional[Decimal] = Field(None, gt=0)

@router.post("/advances")
def api_create_advance(payload: AdvanceCreate, db: Session = Depends(get_db)):
    _require_employee(db, payload.employee_id)
    per_month = payload.amount_per_month or (payload.amount / payload.installments).quantize(Decimal("0.01"))
    row = Advance(
        employee_id=payload.employee_id,
        amount=payload.amount,
        reason=payload.reason,
        request_date=payload.request_date,
        status=payload.status,
        installments=payload.installments,
        amount_per_month=per_month,
        total_paid=Decimal("0"),
        remaining_amount=payload.amount,
        deduction_history=[],
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _out(store.advance_record(row))

@router.get("/advances/{advance_id}")
def api_get_advance(advance_id: UUID, db: Session = Depends(get_db)):
    row = db.get(Advance, advance_id)
    if not row:
        raise HTTPException(status_code=404, detail="Advance not found")
    return _out(store.advance_record(row))

class DeductionCreate(BaseModel):
    employee_id: UUID
    type: ManualDeductionType
    amount: Decimal = Field(..., gt=0)
    reason: str = ""
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")

@router.post("/deductions")
def api_create_deduction(payload: DeductionCreate, db: Session = Depends(get_db)):
    _require_employee(db, payload.employee_id)
    if payload.type in ("absence", "late"):
        raise HTTPException(status_code=400, detail=f"'{payload.type}' deductions are computed from attendance")
    row = Deduction(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    return _out(store.manual_deduction(row))

# ----------------------------- generation ----------------------------- #

class GenerateIn(BaseModel):
    employee_id: UUID
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)

@router.post("/generate", status_code=201)
def api_generate_payroll(
    payload: GenerateIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        record = store.generate_payroll(
            db,
            employee_id=payload.employee_id,
            month=payload.month,
            year=payload.year,
            created_by=actor,
        )
    except PayrollError as e:
        raise _http_error(e)
    return _out(record)

class BulkGenerateIn(BaseModel):
    employee_ids: List[UUID] = Field(..., min_length=1)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)

@router.post("/generate/bulk")
def api_bulk_generate(
    payload: BulkGenerateIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        res = store.bulk_generate_payrolls(
            db,
            employee_ids=payload.employee_ids,
            month=payload.month,
            year=payload.year,
            created_by=actor,
        )
    except PayrollError as e:
        raise _http_error(e)
    return _out(
        {
            "generated": len(res["results"]),
            "failed": len(res["errors"]),
            "results": res["results"],
            "errors": res["errors"],
        }
    )

# ----------------------------- queries ----------------------------- #

@router.get("")
def api_list_payrolls(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[UUID] = Query(None),
    status: Optional[PayrollStatus] = Query(None),
    db: Session = Depends(get_db),
):
    try:
        rows = store.list_payrolls(db, month=month, year=year, employee_id=employee_id, status=status)
    except PayrollError as e:
        raise _http_error(e)
    return _out(rows)

@router.get("/stats")
def api_payroll_stats(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    try:
        return _out(store.payroll_stats(db, month=month, year=year))
    except PayrollError as e:
        raise _http_error(e)

@router.get("/summary")
def api_payroll_summary(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    db: Session = Depends(get_db),
):
    return _out(store.payroll_summary(db, month=month, year=year))

@router.get("/employee/{employee_id}/history")
def api_employee_history(employee_id: UUID, db: Session = Depends(get_db)):
    try:
        return _out(store.employee_payroll_history(db, employee_id))
    except PayrollError as e:
        raise _http_error(e)

@router.get("/{payroll_id}")
def api_get_payroll(payroll_id: UUID, db: Session = Depends(get_db)):
    try:
        return _out(store.get_payroll(db, payroll_id))
    except PayrollError as e:
        raise _http_error(e)

# ----------------------------- workflow ----------------------------- #

class EditIn(BaseModel):
    changes: List[FieldChange] = Field(..., min_length=1)
    reason: Optional[str] = None

@router.patch("/{payroll_id}")
def api_edit_payroll(
    payroll_id: UUID,
    payload: EditIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        record, revision = store.edit_payroll(
            db, payroll_id, changes=payload.changes, reason=payload.reason, edited_by=actor
        )
    except PayrollError as e:
        raise _http_error(e)
    return _out({"payroll": record, "revision": revision})

class ApproveIn(BaseModel):
    notes: Optional[str] = None

@router.post("/{payroll_id}/approve")
def api_approve_payroll(
    payroll_id: UUID,
    payload: Optional[ApproveIn] = Body(None),
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        return _out(store.approve_payroll(db, payroll_id, approved_by=actor, notes=payload.notes if payload else None))
    except PayrollError as e:
        raise _http_error(e)

class PayIn(BaseModel):
    amount: Decimal = Field(..., ge=0)
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None

@router.post("/{payroll_id}/pay")
def api_pay_payroll(
    payroll_id: UUID,
    payload: PayIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        record = store.pay_payroll(
            db,
            payroll_id,
            amount=payload.amount,
            paid_by=actor,
            method=payload.payment_method,
            reference=payload.payment_reference,
        )
    except PayrollError as e:
        raise _http_error(e)
    return _out(record)

class ReasonIn(BaseModel):
    reason: Optional[str] = None

@router.post("/{payroll_id}/lock")
def api_lock_payroll(
    payroll_id: UUID,
    payload: Optional[ReasonIn] = Body(None),
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        return _out(store.lock_payroll(db, payroll_id, locked_by=actor, reason=payload.reason if payload else None))
    except PayrollError as e:
        raise _http_error(e)

@router.post("/{payroll_id}/unlock")
def api_unlock_payroll(
    payroll_id: UUID,
    payload: Optional[ReasonIn] = Body(None),
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        record = store.unlock_payroll(db, payroll_id, reason=payload.reason if payload else None)
    except PayrollError as e:
        raise _http_error(e)
    logger.info("unlock payroll=%s by=%s", record.payroll_id, actor)
    return _out(record)

@router.delete("/{payroll_id}")
def api_delete_payroll(
    payroll_id: UUID,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    try:
        store.delete_payroll(db, payroll_id)
    except PayrollError as e:
        raise _http_error(e)
    return {"deleted": True, "id": str(payroll_id)}
