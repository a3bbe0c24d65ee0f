# backend/paydesk/services/payroll_store.py
"""
Database adapter around the payroll engine and workflow.

- generate_payroll: loads the employee's month (attendance, active advances,
  manual deductions, previous month's carry-forward), computes and stores a
  draft. (employee_id, month, year) is UNIQUE; a second attempt for the same
  period raises DuplicatePeriodError, including when two requests race.
- payroll_summary: month overview per active employee (gross, advances,
  other deductions, net, paid, unpaid, carried forward) with totals.
- workflow operations load the stored record, apply the transition from
  payroll_workflow and persist. `pay_payroll` writes the payroll and the
  advance ledgers in one transaction.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from paydesk.models.payroll import Advance, AttendanceRecord, Deduction, Employee, Payroll
from paydesk.schemas.payroll import (
    AdvanceDeductionEntry,
    AdvanceRecord,
    Allowances,
    AttendanceEntry,
    CommissionSettings,
    CompensationProfile,
    FieldChange,
    ManualDeduction,
    PayrollRecord,
    PayrollRequest,
    PreviousCarryforward,
    RepaymentPlan,
    Revision,
)
from paydesk.services.carryforward import allocate_deductions
from paydesk.services.deductions import deduction_tiers
from paydesk.services.money import ZERO, D, q2
from paydesk.services.payroll import (
    advance_settlements,
    carryforward_for_next,
    compute_payroll,
    month_bounds,
    month_key,
    previous_period,
)
from paydesk.services.payroll_errors import (
    AdvanceNotFoundError,
    DuplicatePeriodError,
    PayrollError,
    PayrollNotFoundError,
    PayrollValidationError,
)
from paydesk.services.payroll_policy import PayrollPolicy
from paydesk.services import payroll_workflow as wf

logger = logging.getLogger(__name__)

STATUSES = ("draft", "pending", "approved", "paid", "locked")


# ----------------------------- Row converters ----------------------------- #

def _uuid(value: Any, what: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise PayrollNotFoundError(f"{what} not found: {value}")


def employee_profile(emp: Employee) -> CompensationProfile:
    return CompensationProfile(
        employee_id=str(emp.id),
        employee_name=emp.name,
        employment_type=emp.employment_type,
        monthly_rate=emp.monthly_rate,
        daily_rate=emp.daily_rate,
        hourly_rate=emp.hourly_rate,
        overtime_multiplier=emp.overtime_multiplier,
        allowances=Allowances(
            transport=emp.allowance_transport or 0,
            food=emp.allowance_food or 0,
            housing=emp.allowance_housing or 0,
        ),
        commission=CommissionSettings(
            enabled=bool(emp.commission_enabled),
            rate=emp.commission_rate or 0,
            target=emp.commission_target or 0,
        ),
        department=emp.department,
        position=emp.position,
    )


def attendance_entry(row: AttendanceRecord) -> AttendanceEntry:
    return AttendanceEntry(
        date=row.work_date,
        status=row.status,
        check_in=row.check_in,
        check_out=row.check_out,
        total_hours=row.total_hours or 0,
        regular_hours=row.regular_hours or 0,
        overtime_hours=row.overtime_hours or 0,
        late_minutes=row.late_minutes or 0,
        excused=bool(row.excused),
        reason=row.reason,
        notes=row.notes,
    )


def advance_record(row: Advance) -> AdvanceRecord:
    return AdvanceRecord(
        advance_id=str(row.id),
        employee_id=str(row.employee_id),
        original_amount=row.amount,
        reason=row.reason or "",
        request_date=row.request_date,
        repayment_plan=RepaymentPlan(
            installment_count=row.installments or 1,
            amount_per_month=row.amount_per_month,
        ),
        total_paid=row.total_paid or 0,
        status=row.status,
        deduction_history=[AdvanceDeductionEntry.model_validate(h) for h in (row.deduction_history or [])],
    )


def manual_deduction(row: Deduction) -> ManualDeduction:
    return ManualDeduction(
        deduction_id=str(row.id),
        type=row.type,
        amount=row.amount,
        reason=row.reason or "",
        month=row.month,
    )


def record_from_row(row: Payroll) -> PayrollRecord:
    return PayrollRecord.model_validate(
        {
            "id": str(row.id),
            "payroll_id": row.payroll_id,
            "employee_id": str(row.employee_id),
            "employee_name": row.employee_name,
            "month": row.month,
            "year": row.year,
            "status": row.status,
            "employee_snapshot": row.employee_snapshot,
            "attendance": row.attendance,
            "earnings": row.earnings,
            "deductions": row.deductions,
            "summary": row.summary,
            "workflow": row.workflow or {},
            "revisions": row.revisions or [],
            "notes": row.notes,
        }
    )


def _write_record(row: Payroll, record: PayrollRecord) -> None:
    data = record.model_dump(mode="json")
    row.status = record.status
    row.employee_name = record.employee_name
    row.employee_snapshot = data["employee_snapshot"]
    row.attendance = data["attendance"]
    row.earnings = data["earnings"]
    row.deductions = data["deductions"]
    row.summary = data["summary"]
    row.workflow = data["workflow"]
    row.revisions = data["revisions"]
    row.notes = record.notes

    s = record.summary
    row.gross_salary = s.gross_salary
    row.total_deductions = s.total_deductions
    row.net_salary = s.net_salary
    row.paid_amount = s.paid_amount
    row.unpaid_balance = s.unpaid_balance
    row.carried_forward_to_next = s.carried_forward_to_next


def _write_advance(row: Advance, adv: AdvanceRecord) -> None:
    row.total_paid = adv.total_paid
    row.remaining_amount = adv.remaining_amount
    row.status = adv.status
    row.deduction_history = [h.model_dump(mode="json") for h in adv.deduction_history]


# -------------------------------- Loaders -------------------------------- #

def _get_employee(db: Session, employee_id: Any) -> Employee:
    emp = db.get(Employee, _uuid(employee_id, "Employee"))
    if not emp:
        raise PayrollNotFoundError(f"Employee not found: {employee_id}")
    return emp


def _get_row(db: Session, payroll_id: Any, *, for_update: bool = False) -> Payroll:
    q = db.query(Payroll).filter(Payroll.id == _uuid(payroll_id, "Payroll"))
    if for_update:
        q = q.with_for_update()
    row = q.first()
    if not row:
        raise PayrollNotFoundError(f"Payroll not found: {payroll_id}")
    return row


def _find_period(db: Session, employee_id: uuid.UUID, month: int, year: int) -> Optional[Payroll]:
    return (
        db.query(Payroll)
        .filter(
            Payroll.employee_id == employee_id,
            Payroll.month == month_key(month, year),
            Payroll.year == year,
        )
        .first()
    )


def _validate_period(month: Any, year: Any) -> None:
    if month is None or year is None:
        raise PayrollValidationError("month and year are required", field="month")
    if not (1 <= int(month) <= 12):
        raise PayrollValidationError(f"Invalid month: {month}", field="month")
    if not (2000 <= int(year) <= 2100):
        raise PayrollValidationError(f"Invalid year: {year}", field="year")


def _validate_filters(month: Optional[int], year: Optional[int]) -> None:
    if month is not None and year is None:
        raise PayrollValidationError("month filter requires year", field="year")


def load_payroll_request(db: Session, emp: Employee, month: int, year: int) -> PayrollRequest:
    """Collect every input the engine needs for one employee-month."""
    start, end = month_bounds(month, year)
    attendance = (
        db.query(AttendanceRecord)
        .filter(
            AttendanceRecord.employee_id == emp.id,
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date <= end,
        )
        .order_by(AttendanceRecord.work_date.asc())
        .all()
    )
    advances = (
        db.query(Advance)
        .filter(
            Advance.employee_id == emp.id,
            Advance.status.in_(("approved", "paid")),
            Advance.remaining_amount > 0,
        )
        .order_by(Advance.created_at.asc(), Advance.id.asc())
        .all()
    )
    manual = (
        db.query(Deduction)
        .filter(Deduction.employee_id == emp.id, Deduction.month == month_key(month, year))
        .order_by(Deduction.created_at.asc(), Deduction.id.asc())
        .all()
    )

    prev_month, prev_year = previous_period(month, year)
    prev_row = _find_period(db, emp.id, prev_month, prev_year)
    previous: Optional[PreviousCarryforward] = None
    if prev_row is not None and D((prev_row.summary or {}).get("carried_forward_to_next")) > 0:
        previous = carryforward_for_next(record_from_row(prev_row))

    return PayrollRequest(
        profile=employee_profile(emp),
        month=month,
        year=year,
        attendance=[attendance_entry(a) for a in attendance],
        advances=[advance_record(a) for a in advances],
        manual_deductions=[manual_deduction(d) for d in manual],
        previous=previous,
    )


# -------------------------------- Generate -------------------------------- #

def generate_payroll(
    db: Session,
    *,
    employee_id: Any,
    month: int,
    year: int,
    created_by: Optional[str],
    policy: Optional[PayrollPolicy] = None,
    require_active: bool = False,
) -> PayrollRecord:
    _validate_period(month, year)
    month, year = int(month), int(year)
    emp = _get_employee(db, employee_id)
    if require_active and not emp.active:
        raise PayrollValidationError(f"Employee {employee_id} is not active", field="employee_id")

    if _find_period(db, emp.id, month, year) is not None:
        raise DuplicatePeriodError(str(emp.id), month, year)

    computation = compute_payroll(load_payroll_request(db, emp, month, year), policy)
    row_id = uuid.uuid4()
    record = wf.open_record(computation, created_by=created_by, record_id=str(row_id))

    row = Payroll(
        id=row_id,
        payroll_id=record.payroll_id,
        employee_id=emp.id,
        month=record.month,
        year=record.year,
    )
    _write_record(row, record)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("duplicate payroll period employee=%s month=%s", emp.id, record.month)
        raise DuplicatePeriodError(str(emp.id), month, year)

    logger.info(
        "generate payroll=%s employee=%s gross=%s net=%s carried=%s",
        record.payroll_id, emp.id, record.summary.gross_salary,
        record.summary.net_salary, record.summary.carried_forward_to_next,
    )
    return record


def bulk_generate_payrolls(
    db: Session,
    *,
    employee_ids: Iterable[Any],
    month: int,
    year: int,
    created_by: Optional[str],
    policy: Optional[PayrollPolicy] = None,
) -> Dict[str, List[Any]]:
    _validate_period(month, year)
    results: List[PayrollRecord] = []
    errors: List[Dict[str, str]] = []
    for employee_id in employee_ids:
        try:
            results.append(
                generate_payroll(
                    db,
                    employee_id=employee_id,
                    month=month,
                    year=year,
                    created_by=created_by,
                    policy=policy,
                    require_active=True,
                )
            )
        except PayrollError as e:
            db.rollback()
            errors.append({"employee_id": str(employee_id), "error": str(e)})
    logger.info("bulk generate month=%s ok=%s failed=%s", month_key(month, year), len(results), len(errors))
    return {"results": results, "errors": errors}


# --------------------------------- Queries -------------------------------- #

def get_payroll(db: Session, payroll_id: Any) -> PayrollRecord:
    return record_from_row(_get_row(db, payroll_id))


def list_payrolls(
    db: Session,
    *,
    month: Optional[int] = None,
    year: Optional[int] = None,
    employee_id: Optional[Any] = None,
    status: Optional[str] = None,
) -> List[PayrollRecord]:
    _validate_filters(month, year)
    q = db.query(Payroll)
    if month is not None:
        q = q.filter(Payroll.month == month_key(month, year))
    if year is not None:
        q = q.filter(Payroll.year == year)
    if employee_id is not None:
        q = q.filter(Payroll.employee_id == _uuid(employee_id, "Employee"))
    if status:
        q = q.filter(Payroll.status == status)
    rows = q.order_by(Payroll.year.desc(), Payroll.month.desc(), Payroll.employee_name.asc()).all()
    return [record_from_row(r) for r in rows]


def employee_payroll_history(db: Session, employee_id: Any) -> Dict[str, Any]:
    emp = _get_employee(db, employee_id)
    rows = (
        db.query(Payroll)
        .filter(Payroll.employee_id == emp.id)
        .order_by(Payroll.year.desc(), Payroll.month.desc())
        .all()
    )
    stats = {
        "total_payrolls": len(rows),
        "total_gross": q2(sum((D(r.gross_salary) for r in rows), ZERO)),
        "total_deductions": q2(sum((D(r.total_deductions) for r in rows), ZERO)),
        "total_net": q2(sum((D(r.net_salary) for r in rows), ZERO)),
        "total_paid": q2(sum((D(r.paid_amount) for r in rows), ZERO)),
    }
    return {"payrolls": [record_from_row(r) for r in rows], "stats": stats}


def payroll_stats(db: Session, *, month: Optional[int] = None, year: Optional[int] = None) -> Dict[str, Any]:
    cols = [func.count(Payroll.id).label("total")]
    cols += [func.sum(case((Payroll.status == s, 1), else_=0)).label(s) for s in STATUSES]
    cols += [
        func.sum(Payroll.gross_salary).label("total_gross_salary"),
        func.sum(Payroll.total_deductions).label("total_deductions"),
        func.sum(Payroll.net_salary).label("total_net_salary"),
        func.sum(Payroll.paid_amount).label("total_paid"),
        func.sum(Payroll.unpaid_balance).label("total_unpaid"),
        func.sum(Payroll.carried_forward_to_next).label("total_carried_forward"),
    ]
    _validate_filters(month, year)
    q = db.query(*cols)
    if month is not None:
        q = q.filter(Payroll.month == month_key(month, year))
    if year is not None:
        q = q.filter(Payroll.year == year)
    row = q.one()._mapping

    out: Dict[str, Any] = {"total": int(row["total"] or 0)}
    for s in STATUSES:
        out[s] = int(row[s] or 0)
    for key in (
        "total_gross_salary",
        "total_deductions",
        "total_net_salary",
        "total_paid",
        "total_unpaid",
        "total_carried_forward",
    ):
        out[key] = q2(row[key] or 0)
    return out


def _summary_status(record: PayrollRecord) -> str:
    s = record.summary
    if record.workflow.payment_confirmed and s.unpaid_balance <= 0:
        return "paid"
    if s.paid_amount > 0:
        return "partial"
    return record.status


def payroll_summary(db: Session, *, month: int, year: int) -> Dict[str, Any]:
    """
    Month overview for every active employee, built from the stored records.

    Employees without a record for the month are listed as `not_generated`
    with zero amounts; they do not count towards the totals.
    """
    _validate_period(month, year)
    month, year = int(month), int(year)
    key = month_key(month, year)

    employees = (
        db.query(Employee)
        .filter(Employee.active.is_(True))
        .order_by(Employee.name.asc(), Employee.code.asc())
        .all()
    )
    rows = {
        r.employee_id: r
        for r in db.query(Payroll).filter(Payroll.month == key, Payroll.year == year).all()
    }

    totals = {
        "total_gross_salary": ZERO,
        "total_advances": ZERO,
        "total_other_deductions": ZERO,
        "total_deductions": ZERO,
        "total_net_salary": ZERO,
        "total_paid": ZERO,
        "total_unpaid": ZERO,
        "total_carried_forward": ZERO,
    }
    out: List[Dict[str, Any]] = []
    for emp in employees:
        entry: Dict[str, Any] = {
            "employee_id": str(emp.id),
            "employee_name": emp.name,
            "department": emp.department,
            "position": emp.position,
            "payroll_id": None,
            "gross_salary": ZERO,
            "advances": ZERO,
            "other_deductions": ZERO,
            "deductions": ZERO,
            "net_salary": ZERO,
            "paid_amount": ZERO,
            "unpaid_balance": ZERO,
            "carried_forward": ZERO,
            "status": "not_generated",
        }
        row = rows.get(emp.id)
        if row is not None:
            record = record_from_row(row)
            s = record.summary
            alloc = allocate_deductions(s.gross_salary, deduction_tiers(record.deductions))
            advances = q2(alloc.applied_by_category.get("advance", ZERO))
            entry.update(
                payroll_id=record.id,
                gross_salary=s.gross_salary,
                advances=advances,
                other_deductions=q2(s.total_deductions - advances),
                deductions=s.total_deductions,
                net_salary=s.net_salary,
                paid_amount=s.paid_amount,
                unpaid_balance=s.unpaid_balance,
                carried_forward=s.carried_forward_to_next,
                status=_summary_status(record),
            )
            totals["total_gross_salary"] += s.gross_salary
            totals["total_advances"] += advances
            totals["total_other_deductions"] += entry["other_deductions"]
            totals["total_deductions"] += s.total_deductions
            totals["total_net_salary"] += s.net_salary
            totals["total_paid"] += s.paid_amount
            totals["total_unpaid"] += s.unpaid_balance
            totals["total_carried_forward"] += s.carried_forward_to_next
        out.append(entry)

    return {
        "month": key,
        "year": year,
        "total_employees": len(out),
        "generated": sum(1 for e in out if e["payroll_id"] is not None),
        "statistics": {k: q2(v) for k, v in totals.items()},
        "employees": out,
    }


# -------------------------------- Workflow -------------------------------- #

def _save(db: Session, row: Payroll, record: PayrollRecord) -> PayrollRecord:
    _write_record(row, record)
    db.commit()
    db.refresh(row)
    return record_from_row(row)


def edit_payroll(
    db: Session,
    payroll_id: Any,
    *,
    changes: Iterable[FieldChange],
    reason: Optional[str],
    edited_by: Optional[str],
) -> tuple[PayrollRecord, Revision]:
    row = _get_row(db, payroll_id, for_update=True)
    record = record_from_row(row)
    revision = wf.edit_record(record, changes, edited_by=edited_by, reason=reason)
    return _save(db, row, record), revision


def approve_payroll(db: Session, payroll_id: Any, *, approved_by: Optional[str], notes: Optional[str] = None) -> PayrollRecord:
    row = _get_row(db, payroll_id, for_update=True)
    record = wf.approve_record(record_from_row(row), approved_by=approved_by, notes=notes)
    return _save(db, row, record)


def pay_payroll(
    db: Session,
    payroll_id: Any,
    *,
    amount: Decimal,
    paid_by: Optional[str],
    method: Optional[str] = None,
    reference: Optional[str] = None,
) -> PayrollRecord:
    row = _get_row(db, payroll_id, for_update=True)
    record = wf.pay_record(
        record_from_row(row), amount, paid_by=paid_by, method=method, reference=reference
    )

    try:
        advance_rows: Dict[str, Advance] = {}
        for advance_id in advance_settlements(record):
            try:
                adv_uuid = uuid.UUID(advance_id)
            except ValueError:
                raise AdvanceNotFoundError(advance_id)
            adv_row = (
                db.query(Advance)
                .filter(Advance.id == adv_uuid, Advance.employee_id == row.employee_id)
                .with_for_update()
                .first()
            )
            if adv_row is None:
                raise AdvanceNotFoundError(advance_id)
            advance_rows[advance_id] = adv_row

        ledgers = {k: advance_record(v) for k, v in advance_rows.items()}
        for adv in wf.settle_advances(record, ledgers):
            _write_advance(advance_rows[adv.advance_id], adv)

        _write_record(row, record)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(row)
    return record_from_row(row)


def lock_payroll(db: Session, payroll_id: Any, *, locked_by: Optional[str], reason: Optional[str] = None) -> PayrollRecord:
    row = _get_row(db, payroll_id, for_update=True)
    record = wf.lock_record(record_from_row(row), locked_by=locked_by, reason=reason)
    return _save(db, row, record)


def unlock_payroll(db: Session, payroll_id: Any, *, reason: Optional[str] = None) -> PayrollRecord:
    row = _get_row(db, payroll_id, for_update=True)
    record = wf.unlock_record(record_from_row(row), reason=reason)
    return _save(db, row, record)


def delete_payroll(db: Session, payroll_id: Any) -> None:
    row = _get_row(db, payroll_id, for_update=True)
    wf.ensure_deletable(record_from_row(row))
    db.delete(row)
    db.commit()
    logger.info("delete payroll=%s", row.payroll_id)


__all__ = [
    "employee_profile",
    "attendance_entry",
    "advance_record",
    "manual_deduction",
    "record_from_row",
    "load_payroll_request",
    "generate_payroll",
    "bulk_generate_payrolls",
    "get_payroll",
    "list_payrolls",
    "employee_payroll_history",
    "payroll_stats",
    "payroll_summary",
    "edit_payroll",
    "approve_payroll",
    "pay_payroll",
    "lock_payroll",
    "unlock_payroll",
    "delete_payroll",
]
