# backend/tests/test_payroll_store.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from paydesk.models.payroll import Advance, AttendanceRecord, Deduction, Employee, Payroll
from paydesk.schemas.payroll import FieldChange
from paydesk.services import payroll_store as store
from paydesk.services.payroll_errors import (
    DuplicatePeriodError,
    PayrollNotFoundError,
    PayrollStateError,
    PayrollValidationError,
)


def _employee(db, code="E-001", **kw) -> Employee:
    data = dict(code=code, name=f"Employee {code}", employment_type="monthly", monthly_rate=Decimal("3000"))
    data.update(kw)
    emp = Employee(**data)
    db.add(emp)
    db.flush()
    for day in range(1, 21):
        db.add(
            AttendanceRecord(
                employee_id=emp.id,
                work_date=date(2024, 3, day),
                status="present",
                total_hours=Decimal("8"),
                regular_hours=Decimal("8"),
            )
        )
    db.commit()
    return emp


def _advance(db, emp, amount="2800", per_month="2800") -> Advance:
    adv = Advance(
        employee_id=emp.id,
        amount=Decimal(amount),
        reason="Salary advance",
        status="approved",
        installments=1,
        amount_per_month=Decimal(per_month),
        total_paid=Decimal("0"),
        remaining_amount=Decimal(amount),
        deduction_history=[],
    )
    db.add(adv)
    db.commit()
    return adv


def test_generate_persists_draft(db):
    emp = _employee(db)
    rec = store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr.clerk")

    assert rec.status == "draft"
    assert rec.id is not None
    assert rec.payroll_id == f"PAY-202403-{str(emp.id)[-6:]}"
    assert rec.attendance.present == 20
    assert rec.summary.net_salary == Decimal("2595.00")

    row = db.get(Payroll, emp.payrolls[0].id)
    assert row.month == "2024-03"
    assert row.net_salary == Decimal("2595.00")
    assert row.workflow["created_by"] == "hr.clerk"

    again = store.get_payroll(db, rec.id)
    assert again.model_dump() == rec.model_dump()


def test_generate_twice_for_same_period_fails(db):
    emp = _employee(db)
    store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    with pytest.raises(DuplicatePeriodError):
        store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    assert db.query(Payroll).count() == 1


def test_generate_validation(db):
    emp = _employee(db)
    with pytest.raises(PayrollValidationError):
        store.generate_payroll(db, employee_id=emp.id, month=13, year=2024, created_by="hr")
    with pytest.raises(PayrollNotFoundError):
        store.generate_payroll(db, employee_id="not-a-uuid", month=3, year=2024, created_by="hr")
    assert db.query(Payroll).count() == 0


def test_manual_deductions_are_loaded_for_the_month(db):
    emp = _employee(db)
    db.add(Deduction(employee_id=emp.id, type="penalty", amount=Decimal("45"), reason="Damage", month="2024-03"))
    db.add(Deduction(employee_id=emp.id, type="loan", amount=Decimal("99"), reason="Other month", month="2024-04"))
    db.commit()
    rec = store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    assert rec.deductions.penalties_total == Decimal("45.00")
    assert rec.deductions.other == []


def test_pay_settles_advances_and_next_month_carries_forward(db):
    emp = _employee(db)
    adv = _advance(db, emp)

    march = store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    assert march.summary.carried_forward_to_next == Decimal("205.00")
    store.approve_payroll(db, march.id, approved_by="manager")
    paid = store.pay_payroll(db, march.id, amount=Decimal("0"), paid_by="cashier", method="bank")
    assert paid.status == "paid"

    db.refresh(adv)
    assert adv.total_paid == Decimal("2595.00")
    assert adv.remaining_amount == Decimal("205.00")
    assert adv.deduction_history[0]["payroll_record_id"] == march.id

    april = store.generate_payroll(db, employee_id=emp.id, month=4, year=2024, created_by="hr")
    assert april.summary.carried_forward_from_previous == Decimal("205.00")
    assert [(a.amount, a.is_carried_forward) for a in april.deductions.advances] == [(Decimal("205.00"), True)]
    assert april.summary.gross_salary == Decimal("3000.00")
    assert april.summary.net_salary == Decimal("2390.00")

    store.approve_payroll(db, april.id, approved_by="manager")
    store.pay_payroll(db, april.id, amount=Decimal("2390"), paid_by="cashier")
    db.refresh(adv)
    assert adv.remaining_amount == 0
    assert adv.status == "completed"
    assert len(adv.deduction_history) == 2


def test_workflow_through_store(db):
    emp = _employee(db)
    rec = store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")

    rec, revision = store.edit_payroll(
        db,
        rec.id,
        changes=[FieldChange(field="earnings.tips.amount", new_value="50")],
        reason="Tips pool",
        edited_by="manager",
    )
    assert revision.revision_number == 1
    assert rec.summary.gross_salary == Decimal("3050.00")
    assert store.get_payroll(db, rec.id).revisions[0].edited_by == "manager"

    store.approve_payroll(db, rec.id, approved_by="manager", notes="checked")
    locked = store.lock_payroll(db, rec.id, locked_by="auditor", reason="closing")
    assert locked.status == "locked"
    with pytest.raises(PayrollStateError):
        store.delete_payroll(db, rec.id)

    unlocked = store.unlock_payroll(db, rec.id, reason="fix")
    assert unlocked.status == "approved"
    store.delete_payroll(db, rec.id)
    with pytest.raises(PayrollNotFoundError):
        store.get_payroll(db, rec.id)


def test_bulk_generate_reports_per_employee_errors(db):
    a = _employee(db, "E-001")
    b = _employee(db, "E-002", active=False)
    c = _employee(db, "E-003", employment_type="daily", monthly_rate=None, daily_rate=None)

    res = store.bulk_generate_payrolls(db, employee_ids=[a.id, b.id, c.id], month=3, year=2024, created_by="hr")
    assert [r.employee_id for r in res["results"]] == [str(a.id)]
    failed = {e["employee_id"] for e in res["errors"]}
    assert failed == {str(b.id), str(c.id)}


def test_list_history_and_stats(db):
    a = _employee(db, "E-001")
    b = _employee(db, "E-002")
    ra = store.generate_payroll(db, employee_id=a.id, month=3, year=2024, created_by="hr")
    store.generate_payroll(db, employee_id=b.id, month=3, year=2024, created_by="hr")
    store.approve_payroll(db, ra.id, approved_by="manager")
    store.pay_payroll(db, ra.id, amount=Decimal("1000"), paid_by="cashier")

    assert len(store.list_payrolls(db, month=3, year=2024)) == 2
    assert len(store.list_payrolls(db, month=4, year=2024)) == 0
    assert [r.id for r in store.list_payrolls(db, status="approved")] == [ra.id]
    assert len(store.list_payrolls(db, employee_id=b.id)) == 1

    history = store.employee_payroll_history(db, a.id)
    assert history["stats"]["total_payrolls"] == 1
    assert history["stats"]["total_paid"] == Decimal("1000.00")

    stats = store.payroll_stats(db, month=3, year=2024)
    assert stats["total"] == 2
    assert stats["draft"] == 1 and stats["approved"] == 1
    assert stats["total_gross_salary"] == Decimal("6000.00")
    assert stats["total_net_salary"] == Decimal("5190.00")
    assert stats["total_paid"] == Decimal("1000.00")
    assert stats["total_unpaid"] == Decimal("4190.00")


def test_concurrent_generate_hits_the_period_constraint(db, monkeypatch):
    emp = _employee(db)
    store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")

    # a second request that passed its pre-check before the first one committed
    monkeypatch.setattr(store, "_find_period", lambda *a, **kw: None)
    with pytest.raises(DuplicatePeriodError):
        store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    assert db.query(Payroll).count() == 1


def test_partially_paid_payroll_cannot_be_deleted(db):
    emp = _employee(db)
    adv = _advance(db, emp, amount="2000", per_month="2000")
    rec = store.generate_payroll(db, employee_id=emp.id, month=3, year=2024, created_by="hr")
    store.approve_payroll(db, rec.id, approved_by="manager")
    store.pay_payroll(db, rec.id, amount=Decimal("100"), paid_by="cashier")

    with pytest.raises(PayrollStateError):
        store.delete_payroll(db, rec.id)
    assert store.get_payroll(db, rec.id).status == "approved"
    db.refresh(adv)
    assert adv.deduction_history[0]["payroll_record_id"] == rec.id


def test_month_filter_requires_year(db):
    with pytest.raises(PayrollValidationError):
        store.list_payrolls(db, month=3)
    with pytest.raises(PayrollValidationError):
        store.payroll_stats(db, month=3)


def test_payroll_summary_for_month(db):
    a = _employee(db, "E-001")
    b = _employee(db, "E-002")
    _employee(db, "E-003")
    _employee(db, "E-004", active=False)
    _advance(db, a)

    ra = store.generate_payroll(db, employee_id=a.id, month=3, year=2024, created_by="hr")
    rb = store.generate_payroll(db, employee_id=b.id, month=3, year=2024, created_by="hr")
    store.approve_payroll(db, ra.id, approved_by="manager")
    store.pay_payroll(db, ra.id, amount=Decimal("0"), paid_by="cashier")
    store.approve_payroll(db, rb.id, approved_by="manager")
    store.pay_payroll(db, rb.id, amount=Decimal("1000"), paid_by="cashier")

    res = store.payroll_summary(db, month=3, year=2024)
    assert res["month"] == "2024-03"
    assert res["total_employees"] == 3
    assert res["generated"] == 2

    by_code = {e["employee_name"]: e for e in res["employees"]}
    first = by_code["Employee E-001"]
    assert first["status"] == "paid"
    assert first["advances"] == Decimal("2595.00")
    assert first["other_deductions"] == Decimal("405.00")
    assert first["net_salary"] == Decimal("0.00")
    assert first["carried_forward"] == Decimal("205.00")

    second = by_code["Employee E-002"]
    assert second["status"] == "partial"
    assert second["unpaid_balance"] == Decimal("1595.00")
    assert by_code["Employee E-003"]["status"] == "not_generated"
    assert "Employee E-004" not in by_code

    stats = res["statistics"]
    assert stats["total_gross_salary"] == Decimal("6000.00")
    assert stats["total_advances"] == Decimal("2595.00")
    assert stats["total_other_deductions"] == Decimal("810.00")
    assert stats["total_deductions"] == Decimal("3405.00")
    assert stats["total_net_salary"] == Decimal("2595.00")
    assert stats["total_paid"] == Decimal("1000.00")
    assert stats["total_unpaid"] == Decimal("1595.00")
    assert stats["total_carried_forward"] == Decimal("205.00")


def test_payroll_summary_requires_period(db):
    with pytest.raises(PayrollValidationError):
        store.payroll_summary(db, month=13, year=2024)
