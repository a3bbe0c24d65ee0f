# backend/tests/test_payroll_deductions.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

from paydesk.schemas.payroll import (
    AttendanceEntry,
    CarryforwardDetail,
    CarryforwardDetails,
    PreviousCarryforward,
)
from paydesk.services.attendance import summarize_attendance
from paydesk.services.deductions import (
    collect_deductions,
    daily_equivalent_rate,
    deduction_tiers,
)
from paydesk.services.earnings import compute_earnings

from factories import POLICY, advance, manual, month_entries, profile


def _collect(prof=None, entries=None, advances=(), manual_lines=(), previous=None):
    prof = prof or profile()
    entries = month_entries() if entries is None else entries
    earnings = compute_earnings(prof, summarize_attendance(entries), entries, POLICY)
    return collect_deductions(prof, earnings, entries, advances, manual_lines, previous, POLICY)


def test_mandatory_lines():
    d = _collect()
    assert d.insurance.amount == Decimal("330.00")
    assert d.insurance.calculation == "3000.00 x 11%"
    assert d.tax.amount == Decimal("75.00")
    assert d.tax.calculation == "3000.00 x 2.5%"
    assert d.mandatory_total == Decimal("405.00")
    assert d.total_requested == Decimal("405.00")


def test_tax_follows_gross_and_insurance_follows_basic():
    prof = profile(allowances={"transport": "300"})
    d = _collect(prof)
    assert d.insurance.amount == Decimal("330.00")
    assert d.tax.amount == Decimal("82.50")


def test_daily_equivalent_rate():
    assert daily_equivalent_rate(profile("daily"), POLICY) == Decimal("120")
    assert daily_equivalent_rate(profile("monthly", monthly_rate=Decimal("2600")), POLICY) == Decimal("100")


def test_unexcused_absence_and_late_lines():
    prof = profile(monthly_rate=Decimal("2600"))
    entries = [
        AttendanceEntry(date=date(2024, 3, 1), status="absent"),
        AttendanceEntry(date=date(2024, 3, 2), status="absent", excused=True),
        AttendanceEntry(date=date(2024, 3, 3), status="late", late_minutes=48),
        AttendanceEntry(date=date(2024, 3, 4), status="late", late_minutes=30, excused=True),
        AttendanceEntry(date=date(2024, 3, 5), status="late", late_minutes=0),
    ]
    d = _collect(prof, entries)
    assert [a.amount for a in d.absence] == [Decimal("100.00")]
    assert [(a.minutes, a.amount) for a in d.late] == [(48, Decimal("10.00"))]
    assert d.attendance_total == Decimal("110.00")


def test_advance_installment_is_capped_at_remaining():
    advances = [
        advance("adv-1", amount="3000", per_month="1000", total_paid="2500"),
        advance("adv-2", amount="600", per_month="200", installments=3),
        advance("adv-3", status="pending"),
        advance("adv-4", amount="100", per_month="100", total_paid="100", status="completed"),
    ]
    d = _collect(advances=advances)
    assert [(a.advance_id, a.amount) for a in d.advances] == [
        ("adv-1", Decimal("500.00")),
        ("adv-2", Decimal("200.00")),
    ]
    assert d.advances[1].reason == "Salary advance - installment 1 of 3"
    assert d.advances[1].remaining_after == Decimal("400.00")
    assert d.advances_total == Decimal("700.00")


def test_carried_advance_is_not_collected_twice():
    previous = PreviousCarryforward(
        carried_forward_to_next=Decimal("205.00"),
        carryforward_details=CarryforwardDetails(
            advances=[
                CarryforwardDetail(
                    category="advance",
                    type="advance",
                    advance_id="adv-1",
                    original_amount=Decimal("2800.00"),
                    deducted_this_month=Decimal("2595.00"),
                    remaining_to_carryforward=Decimal("205.00"),
                    reason="Salary advance - installment 1 of 1",
                )
            ]
        ),
    )
    # ledger after last month's payment: 2595 paid, 205 open and already carried
    adv = advance("adv-1", amount="2800", per_month="2800", total_paid="2595")
    d = _collect(advances=[adv], previous=previous)

    assert len(d.advances) == 1
    line = d.advances[0]
    assert line.is_carried_forward is True
    assert line.amount == Decimal("205.00")
    assert line.reason.endswith("(carried forward)")
    assert d.advances_total == Decimal("205.00")


def test_manual_and_carried_other_lines():
    previous = PreviousCarryforward(
        carried_forward_to_next=Decimal("50.00"),
        carryforward_details=CarryforwardDetails(
            deductions=[
                CarryforwardDetail(
                    category="mandatory",
                    type="mandatory",
                    original_amount=Decimal("405.00"),
                    deducted_this_month=Decimal("355.00"),
                    remaining_to_carryforward=Decimal("50.00"),
                    reason="Insurance and tax",
                )
            ]
        ),
    )
    lines = [manual("penalty", "40", reason="Uniform"), manual("loan", "60", reason="Loan")]
    d = _collect(manual_lines=lines, previous=previous)

    assert [p.amount for p in d.penalties] == [Decimal("40.00")]
    assert [o.type for o in d.other] == ["loan", "mandatory"]
    carried = d.other[1]
    assert carried.is_carried_forward and carried.carried_from == "mandatory"
    assert carried.reason == "Insurance and tax (carried forward)"
    assert d.other_total == Decimal("110.00")
    assert d.total_requested == Decimal("555.00")


def test_tiers_in_priority_order_without_zero_mandatory_lines():
    d = _collect(entries=[], prof=profile("daily"))
    tiers = deduction_tiers(d)
    assert [t.category for t in tiers] == ["mandatory", "attendance", "advance", "other"]
    assert tiers[0].lines == []
    assert all(t.total == 0 for t in tiers)
