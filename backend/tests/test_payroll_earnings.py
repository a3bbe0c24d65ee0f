# backend/tests/test_payroll_earnings.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

from paydesk.schemas.payroll import AttendanceEntry
from paydesk.services.attendance import summarize_attendance
from paydesk.services.earnings import compute_earnings, overtime_hourly_rate

from factories import POLICY, month_entries, profile


def _earn(prof, entries):
    return compute_earnings(prof, summarize_attendance(entries), entries, POLICY)


def test_monthly_basic_is_flat():
    e = _earn(profile("monthly"), month_entries(present=10, off=0))
    assert e.basic.amount == Decimal("3000.00")
    assert e.basic.days == 10
    assert e.total == Decimal("3000.00")


def test_daily_basic_uses_days_present_including_late():
    entries = month_entries(present=3, off=0)
    entries.append(AttendanceEntry(date=date(2024, 3, 4), status="late", late_minutes=15))
    entries.append(AttendanceEntry(date=date(2024, 3, 5), status="absent"))
    e = _earn(profile("daily"), entries)
    assert e.basic.amount == Decimal("480.00")  # 4 days x 120
    assert e.basic.calculation == "4 days x 120.00"


def test_hourly_basic_uses_regular_hours():
    e = _earn(profile("hourly"), month_entries(present=2, off=0, hours="7.5"))
    assert e.basic.amount == Decimal("225.00")  # 15 hours x 15


def test_allowances_are_labelled_lines():
    prof = profile("monthly", allowances={"transport": "100", "food": "0", "housing": "250.50"})
    e = _earn(prof, [])
    assert [a.type for a in e.allowances] == ["transport", "housing"]
    assert e.allowances_total == Decimal("350.50")
    assert e.total == Decimal("3350.50")


def test_overtime_rate_per_employment_type():
    assert overtime_hourly_rate(profile("hourly"), POLICY) == Decimal("22.5")
    assert overtime_hourly_rate(profile("daily"), POLICY) == Decimal("22.5")  # 120 / 8 x 1.5
    monthly = overtime_hourly_rate(profile("monthly", monthly_rate=Decimal("2080")), POLICY)
    assert monthly == Decimal("15")  # 2080 / 26 / 8 x 1.5


def test_overtime_uses_profile_multiplier_and_keeps_detail_lines():
    entries = [
        AttendanceEntry(date=date(2024, 3, 1), status="present", regular_hours=Decimal("8"),
                        overtime_hours=Decimal("2")),
        AttendanceEntry(date=date(2024, 3, 2), status="present", regular_hours=Decimal("8"),
                        overtime_hours=Decimal("1.5")),
    ]
    e = _earn(profile("hourly", overtime_multiplier=Decimal("2")), entries)
    assert e.overtime.hours == Decimal("3.5")
    assert e.overtime.amount == Decimal("105.00")
    assert [(d.date.day, d.amount) for d in e.overtime.details] == [
        (1, Decimal("60.00")),
        (2, Decimal("45.00")),
    ]
    assert e.total == Decimal("345.00")  # 240 basic + 105 overtime


def test_placeholders_are_zero():
    e = _earn(profile("monthly", commission={"enabled": True, "rate": "5", "target": "1000"}), [])
    assert e.commission.enabled is True
    assert e.commission.amount == 0
    assert e.bonuses == [] and e.bonuses_total == 0
    assert e.tips.amount == 0
