# backend/tests/test_payroll_attendance.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from paydesk.schemas.payroll import AttendanceEntry
from paydesk.services.attendance import summarize_attendance


def test_empty_month_is_all_zero():
    s = summarize_attendance([])
    assert s.total_days == 0
    assert s.days_present == 0
    assert s.total_hours == 0
    assert s.daily_records == []


def test_counts_late_as_present_and_splits_excused():
    entries = [
        AttendanceEntry(date=date(2024, 3, 1), status="present", total_hours=Decimal("8"), regular_hours=Decimal("8")),
        AttendanceEntry(date=date(2024, 3, 2), status="late", late_minutes=30, total_hours=Decimal("7.5"),
                        regular_hours=Decimal("7.5")),
        AttendanceEntry(date=date(2024, 3, 3), status="late", late_minutes=10, excused=True),
        AttendanceEntry(date=date(2024, 3, 4), status="absent"),
        AttendanceEntry(date=date(2024, 3, 5), status="absent", excused=True, reason="Medical"),
        AttendanceEntry(date=date(2024, 3, 6), status="leave"),
        AttendanceEntry(date=date(2024, 3, 7), status="half_day", total_hours=Decimal("4"), regular_hours=Decimal("4")),
        AttendanceEntry(date=date(2024, 3, 8), status="weekly_off"),
        AttendanceEntry(date=date(2024, 3, 9), status="present", total_hours=Decimal("10"),
                        regular_hours=Decimal("8"), overtime_hours=Decimal("2")),
    ]
    s = summarize_attendance(entries)

    assert s.total_days == 9
    assert s.working_days == 8
    assert s.present == 4  # two present + two late
    assert s.late == 2 and s.late_excused == 1 and s.late_unexcused == 1
    assert s.absent == 2 and s.absence_excused == 1 and s.absence_unexcused == 1
    assert s.leaves == 1
    assert s.half_days == 1
    assert s.weekly_offs == 1
    assert s.total_hours == Decimal("29.5")
    assert s.regular_hours == Decimal("27.5")
    assert s.overtime_hours == Decimal("2")


def test_daily_records_keep_clock_times():
    entry = AttendanceEntry(
        date=date(2024, 3, 1),
        status="present",
        check_in=datetime(2024, 3, 1, 8, 5),
        check_out=datetime(2024, 3, 1, 17, 0),
        total_hours=Decimal("8"),
    )
    rec = summarize_attendance([entry]).daily_records[0]
    assert rec.check_in == "08:05"
    assert rec.check_out == "17:00"
    assert rec.hours == Decimal("8")
