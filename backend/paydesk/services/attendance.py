# backend/paydesk/services/attendance.py
"""Reduce a month of attendance entries into the payroll attendance summary."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from paydesk.schemas.payroll import AttendanceEntry, AttendanceSummary, DailyRecord


def _hhmm(ts: Optional[datetime]) -> Optional[str]:
    return ts.strftime("%H:%M") if ts else None


def summarize_attendance(entries: Iterable[AttendanceEntry]) -> AttendanceSummary:
    """
    Count statuses and sum hours for one employee's month.

    `present` counts both on-time and late days (the days actually worked).
    An empty sequence yields the all-zero summary.
    """
    summary = AttendanceSummary()
    total_hours = Decimal("0")
    regular_hours = Decimal("0")
    overtime_hours = Decimal("0")

    for a in entries:
        summary.total_days += 1
        if a.status != "weekly_off":
            summary.working_days += 1

        if a.status == "present":
            summary.present += 1
        elif a.status == "late":
            summary.present += 1
            summary.late += 1
            if a.excused:
                summary.late_excused += 1
            else:
                summary.late_unexcused += 1
        elif a.status == "absent":
            summary.absent += 1
            if a.excused:
                summary.absence_excused += 1
            else:
                summary.absence_unexcused += 1
        elif a.status == "leave":
            summary.leaves += 1
        elif a.status == "half_day":
            summary.half_days += 1
        elif a.status == "weekly_off":
            summary.weekly_offs += 1

        total_hours += a.total_hours
        regular_hours += a.regular_hours
        overtime_hours += a.overtime_hours

        summary.daily_records.append(
            DailyRecord(
                date=a.date,
                status=a.status,
                check_in=_hhmm(a.check_in),
                check_out=_hhmm(a.check_out),
                hours=a.total_hours,
                overtime=a.overtime_hours,
                late_minutes=a.late_minutes,
                excused=a.excused,
                reason=a.reason,
                notes=a.notes,
            )
        )

    summary.total_hours = total_hours
    summary.regular_hours = regular_hours
    summary.overtime_hours = overtime_hours
    return summary


__all__ = ["summarize_attendance"]
