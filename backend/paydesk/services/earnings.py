# backend/paydesk/services/earnings.py
"""
Earnings calculator.

BASIC by employment type:
    - monthly -> monthly_rate (flat; attendance does not pro-rate it)
    - daily   -> daily_rate * days present
    - hourly  -> hourly_rate * regular hours

Overtime uses an hourly-equivalent rate times the profile's multiplier
(falls back to the policy default):
    - hourly  -> hourly_rate * m
    - daily   -> daily_rate / hours_per_day * m
    - monthly -> monthly_rate / working_days / hours_per_day * m

Commission, bonuses and tips are structural placeholders here; they are
filled in later through payroll edits.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from paydesk.schemas.payroll import (
    AllowanceLine,
    AttendanceEntry,
    AttendanceSummary,
    BasicPay,
    Commission,
    CompensationProfile,
    Earnings,
    Overtime,
    OvertimeDetail,
    Tips,
)
from paydesk.services.money import D, fmt, q2, qsum
from paydesk.services.payroll_policy import PayrollPolicy

ALLOWANCE_NAMES = {
    "transport": "Transport allowance",
    "food": "Food allowance",
    "housing": "Housing allowance",
}


def _basic(profile: CompensationProfile, summary: AttendanceSummary) -> BasicPay:
    if profile.employment_type == "monthly":
        rate = D(profile.monthly_rate)
        return BasicPay(
            amount=q2(rate),
            rate=rate,
            days=summary.present,
            calculation=f"{fmt(rate)} monthly",
        )
    if profile.employment_type == "daily":
        rate = D(profile.daily_rate)
        days = summary.present
        return BasicPay(
            amount=q2(rate * days),
            rate=rate,
            days=days,
            calculation=f"{days} days x {fmt(rate)}",
        )
    rate = D(profile.hourly_rate)
    hours = summary.regular_hours
    return BasicPay(
        amount=q2(rate * hours),
        rate=rate,
        days=summary.present,
        hours=hours,
        calculation=f"{hours} hours x {fmt(rate)}",
    )


def _allowances(profile: CompensationProfile) -> List[AllowanceLine]:
    lines: List[AllowanceLine] = []
    for key, name in ALLOWANCE_NAMES.items():
        amount = D(getattr(profile.allowances, key))
        if amount > 0:
            lines.append(AllowanceLine(type=key, name=name, amount=q2(amount)))
    return lines


def overtime_hourly_rate(profile: CompensationProfile, policy: PayrollPolicy) -> Decimal:
    multiplier = (
        D(profile.overtime_multiplier)
        if profile.overtime_multiplier is not None
        else policy.overtime_multiplier
    )
    if profile.employment_type == "hourly":
        base = D(profile.hourly_rate)
    elif profile.employment_type == "daily":
        base = D(profile.daily_rate) / policy.hours_per_day
    else:
        base = D(profile.monthly_rate) / policy.working_days_per_month / policy.hours_per_day
    return base * multiplier


def _overtime(
    profile: CompensationProfile,
    summary: AttendanceSummary,
    entries: Iterable[AttendanceEntry],
    policy: PayrollPolicy,
) -> Overtime:
    hours = summary.overtime_hours
    if hours <= 0:
        return Overtime()

    rate = overtime_hourly_rate(profile, policy)
    details = [
        OvertimeDetail(
            date=a.date,
            hours=a.overtime_hours,
            amount=q2(rate * a.overtime_hours),
            reason=a.reason or "Overtime",
        )
        for a in entries
        if a.overtime_hours > 0
    ]
    return Overtime(
        hours=hours,
        rate=q2(rate),
        amount=q2(rate * hours),
        calculation=f"{hours} hours x {fmt(rate)}",
        details=details,
    )


def total_earnings(earnings: Earnings) -> Earnings:
    """Recompute the derived totals of an earnings breakdown in place."""
    earnings.allowances_total = qsum(a.amount for a in earnings.allowances)
    earnings.bonuses_total = qsum(b.amount for b in earnings.bonuses)
    earnings.total = qsum(
        [
            earnings.basic.amount,
            earnings.allowances_total,
            earnings.overtime.amount,
            earnings.commission.amount,
            earnings.bonuses_total,
            earnings.tips.amount,
        ]
    )
    return earnings


def compute_earnings(
    profile: CompensationProfile,
    summary: AttendanceSummary,
    entries: Iterable[AttendanceEntry],
    policy: PayrollPolicy,
) -> Earnings:
    commission = Commission(
        enabled=profile.commission.enabled,
        rate=profile.commission.rate,
        target=profile.commission.target,
    )
    earnings = Earnings(
        basic=_basic(profile, summary),
        allowances=_allowances(profile),
        overtime=_overtime(profile, summary, list(entries), policy),
        commission=commission,
        bonuses=[],
        tips=Tips(),
    )
    return total_earnings(earnings)


__all__ = ["compute_earnings", "total_earnings", "overtime_hourly_rate"]
