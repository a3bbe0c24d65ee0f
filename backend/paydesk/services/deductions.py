# backend/paydesk/services/deductions.py
"""
Deduction collector.

Builds the un-prioritised deduction breakdown for one employee-month:
    • mandatory : insurance (basic * insurance_rate) + tax (gross * tax_rate)
    • attendance: unexcused absences (one daily-equivalent each) and unexcused
                   late minutes (daily-equivalent / minutes_per_day * minutes)
    • advances  : installment of every active advance, plus advance remainders
                   carried in from last month
    • penalties : manual penalty lines for the month
    • other     : remaining manual lines plus every non-advance remainder
                   carried in from last month

Nothing is capped here; `total_requested` is the allocator's input.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from paydesk.schemas.payroll import (
    AdvanceLine,
    AdvanceRecord,
    AttendanceEntry,
    AttendanceLine,
    CompensationProfile,
    DeductionTier,
    Deductions,
    Earnings,
    MandatoryLine,
    ManualDeduction,
    ManualLine,
    PreviousCarryforward,
)
from paydesk.services.money import D, fmt, q2, qsum
from paydesk.services.payroll_policy import PayrollPolicy

CARRIED_SUFFIX = " (carried forward)"

TIER_REASONS = {
    "mandatory": "Insurance and tax",
    "attendance": "Absence and late deductions",
    "advance": "Salary advances",
    "other": "Penalties and other deductions",
}


def _carried_reason(reason: str) -> str:
    reason = reason or ""
    return reason if reason.endswith(CARRIED_SUFFIX) else f"{reason}{CARRIED_SUFFIX}"


def daily_equivalent_rate(profile: CompensationProfile, policy: PayrollPolicy) -> Decimal:
    if profile.employment_type == "daily":
        return D(profile.daily_rate)
    return D(profile.monthly_rate) / policy.working_days_per_month


# ------------------------------ Mandatory ------------------------------ #

def _percent(rate: Decimal) -> Decimal:
    pct = rate * 100
    if pct == pct.to_integral_value():
        return pct.quantize(Decimal("1"))
    return pct.normalize()


def _mandatory(earnings: Earnings, policy: PayrollPolicy) -> tuple[MandatoryLine, MandatoryLine]:
    basic = earnings.basic.amount
    gross = earnings.total
    insurance = MandatoryLine(
        code="insurance",
        rate=_percent(policy.insurance_rate),
        base_amount=basic,
        amount=q2(basic * policy.insurance_rate),
        calculation=f"{fmt(basic)} x {_percent(policy.insurance_rate)}%",
        reason="Mandatory social insurance",
    )
    tax = MandatoryLine(
        code="tax",
        rate=_percent(policy.tax_rate),
        base_amount=gross,
        amount=q2(gross * policy.tax_rate),
        calculation=f"{fmt(gross)} x {_percent(policy.tax_rate)}%",
        reason="Income tax",
    )
    return insurance, tax


# ------------------------------ Attendance ----------------------------- #

def _attendance(
    profile: CompensationProfile,
    entries: Iterable[AttendanceEntry],
    policy: PayrollPolicy,
) -> tuple[List[AttendanceLine], List[AttendanceLine]]:
    day_rate = daily_equivalent_rate(profile, policy)
    absence: List[AttendanceLine] = []
    late: List[AttendanceLine] = []

    for a in entries:
        if a.excused:
            continue
        if a.status == "absent":
            absence.append(
                AttendanceLine(
                    type="absence",
                    date=a.date,
                    amount=q2(day_rate),
                    reason=a.reason or "Unexcused absence",
                )
            )
        elif a.status == "late" and a.late_minutes > 0:
            late.append(
                AttendanceLine(
                    type="late",
                    date=a.date,
                    minutes=a.late_minutes,
                    amount=q2(day_rate / policy.minutes_per_day * a.late_minutes),
                    reason=f"Late {a.late_minutes} minutes",
                )
            )
    return absence, late


# ------------------------------- Advances ------------------------------ #

def _advances(
    advances: Iterable[AdvanceRecord],
    previous: Optional[PreviousCarryforward],
) -> List[AdvanceLine]:
    carried = previous.carryforward_details.advances if previous else []

    # Money already carried for an advance is part of its unpaid balance, so the
    # fresh installment only covers what is left after the carried remainder.
    carried_by_advance: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for c in carried:
        if c.advance_id and c.remaining_to_carryforward > 0:
            carried_by_advance[c.advance_id] += c.remaining_to_carryforward

    lines: List[AdvanceLine] = []
    for adv in advances:
        if not adv.is_active:
            continue
        open_balance = adv.remaining_amount - carried_by_advance.get(adv.advance_id, Decimal("0"))
        installment = q2(min(adv.repayment_plan.amount_per_month, open_balance))
        if installment <= 0:
            continue
        number = len(adv.deduction_history) + 1
        total = adv.repayment_plan.installment_count
        lines.append(
            AdvanceLine(
                advance_id=adv.advance_id,
                original_amount=adv.original_amount,
                installment_number=number,
                total_installments=total,
                amount=installment,
                remaining_after=q2(adv.remaining_amount - installment),
                reason=f"{adv.reason or 'Advance'} - installment {number} of {total}",
            )
        )

    for c in carried:
        if c.remaining_to_carryforward <= 0:
            continue
        lines.append(
            AdvanceLine(
                advance_id=c.advance_id or "",
                original_amount=c.original_amount,
                amount=q2(c.remaining_to_carryforward),
                remaining_after=Decimal("0.00"),
                reason=_carried_reason(c.reason),
                is_carried_forward=True,
            )
        )
    return lines


# ---------------------------- Manual + carried --------------------------- #

def _manual(
    manual: Iterable[ManualDeduction],
    previous: Optional[PreviousCarryforward],
) -> tuple[List[ManualLine], List[ManualLine]]:
    penalties: List[ManualLine] = []
    other: List[ManualLine] = []

    for m in manual:
        line = ManualLine(
            deduction_id=m.deduction_id,
            type=m.type,
            amount=q2(m.amount),
            reason=m.reason,
        )
        if m.type == "penalty":
            penalties.append(line)
        else:
            other.append(line)

    if previous:
        for c in previous.carryforward_details.deductions:
            if c.remaining_to_carryforward <= 0:
                continue
            other.append(
                ManualLine(
                    type=c.type or c.category,
                    amount=q2(c.remaining_to_carryforward),
                    reason=_carried_reason(c.reason),
                    is_carried_forward=True,
                    carried_from=c.category,
                )
            )
    return penalties, other


# -------------------------------- Totals -------------------------------- #

def total_deductions(deductions: Deductions) -> Deductions:
    """Recompute every requested subtotal of a breakdown in place."""
    deductions.mandatory_total = qsum([deductions.insurance.amount, deductions.tax.amount])
    deductions.absence_total = qsum(a.amount for a in deductions.absence)
    deductions.late_total = qsum(a.amount for a in deductions.late)
    deductions.attendance_total = qsum([deductions.absence_total, deductions.late_total])
    deductions.advances_total = qsum(a.amount for a in deductions.advances)
    deductions.penalties_total = qsum(p.amount for p in deductions.penalties)
    deductions.other_total = qsum(o.amount for o in deductions.other)
    deductions.total_requested = qsum(
        [
            deductions.mandatory_total,
            deductions.attendance_total,
            deductions.advances_total,
            deductions.penalties_total,
            deductions.other_total,
        ]
    )
    return deductions


def deduction_tiers(deductions: Deductions) -> List[DeductionTier]:
    """The four cascade tiers in priority order."""
    return [
        DeductionTier(
            category="mandatory",
            reason=TIER_REASONS["mandatory"],
            lines=[ln for ln in (deductions.insurance, deductions.tax) if ln.amount > 0],
        ),
        DeductionTier(
            category="attendance",
            reason=TIER_REASONS["attendance"],
            lines=[*deductions.absence, *deductions.late],
        ),
        DeductionTier(
            category="advance",
            reason=TIER_REASONS["advance"],
            lines=list(deductions.advances),
        ),
        DeductionTier(
            category="other",
            reason=TIER_REASONS["other"],
            lines=[*deductions.penalties, *deductions.other],
        ),
    ]


def collect_deductions(
    profile: CompensationProfile,
    earnings: Earnings,
    entries: Iterable[AttendanceEntry],
    advances: Iterable[AdvanceRecord],
    manual: Iterable[ManualDeduction],
    previous: Optional[PreviousCarryforward],
    policy: PayrollPolicy,
) -> Deductions:
    insurance, tax = _mandatory(earnings, policy)
    absence, late = _attendance(profile, entries, policy)
    penalties, other = _manual(manual, previous)

    deductions = Deductions(
        insurance=insurance,
        tax=tax,
        absence=absence,
        late=late,
        advances=_advances(advances, previous),
        penalties=penalties,
        other=other,
    )
    return total_deductions(deductions)


__all__ = [
    "CARRIED_SUFFIX",
    "collect_deductions",
    "daily_equivalent_rate",
    "deduction_tiers",
    "total_deductions",
]
