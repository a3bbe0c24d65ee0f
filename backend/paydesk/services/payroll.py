# backend/paydesk/services/payroll.py
"""
Payroll computation for one employee-month.

Pipeline (pure, no I/O):
    attendance summary -> earnings -> requested deductions -> cascade -> record payload

- The previous month's carry-forward is an explicit input (`request.previous`);
  fetching the prior record is the caller's job (see payroll_store).
- Identical requests produce identical computations (no clocks, no ids).
- reference_no pattern for payroll records: PAY-{YYYYMM}-{last6 of employee id}
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set, Tuple, Union

from paydesk.schemas.payroll import (
    AdvanceRecord,
    AttendanceEntry,
    CompensationProfile,
    EmployeeSnapshot,
    ManualDeduction,
    PayrollComputation,
    PayrollRecord,
    PayrollRequest,
    PayrollSummary,
    PreviousCarryforward,
)
from paydesk.services.attendance import summarize_attendance
from paydesk.services.carryforward import Allocation, allocate_deductions
from paydesk.services.deductions import collect_deductions, deduction_tiers, total_deductions
from paydesk.services.earnings import total_earnings, compute_earnings
from paydesk.services.money import ZERO, q2
from paydesk.services.payroll_errors import PayrollValidationError
from paydesk.services.payroll_policy import PayrollPolicy, load_policy

logger = logging.getLogger(__name__)

COMPUTED_MANUAL_TYPES = {"absence", "late"}


# ----------------------------- Period helpers ----------------------------- #

def month_key(month: int, year: int) -> str:
    return f"{year}-{month:02d}"


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def previous_period(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def payroll_reference(employee_id: str, month: int, year: int) -> str:
    return f"PAY-{year}{month:02d}-{str(employee_id)[-6:]}"


# ------------------------------- Validation ------------------------------- #

def _validate_profile(profile: CompensationProfile) -> None:
    rate_field = f"{profile.employment_type}_rate"
    if getattr(profile, rate_field) is None:
        raise PayrollValidationError(
            f"{rate_field} is required for {profile.employment_type} employees",
            field=f"profile.{rate_field}",
        )


def _validate_attendance(entries: Iterable[AttendanceEntry], month: int, year: int) -> None:
    start, end = month_bounds(month, year)
    seen: Set[date] = set()
    for a in entries:
        if not (start <= a.date <= end):
            raise PayrollValidationError(
                f"attendance entry {a.date} is outside {month_key(month, year)}",
                field="attendance",
            )
        if a.date in seen:
            raise PayrollValidationError(f"duplicate attendance entry for {a.date}", field="attendance")
        seen.add(a.date)


def _validate_advances(advances: Iterable[AdvanceRecord], employee_id: str) -> None:
    ids: Set[str] = set()
    for adv in advances:
        if adv.employee_id and adv.employee_id != employee_id:
            raise PayrollValidationError(
                f"advance {adv.advance_id} belongs to another employee", field="advances"
            )
        if adv.advance_id in ids:
            raise PayrollValidationError(f"duplicate advance {adv.advance_id}", field="advances")
        ids.add(adv.advance_id)


def _validate_manual(manual: Iterable[ManualDeduction], key: str) -> None:
    for m in manual:
        if m.type in COMPUTED_MANUAL_TYPES:
            raise PayrollValidationError(
                f"'{m.type}' deductions are computed from attendance and cannot be entered manually",
                field="manual_deductions",
            )
        if m.month != key:
            raise PayrollValidationError(
                f"manual deduction for {m.month} does not belong to {key}",
                field="manual_deductions",
            )


def _validate_previous(previous: Optional[PreviousCarryforward]) -> None:
    if previous is None:
        return
    details_total = q2(previous.carryforward_details.total)
    if details_total != q2(previous.carried_forward_to_next):
        raise PayrollValidationError(
            f"previous carry-forward details total {details_total} does not match "
            f"carried_forward_to_next {q2(previous.carried_forward_to_next)}",
            field="previous",
        )


def validate_request(request: PayrollRequest) -> None:
    key = month_key(request.month, request.year)
    _validate_profile(request.profile)
    _validate_attendance(request.attendance, request.month, request.year)
    _validate_advances(request.advances, request.profile.employee_id)
    _validate_manual(request.manual_deductions, key)
    _validate_previous(request.previous)


# ------------------------------- Computation ------------------------------ #

def _snapshot(profile: CompensationProfile) -> EmployeeSnapshot:
    return EmployeeSnapshot(
        type=profile.employment_type,
        monthly_rate=profile.monthly_rate,
        daily_rate=profile.daily_rate,
        hourly_rate=profile.hourly_rate,
        overtime_multiplier=profile.overtime_multiplier,
        allowances=profile.allowances,
        department=profile.department,
        position=profile.position,
    )


def _summary(alloc: Allocation, carried_in: Decimal, paid: Decimal = ZERO) -> PayrollSummary:
    net = alloc.net
    return PayrollSummary(
        gross_salary=alloc.gross,
        total_deductions=alloc.applied,
        total_deductions_requested=alloc.requested,
        net_salary=net,
        paid_amount=paid,
        unpaid_balance=max(q2(net - paid), ZERO),
        carried_forward_from_previous=carried_in,
        carried_forward_to_next=alloc.carried,
        carryforward_details=alloc.details,
    )


def compute_payroll(
    request: PayrollRequest,
    policy: Optional[PayrollPolicy] = None,
) -> PayrollComputation:
    """Compute the full payroll payload for `request` (validated first)."""
    validate_request(request)
    policy = policy or load_policy()
    profile = request.profile

    entries = sorted(request.attendance, key=lambda a: a.date)
    summary = summarize_attendance(entries)
    earnings = compute_earnings(profile, summary, entries, policy)
    deductions = collect_deductions(
        profile,
        earnings,
        entries,
        request.advances,
        request.manual_deductions,
        request.previous,
        policy,
    )

    alloc = allocate_deductions(earnings.total, deduction_tiers(deductions))
    deductions.total = alloc.applied

    carried_in = q2(request.previous.carried_forward_to_next) if request.previous else ZERO
    key = month_key(request.month, request.year)

    logger.debug(
        "computed payroll employee=%s month=%s gross=%s applied=%s carried=%s",
        profile.employee_id, key, alloc.gross, alloc.applied, alloc.carried,
    )

    return PayrollComputation(
        employee_id=profile.employee_id,
        employee_name=profile.employee_name,
        month=key,
        year=request.year,
        employee_snapshot=_snapshot(profile),
        attendance=summary,
        earnings=earnings,
        deductions=deductions,
        summary=_summary(alloc, carried_in),
    )


def carryforward_for_next(source: Union[PayrollComputation, PayrollRecord]) -> PreviousCarryforward:
    """The carry-forward input the following month's computation expects."""
    return PreviousCarryforward(
        carried_forward_to_next=source.summary.carried_forward_to_next,
        carryforward_details=source.summary.carryforward_details.model_copy(deep=True),
    )


# ---------------------------- Edited records ----------------------------- #

def _overridden(code: str, overrides: Set[str]) -> bool:
    return bool({"deductions", f"deductions.{code}", f"deductions.{code}.amount"} & overrides)


def _refresh_mandatory(record: PayrollRecord, overrides: Set[str]) -> None:
    ded = record.deductions
    basic = record.earnings.basic.amount
    gross = record.earnings.total
    if not _overridden("insurance", overrides):
        ded.insurance.base_amount = basic
        ded.insurance.amount = q2(basic * ded.insurance.rate / 100)
    if not _overridden("tax", overrides):
        ded.tax.base_amount = gross
        ded.tax.amount = q2(gross * ded.tax.rate / 100)


def _ensure_non_negative(record: PayrollRecord) -> None:
    derived = {
        "earnings.total": record.earnings.total,
        "deductions.insurance.amount": record.deductions.insurance.amount,
        "deductions.tax.amount": record.deductions.tax.amount,
        "deductions.total_requested": record.deductions.total_requested,
    }
    for field, value in derived.items():
        if value < 0:
            raise PayrollValidationError(f"{field} cannot be negative: {value}", field=field)


def recompute_totals(record: PayrollRecord, overrides: Iterable[str] = ()) -> Allocation:
    """
    Recompute every total of an (edited) record from its line items and rerun
    the cascade. Mandatory lines follow basic/gross at their stored rates unless
    their amount was edited directly (listed in `overrides`, which must cover
    every revision, not just the latest edit).
    """
    total_earnings(record.earnings)
    _refresh_mandatory(record, set(overrides))
    total_deductions(record.deductions)
    _ensure_non_negative(record)

    alloc = allocate_deductions(record.earnings.total, deduction_tiers(record.deductions))
    record.deductions.total = alloc.applied
    record.summary = _summary(
        alloc,
        record.summary.carried_forward_from_previous,
        paid=record.summary.paid_amount,
    )
    return alloc


def advance_settlements(record: PayrollRecord) -> Dict[str, Decimal]:
    """advance_id -> amount this record actually deducts for that advance."""
    alloc = allocate_deductions(record.summary.gross_salary, deduction_tiers(record.deductions))
    return {k: v for k, v in alloc.applied_by_advance.items() if v > 0}


__all__ = [
    "month_key",
    "month_bounds",
    "previous_period",
    "payroll_reference",
    "validate_request",
    "compute_payroll",
    "carryforward_for_next",
    "recompute_totals",
    "advance_settlements",
]
