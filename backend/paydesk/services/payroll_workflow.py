# backend/paydesk/services/payroll_workflow.py
"""
Payroll record lifecycle.

    draft -> pending -> approved -> paid -> locked

- edit:    any state except locked; every change lands in a numbered revision,
           totals and the carry-forward cascade are recomputed, and a paid
           record drops back to pending (payment must be confirmed again)
- approve: any state except locked
- pay:     approved only; partial payments keep the record approved, the
           record becomes paid once nothing is left unpaid
- lock / unlock: lock blocks edits and deletion; unlock restores paid when the
           payment was confirmed and nothing is unpaid, approved otherwise
- delete:  refused for paid or locked records and once any payment was recorded

These functions mutate in-memory records only; persistence and atomicity
are handled by paydesk.services.payroll_store.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from paydesk.schemas.payroll import (
    AdvanceDeductionEntry,
    AdvanceRecord,
    FieldChange,
    PayrollComputation,
    PayrollRecord,
    Revision,
    RevisionChange,
)
from paydesk.services.money import ZERO, D, q2
from paydesk.services.payroll import advance_settlements, payroll_reference, recompute_totals
from paydesk.services.payroll_errors import (
    AdvanceNotFoundError,
    PayrollStateError,
    PayrollValidationError,
)

logger = logging.getLogger(__name__)

EDITABLE_ROOTS = ("earnings", "deductions", "notes")

# derived on every recompute; editing them directly would be overwritten
DERIVED_FIELDS = {
    "total",
    "allowances_total",
    "bonuses_total",
    "mandatory_total",
    "absence_total",
    "late_total",
    "attendance_total",
    "advances_total",
    "penalties_total",
    "other_total",
    "total_requested",
    "base_amount",
}

_INDEX = re.compile(r"^\d+$")


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


# ------------------------------ Path helpers ------------------------------ #

def _split(path: str) -> List[str]:
    parts = [p for p in path.strip().split(".") if p]
    if not parts or parts[0] not in EDITABLE_ROOTS:
        raise PayrollValidationError(f"Field '{path}' is not editable", field=path)
    if parts[-1] in DERIVED_FIELDS:
        raise PayrollValidationError(f"Field '{path}' is computed and cannot be edited", field=path)
    return parts


def _step(container: Any, key: str, path: str) -> Any:
    if isinstance(container, list) and _INDEX.match(key):
        idx = int(key)
        if idx >= len(container):
            raise PayrollValidationError(f"Index {idx} out of range in '{path}'", field=path)
        return container[idx]
    if isinstance(container, dict) and key in container:
        return container[key]
    raise PayrollValidationError(f"Unknown field '{path}'", field=path)


def get_nested_value(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for key in _split(path):
        current = _step(current, key, path)
    return current


def set_nested_value(data: Dict[str, Any], path: str, value: Any) -> None:
    parts = _split(path)
    parent: Any = data
    for key in parts[:-1]:
        parent = _step(parent, key, path)
    last = parts[-1]
    _step(parent, last, path)  # the target must already exist
    if isinstance(parent, list):
        parent[int(last)] = value
    else:
        parent[last] = value


# ------------------------------- Transitions ------------------------------ #

def open_record(
    computation: PayrollComputation,
    *,
    created_by: Optional[str],
    record_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PayrollRecord:
    """Wrap a fresh computation into a draft payroll record."""
    month, year = int(computation.month[-2:]), computation.year
    payload = computation.model_dump()
    record = PayrollRecord(
        id=record_id,
        payroll_id=payroll_reference(computation.employee_id, month, year),
        status="draft",
        **payload,
    )
    record.workflow.created_at = _now(now)
    record.workflow.created_by = created_by
    return record


def _ensure_unlocked(record: PayrollRecord, action: str) -> None:
    if record.workflow.is_locked or record.status == "locked":
        raise PayrollStateError(f"Payroll {record.payroll_id} is locked; cannot {action}", status=record.status)


def edit_record(
    record: PayrollRecord,
    changes: Iterable[FieldChange],
    *,
    edited_by: Optional[str],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Revision:
    _ensure_unlocked(record, "edit")
    changes = list(changes)
    if not changes:
        raise PayrollValidationError("No changes supplied", field="changes")

    data = record.model_dump()
    revision = Revision(revision_number=len(record.revisions) + 1, date=_now(now), edited_by=edited_by)

    for change in changes:
        old_value = get_nested_value(data, change.field)
        set_nested_value(data, change.field, change.new_value)
        revision.changes.append(
            RevisionChange(
                field=change.field,
                old_value=to_jsonable_python(old_value),
                new_value=to_jsonable_python(change.new_value),
                reason=change.reason or reason,
            )
        )

    try:
        edited = PayrollRecord.model_validate(data)
    except ValidationError as e:
        raise PayrollValidationError(f"Invalid payroll edit: {e.errors()[0]['msg']}") from e

    # manual overrides from earlier revisions stay in force
    overrides = {c.field for r in record.revisions for c in r.changes}
    overrides.update(c.field for c in changes)
    recompute_totals(edited, overrides=overrides)

    record.earnings = edited.earnings
    record.deductions = edited.deductions
    record.summary = edited.summary
    record.notes = edited.notes
    record.revisions.append(revision)
    record.workflow.payment_confirmed = False
    if record.status == "paid":
        record.status = "pending"

    logger.info(
        "edit payroll=%s revision=%s fields=%s",
        record.payroll_id, revision.revision_number, [c.field for c in changes],
    )
    return revision


def approve_record(
    record: PayrollRecord,
    *,
    approved_by: Optional[str],
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PayrollRecord:
    _ensure_unlocked(record, "approve")
    record.status = "approved"
    record.workflow.approved_at = _now(now)
    record.workflow.approved_by = approved_by
    record.workflow.approval_notes = notes
    logger.info("approve payroll=%s by=%s", record.payroll_id, approved_by)
    return record


def pay_record(
    record: PayrollRecord,
    amount: Decimal,
    *,
    paid_by: Optional[str],
    method: Optional[str] = None,
    reference: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PayrollRecord:
    if record.status != "approved":
        raise PayrollStateError(
            f"Payroll {record.payroll_id} must be approved before payment (status={record.status})",
            status=record.status,
        )

    amount = q2(amount)
    summary = record.summary
    outstanding = max(q2(summary.net_salary - summary.paid_amount), ZERO)
    if amount < 0:
        raise PayrollValidationError("Payment amount cannot be negative", field="amount")
    if amount > outstanding:
        raise PayrollValidationError(
            f"Payment {amount} exceeds unpaid balance {outstanding}", field="amount"
        )
    if amount == 0 and outstanding > 0:
        raise PayrollValidationError("Payment amount must be positive", field="amount")

    summary.paid_amount = q2(summary.paid_amount + amount)
    summary.unpaid_balance = q2(summary.net_salary - summary.paid_amount)
    if summary.unpaid_balance <= 0:
        summary.unpaid_balance = ZERO
        record.status = "paid"
    record.workflow.payment_confirmed = record.status == "paid"

    record.workflow.paid_at = _now(now)
    record.workflow.paid_by = paid_by
    record.workflow.payment_method = method
    record.workflow.payment_reference = reference

    logger.info(
        "pay payroll=%s amount=%s paid=%s unpaid=%s status=%s",
        record.payroll_id, amount, summary.paid_amount, summary.unpaid_balance, record.status,
    )
    return record


def lock_record(
    record: PayrollRecord,
    *,
    locked_by: Optional[str],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PayrollRecord:
    if record.workflow.is_locked:
        raise PayrollStateError(f"Payroll {record.payroll_id} is already locked", status=record.status)
    record.status = "locked"
    record.workflow.locked_at = _now(now)
    record.workflow.locked_by = locked_by
    record.workflow.lock_reason = reason
    logger.info("lock payroll=%s by=%s", record.payroll_id, locked_by)
    return record


def unlock_record(record: PayrollRecord, *, reason: Optional[str] = None) -> PayrollRecord:
    if not record.workflow.is_locked:
        raise PayrollStateError(f"Payroll {record.payroll_id} is not locked", status=record.status)
    fully_paid = record.workflow.payment_confirmed and record.summary.unpaid_balance <= 0
    record.status = "paid" if fully_paid else "approved"
    record.workflow.locked_at = None
    record.workflow.locked_by = None
    record.workflow.unlock_reason = reason
    logger.info("unlock payroll=%s status=%s", record.payroll_id, record.status)
    return record


def ensure_deletable(record: PayrollRecord) -> None:
    if record.status in ("paid", "locked") or record.workflow.is_locked:
        raise PayrollStateError(
            f"Payroll {record.payroll_id} is {record.status}; paid or locked payrolls cannot be deleted",
            status=record.status,
        )
    if record.workflow.paid_at is not None or record.summary.paid_amount > 0:
        # advance ledgers already reference this record
        raise PayrollStateError(
            f"Payroll {record.payroll_id} has recorded payments and cannot be deleted",
            status=record.status,
        )


# ----------------------------- Advance ledger ----------------------------- #

def settle_advances(
    record: PayrollRecord,
    advances: Dict[str, AdvanceRecord],
    *,
    now: Optional[datetime] = None,
) -> List[AdvanceRecord]:
    """
    Post this record's applied advance deductions to the advance ledgers.

    One history entry per advance and payroll record: settling again (e.g. a
    second partial payment, or a re-approved edit) only adjusts the existing
    entry by the difference, so the same money is never charged twice.
    """
    if not record.id:
        raise PayrollValidationError("Payroll record must be persisted before settling advances")

    touched: List[AdvanceRecord] = []
    for advance_id, applied in sorted(advance_settlements(record).items()):
        adv = advances.get(advance_id)
        if adv is None:
            raise AdvanceNotFoundError(advance_id)

        entry = next(
            (h for h in adv.deduction_history if h.payroll_record_id == record.id), None
        )
        previous = entry.amount if entry else ZERO
        target = min(applied, q2(adv.remaining_amount + previous))
        if target < applied:
            logger.warning(
                "advance=%s payroll=%s applied %s exceeds open balance; capped at %s",
                advance_id, record.payroll_id, applied, target,
            )
        delta = q2(target - previous)
        if delta == 0:
            continue

        if entry is None:
            adv.deduction_history.append(
                AdvanceDeductionEntry(
                    month=record.month,
                    amount=target,
                    payroll_record_id=record.id,
                    date=_now(now),
                )
            )
        else:
            entry.amount = target
            entry.date = _now(now)

        adv.total_paid = q2(D(adv.total_paid) + delta)
        adv.remaining_amount = q2(adv.original_amount - adv.total_paid)
        if adv.remaining_amount <= 0:
            adv.remaining_amount = ZERO
            adv.status = "completed"
        elif adv.status == "completed":
            adv.status = "paid"

        logger.info(
            "advance=%s payroll=%s deducted=%s remaining=%s status=%s",
            advance_id, record.payroll_id, target, adv.remaining_amount, adv.status,
        )
        touched.append(adv)
    return touched


__all__ = [
    "get_nested_value",
    "set_nested_value",
    "open_record",
    "edit_record",
    "approve_record",
    "pay_record",
    "lock_record",
    "unlock_record",
    "ensure_deletable",
    "settle_advances",
]
