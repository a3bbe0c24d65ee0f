# backend/paydesk/services/payroll_errors.py
"""
Payroll error hierarchy.

User-facing failures derive from PayrollError (a ValueError, matching how the
rest of the services signal bad input). CarryforwardInvariantError is a
programming error: money would be lost or duplicated, so the computation is
aborted and the error must never be translated into a 4xx.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class PayrollError(ValueError):
    """Base class for payroll errors surfaced to callers."""


class PayrollValidationError(PayrollError):
    def __init__(self, message: str, *, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicatePeriodError(PayrollError):
    def __init__(self, employee_id: str, month: int, year: int):
        super().__init__(
            f"Payroll already exists for employee {employee_id} in {year}-{month:02d}"
        )
        self.employee_id = employee_id
        self.month = month
        self.year = year


class PayrollNotFoundError(PayrollError):
    pass


class PayrollStateError(PayrollError):
    def __init__(self, message: str, *, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class AdvanceNotFoundError(PayrollError):
    def __init__(self, advance_id: str):
        super().__init__(f"Advance not found: {advance_id}")
        self.advance_id = advance_id


class CarryforwardInvariantError(RuntimeError):
    def __init__(self, message: str, *, category: Optional[str] = None,
                 expected: Optional[Decimal] = None, actual: Optional[Decimal] = None):
        super().__init__(message)
        self.category = category
        self.expected = expected
        self.actual = actual


__all__ = [
    "PayrollError",
    "PayrollValidationError",
    "DuplicatePeriodError",
    "PayrollNotFoundError",
    "PayrollStateError",
    "AdvanceNotFoundError",
    "CarryforwardInvariantError",
]
