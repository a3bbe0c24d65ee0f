# backend/paydesk/models/__init__.py
"""
Central model registry.

Import this once at startup (e.g., in main.py, alembic env.py) so SQLAlchemy
sees all mapped classes before relationships are resolved.
"""
from paydesk.db import Base  # re-export Base

from .payroll import (  # noqa: F401
    Advance,
    AttendanceRecord,
    Deduction,
    Employee,
    Payroll,
)

__all__ = ["Base", "Employee", "AttendanceRecord", "Advance", "Deduction", "Payroll"]
