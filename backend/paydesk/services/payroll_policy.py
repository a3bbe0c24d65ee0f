# backend/paydesk/services/payroll_policy.py
"""
Paydesk payroll policy: loader for the configurable rates

Config precedence per field:
    1) Environment variables (override specific fields)
    2) JSON file: PD_POLICY_FILE, else paydesk/data/payroll/policy.json
    3) Built-in defaults (keeps the engine working without data files)

Fields:
    • insurance_rate        : share of BASIC withheld for social insurance (default 11%)
    • tax_rate              : share of GROSS withheld as income tax (default 2.5%)
    • overtime_multiplier   : used when the employee profile has none (default 1.5)
    • working_days_per_month: divisor for monthly → daily equivalents (default 26)
    • hours_per_day         : divisor for daily → hourly equivalents (default 8)
    • minutes_per_day       : divisor for late-minute deductions (default 480)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, Optional

from paydesk.services.money import D

logger = logging.getLogger(__name__)

# ---------------------------- Utilities ---------------------------- #

def _data_root() -> str:
    here = os.path.dirname(os.path.abspath(__file__))  # .../paydesk/services
    return os.path.normpath(os.path.join(here, "..", "data", "payroll"))

def _policy_path() -> str:
    return os.getenv("PD_POLICY_FILE") or os.path.join(_data_root(), "policy.json")

def _env_decimal(key: str, default: Decimal) -> Decimal:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw.strip())
    except Exception:
        logger.warning("Ignoring invalid %s=%r, keeping %s", key, raw, default)
        return default

def _load_json(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError):
        logger.warning("Could not read payroll policy file %s", path, exc_info=True)
        return None
    return data if isinstance(data, dict) else None

# ---------------------------- Data holder ---------------------------- #

@dataclass(frozen=True)
class PayrollPolicy:
    insurance_rate: Decimal = Decimal("0.11")
    tax_rate: Decimal = Decimal("0.025")
    overtime_multiplier: Decimal = Decimal("1.5")
    working_days_per_month: Decimal = Decimal("26")
    hours_per_day: Decimal = Decimal("8")
    minutes_per_day: Decimal = Decimal("480")

    def __post_init__(self) -> None:
        for name in ("insurance_rate", "tax_rate", "overtime_multiplier"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        for name in ("working_days_per_month", "hours_per_day", "minutes_per_day"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def with_overrides(self, **fields: Any) -> "PayrollPolicy":
        return replace(self, **{k: D(v) for k, v in fields.items()})

# ---------------------------- Loader ---------------------------- #

_ENV_KEYS = {
    "insurance_rate": "PD_INSURANCE_RATE",
    "tax_rate": "PD_TAX_RATE",
    "overtime_multiplier": "PD_OVERTIME_MULTIPLIER",
    "working_days_per_month": "PD_WORKING_DAYS",
    "hours_per_day": "PD_HOURS_PER_DAY",
    "minutes_per_day": "PD_MINUTES_PER_DAY",
}

@lru_cache(maxsize=1)
def load_policy() -> PayrollPolicy:
    base = PayrollPolicy()
    raw = _load_json(_policy_path()) or {}

    values: Dict[str, Decimal] = {}
    for field, env_key in _ENV_KEYS.items():
        current = getattr(base, field)
        if field in raw:
            current = D(raw[field])
        values[field] = _env_decimal(env_key, current)

    policy = PayrollPolicy(**values)
    logger.debug("Loaded payroll policy: %s", policy)
    return policy

def reset_policy_cache() -> None:
    load_policy.cache_clear()

__all__ = ["PayrollPolicy", "load_policy", "reset_policy_cache"]
