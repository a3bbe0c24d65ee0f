# paydesk/api/system.py
from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter
from sqlalchemy import text

from paydesk.db import DATABASE_URL, engine
from paydesk.services.payroll_policy import load_policy

router = APIRouter(tags=["ops"])


def _db_driver_from_url(url: str | None) -> str | None:
    if not url or "://" not in url:
        return None
    scheme = url.split("://", 1)[0]  # e.g., "postgresql+psycopg2"
    if "+" in scheme:
        return scheme.split("+", 1)[1]  # "psycopg2"
    return scheme


@router.get("/health")
def health():
    """Liveness check with a lightweight DB probe and local time."""
    tz = os.getenv("TZ", "UTC")
    now_local = datetime.now(ZoneInfo(tz)).isoformat()

    db = {"status": "ok", "driver": _db_driver_from_url(DATABASE_URL)}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        db["status"] = f"error: {type(e).__name__}"

    return {
        "status": "ok",
        "time": {"tz": tz, "now": now_local},
        "db": db,
    }


@router.get("/version")
def version():
    """Runtime info plus the payroll policy in effect."""
    policy = load_policy()
    return {
        "app": "Paydesk Payroll",
        "db_driver": _db_driver_from_url(DATABASE_URL),
        "tz": os.getenv("TZ", "UTC"),
        "policy": {
            "insurance_rate": str(policy.insurance_rate),
            "tax_rate": str(policy.tax_rate),
            "overtime_multiplier": str(policy.overtime_multiplier),
            "working_days_per_month": policy.working_days_per_month,
            "hours_per_day": policy.hours_per_day,
            "minutes_per_day": policy.minutes_per_day,
        },
    }
