# scripts/smoke_payroll.py
# End-to-end smoke test for the payroll API against a running server.
# Requires: pip install requests
#
# Flow: employee -> attendance -> advance -> generate (carry-forward) ->
#       approve -> pay -> next month picks up the carried advance.

import os
import sys
import uuid
from datetime import date, timedelta

import requests


BASE = os.getenv("PD_API", "http://127.0.0.1:8000")
ACTOR = os.getenv("PD_ACTOR", "smoke.tester")
HEADERS = {"X-Actor": ACTOR}


def must_ok(r: requests.Response, code: int = 200):
    if r.status_code != code:
        print(f"✗ Expected {code} got {r.status_code} for {r.request.method} {r.request.url}")
        print("→ Body:", r.text[:1000])
        sys.exit(1)
    return r.json()


def post(path: str, payload=None, code: int = 200):
    return must_ok(requests.post(f"{BASE}{path}", json=payload, headers=HEADERS, timeout=10), code)


def check(label: str, got, expected):
    if str(got) != str(expected):
        print(f"✗ {label}: expected {expected}, got {got}")
        sys.exit(1)
    print(f"✓ {label} = {got}")


def main():
    print(f"→ Using API {BASE}")

    # Far-future month per run so repeated runs don't collide
    year = 2090 + uuid.uuid4().int % 10
    month = 1 + uuid.uuid4().int % 11
    start = date(year, month, 1)

    # 1) Employee (monthly 3000, no allowances)
    emp = post(
        "/payroll/employees",
        {
            "code": f"SMK-{uuid.uuid4().hex[:8]}",
            "name": "Smoke Tester",
            "employment_type": "monthly",
            "monthly_rate": "3000",
            "meta": {"source": "smoke"},
        },
    )
    print("✓ employee", emp["id"])

    # 2) Twenty present days
    for i in range(20):
        post(
            "/payroll/attendance",
            {
                "employee_id": emp["id"],
                "date": (start + timedelta(days=i)).isoformat(),
                "status": "present",
                "total_hours": "8",
                "regular_hours": "8",
            },
        )

    # 3) One-installment advance larger than what the month can absorb
    adv = post("/payroll/advances", {"employee_id": emp["id"], "amount": "2800", "reason": "Smoke advance"})

    # 4) Generate: 3000 gross, 405 mandatory, 2595 of the advance, 205 carried
    rec = post("/payroll/generate", {"employee_id": emp["id"], "month": month, "year": year}, code=201)
    s = rec["summary"]
    check("gross_salary", s["gross_salary"], "3000.00")
    check("net_salary", s["net_salary"], "0.00")
    check("carried_forward_to_next", s["carried_forward_to_next"], "205.00")

    # 5) Approve + confirm a zero payment
    post(f"/payroll/{rec['id']}/approve", {"notes": "smoke"})
    paid = post(f"/payroll/{rec['id']}/pay", {"amount": "0", "payment_method": "bank"})
    check("status", paid["status"], "paid")

    ledger = must_ok(requests.get(f"{BASE}/payroll/advances/{adv['advance_id']}", timeout=10))
    check("advance remaining", ledger["remaining_amount"], "205.00")

    # 6) Next month carries the advance remainder in
    nm, ny = (1, year + 1) if month == 12 else (month + 1, year)
    nxt = post("/payroll/generate", {"employee_id": emp["id"], "month": nm, "year": ny}, code=201)
    check("carried_forward_from_previous", nxt["summary"]["carried_forward_from_previous"], "205.00")
    check("next net_salary", nxt["summary"]["net_salary"], "2390.00")

    print("✓ payroll smoke passed")


if __name__ == "__main__":
    main()
