# backend/tests/test_payroll_api.py
from __future__ import annotations


def _seed_employee(client, code="E-100", **kw):
    payload = {"code": code, "name": "Ana Santos", "employment_type": "monthly", "monthly_rate": "3000"}
    payload.update(kw)
    r = client.post("/payroll/employees", json=payload)
    assert r.status_code == 200, r.text
    emp = r.json()

    for day in range(1, 21):
        r = client.post(
            "/payroll/attendance",
            json={
                "employee_id": emp["id"],
                "date": f"2024-03-{day:02d}",
                "status": "present",
                "total_hours": "8",
                "regular_hours": "8",
            },
        )
        assert r.status_code == 200, r.text
    return emp


def _generate(client, emp, month=3):
    r = client.post("/payroll/generate", json={"employee_id": emp["id"], "month": month, "year": 2024})
    assert r.status_code == 201, r.text
    return r.json()


def test_health_and_version(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    r = client.get("/version")
    assert r.status_code == 200
    assert r.json()["policy"]["tax_rate"] == "0.025"


def test_generate_and_fetch(client):
    emp = _seed_employee(client)
    # 1) Advance of 2800 repaid in one installment
    r = client.post(
        "/payroll/advances",
        json={"employee_id": emp["id"], "amount": "2800", "reason": "Medical", "installments": 1},
    )
    assert r.status_code == 200, r.text
    advance_id = r.json()["advance_id"]

    # 2) Generate March
    rec = _generate(client, emp)
    assert rec["status"] == "draft"
    assert rec["workflow"]["created_by"] == "hr.admin"
    assert rec["summary"]["gross_salary"] == "3000.00"
    assert rec["summary"]["net_salary"] == "0.00"
    assert rec["summary"]["carried_forward_to_next"] == "205.00"
    assert rec["summary"]["carryforward_details"]["advances"][0]["advance_id"] == advance_id

    # 3) Fetch it back
    r = client.get(f"/payroll/{rec['id']}")
    assert r.status_code == 200, r.text
    assert r.json()["payroll_id"] == rec["payroll_id"]


def test_duplicate_generation_conflicts(client):
    emp = _seed_employee(client)
    _generate(client, emp)
    r = client.post("/payroll/generate", json={"employee_id": emp["id"], "month": 3, "year": 2024})
    assert r.status_code == 409, r.text


def test_unknown_ids_are_404(client):
    r = client.get("/payroll/00000000-0000-0000-0000-000000000000")
    assert r.status_code == 404
    r = client.post(
        "/payroll/generate",
        json={"employee_id": "00000000-0000-0000-0000-000000000000", "month": 3, "year": 2024},
    )
    assert r.status_code == 404


def test_request_validation(client):
    emp = _seed_employee(client)
    r = client.post("/payroll/generate", json={"employee_id": emp["id"], "month": 0, "year": 2024})
    assert r.status_code == 422
    r = client.post(
        "/payroll/deductions",
        json={"employee_id": emp["id"], "type": "absence", "amount": "10", "month": "2024-03"},
    )
    assert r.status_code == 400


def test_actor_header_is_required(client):
    emp = _seed_employee(client)
    r = client.post(
        "/payroll/generate",
        json={"employee_id": emp["id"], "month": 3, "year": 2024},
        headers={"X-Actor": ""},
    )
    assert r.status_code == 401


def test_full_workflow(client):
    emp = _seed_employee(client)
    r = client.post(
        "/payroll/deductions",
        json={"employee_id": emp["id"], "type": "penalty", "amount": "95", "reason": "Late report", "month": "2024-03"},
    )
    assert r.status_code == 200, r.text

    rec = _generate(client, emp)
    pid = rec["id"]
    assert rec["summary"]["net_salary"] == "2500.00"

    # paying a draft is a state error
    r = client.post(f"/payroll/{pid}/pay", json={"amount": "100"})
    assert r.status_code == 400

    # edit: add a bonus line
    r = client.patch(
        f"/payroll/{pid}",
        json={
            "changes": [
                {"field": "earnings.bonuses", "new_value": [{"kind": "bonus", "amount": "200", "reason": "Target"}]}
            ],
            "reason": "Sales target",
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["revision"]["revision_number"] == 1
    assert body["payroll"]["summary"]["gross_salary"] == "3200.00"
    assert body["payroll"]["summary"]["net_salary"] == "2695.00"

    r = client.post(f"/payroll/{pid}/approve", json={"notes": "ok"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"

    r = client.post(f"/payroll/{pid}/pay", json={"amount": "3000"})
    assert r.status_code == 400  # more than the unpaid balance

    r = client.post(f"/payroll/{pid}/pay", json={"amount": "695"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"
    assert r.json()["summary"]["unpaid_balance"] == "2000.00"

    r = client.post(f"/payroll/{pid}/pay", json={"amount": "2000", "payment_method": "bank"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "paid"

    r = client.delete(f"/payroll/{pid}")
    assert r.status_code == 400

    r = client.post(f"/payroll/{pid}/lock", json={"reason": "March closed"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "locked"

    r = client.patch(f"/payroll/{pid}", json={"changes": [{"field": "notes", "new_value": "late"}]})
    assert r.status_code == 400

    r = client.post(f"/payroll/{pid}/unlock")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "paid"

    r = client.post(f"/payroll/{pid}/unlock")
    assert r.status_code == 400


def test_list_stats_history_and_bulk(client):
    a = _seed_employee(client, "E-1")
    b = _seed_employee(client, "E-2")
    c = _seed_employee(client, "E-3", active=False)

    r = client.post(
        "/payroll/generate/bulk",
        json={"employee_ids": [a["id"], b["id"], c["id"]], "month": 3, "year": 2024},
    )
    assert r.status_code == 200, r.text
    res = r.json()
    assert res["generated"] == 2
    assert res["failed"] == 1
    assert res["errors"][0]["employee_id"] == c["id"]

    r = client.get("/payroll", params={"month": 3, "year": 2024})
    assert r.status_code == 200
    assert len(r.json()) == 2

    r = client.get("/payroll", params={"status": "paid"})
    assert r.json() == []

    r = client.get("/payroll/stats", params={"month": 3, "year": 2024})
    stats = r.json()
    assert stats["total"] == 2
    assert stats["draft"] == 2
    assert stats["total_net_salary"] == "5190.00"

    r = client.get(f"/payroll/employee/{a['id']}/history")
    assert r.status_code == 200
    assert r.json()["stats"]["total_payrolls"] == 1
    assert r.json()["stats"]["total_gross"] == "3000.00"


def test_negative_edit_is_a_validation_error(client):
    emp = _seed_employee(client)
    pid = _generate(client, emp)["id"]

    r = client.patch(f"/payroll/{pid}", json={"changes": [{"field": "earnings.basic.amount", "new_value": "-5000"}]})
    assert r.status_code == 400, r.text

    r = client.patch(f"/payroll/{pid}", json={"changes": [{"field": "deductions.insurance.rate", "new_value": "-50"}]})
    assert r.status_code == 400, r.text

    r = client.get(f"/payroll/{pid}")
    assert r.json()["revisions"] == []
    assert r.json()["summary"]["net_salary"] == "2595.00"


def test_month_filter_without_year_is_rejected(client):
    r = client.get("/payroll", params={"month": 3})
    assert r.status_code == 400
    r = client.get("/payroll/stats", params={"month": 3})
    assert r.status_code == 400


def test_month_summary(client):
    a = _seed_employee(client, "E-1")
    _seed_employee(client, "E-2")
    pid = _generate(client, a)["id"]

    r = client.post(f"/payroll/{pid}/approve")
    assert r.status_code == 200, r.text
    r = client.post(f"/payroll/{pid}/pay", json={"amount": "500"})
    assert r.status_code == 200, r.text

    r = client.get("/payroll/summary", params={"month": 3, "year": 2024})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total_employees"] == 2
    assert body["generated"] == 1
    assert sorted(e["status"] for e in body["employees"]) == ["not_generated", "partial"]
    assert body["statistics"]["total_net_salary"] == "2595.00"
    assert body["statistics"]["total_unpaid"] == "2095.00"

    r = client.delete(f"/payroll/{pid}")
    assert r.status_code == 400

    r = client.get("/payroll/summary", params={"month": 3})
    assert r.status_code == 422
