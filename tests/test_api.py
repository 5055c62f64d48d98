import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base
from mode_pin import ModePinClient


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    testing_session = sessionmaker(bind=engine, expire_on_commit=False)

    def override_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_db
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()


@pytest.fixture
def headers(client):
    token = client.get("/csrf-token").json()["token"]
    return {"X-CSRF-Token": token}


def _create_expense(client, headers, **overrides) -> int:
    payload = {
        "description": "Internet",
        "category": "Contas",
        "amount_cents": 9990,
        "due_day": 31,
        "payment_method": "pix",
    }
    payload.update(overrides)
    resp = client.post("/recurring", json=payload, headers=headers)
    assert resp.status_code == 200
    return resp.json()["expense"]["id"]


def test_mutations_require_csrf_token(client):
    resp = client.post(
        "/recurring",
        json={"description": "X", "category": "Y", "amount_cents": 1, "due_day": 1},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/recurring",
        json={"description": "X", "category": "Y", "amount_cents": 1, "due_day": 1},
        headers={"X-CSRF-Token": "forged"},
    )
    assert resp.status_code == 400


def test_mark_paid_flow(client, headers):
    expense_id = _create_expense(client, headers)

    resp = client.post(
        f"/recurring/{expense_id}/paid",
        json={"month": "2025-02", "paid": True},
        headers=headers,
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["ok"] is True
    assert body["created_transaction_id"] is not None

    txn = client.get(f"/transactions/{body['created_transaction_id']}").json()
    assert txn["date"] == "2025-02-28"
    assert txn["description"] == "Internet (Despesa Fixa)"

    listing = client.get("/recurring", params={"month": "2025-02"}).json()
    assert listing["items"][0]["paid"] is True
    assert listing["items"][0]["amount_due_cents"] == 9990

    totals = client.get("/months/2025-02/totals").json()
    assert totals["expense_cents"] == 9990

    resp = client.post(
        f"/recurring/{expense_id}/paid",
        json={"month": "2025-02", "paid": False},
        headers=headers,
    )
    assert resp.json()["removed_transaction_ids"] == [body["created_transaction_id"]]
    assert client.get("/months/2025-02/totals").json()["expense_cents"] == 0


def test_mark_paid_without_amount_is_a_400(client, headers):
    expense_id = _create_expense(client, headers, amount_cents=0)
    resp = client.post(
        f"/recurring/{expense_id}/paid",
        json={"month": "2025-02", "paid": True},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json() == {
        "ok": False,
        "message": "Cannot mark as paid without a defined amount",
    }


def test_unknown_expense_is_a_404(client, headers):
    resp = client.post(
        "/recurring/999/paid", json={"month": "2025-02", "paid": True}, headers=headers
    )
    assert resp.status_code == 404
    assert resp.json()["ok"] is False


def test_monthly_value_endpoints(client, headers):
    expense_id = _create_expense(client, headers)
    url = f"/recurring/{expense_id}/monthly-values/2025-03"

    resp = client.put(url, json={"value_cents": 12000}, headers=headers)
    assert resp.status_code == 200
    assert client.get(url).json()["value_cents"] == 12000

    client.put(url, json={"value_cents": None}, headers=headers)
    assert client.get(url).json()["value_cents"] == 9990

    bad = client.get(f"/recurring/{expense_id}/monthly-values/2025-3")
    assert bad.status_code == 400


def test_goal_contribution_endpoints(client, headers):
    resp = client.post(
        "/goals",
        json={
            "name": "Reserva",
            "target_amount_cents": 100000,
            "target_date": "2026-06-30",
        },
        headers=headers,
    )
    goal_id = resp.json()["goal"]["id"]

    resp = client.post(
        f"/goals/{goal_id}/contributions",
        json={"amount_cents": 2500, "date": "2025-03-10"},
        headers=headers,
    )
    body = resp.json()
    assert body["goal"]["current_amount_cents"] == 2500
    assert body["transaction"]["category"] == "Poupança para Metas"

    txn_id = body["transaction"]["id"]
    resp = client.delete(f"/goals/contributions/{txn_id}", headers=headers)
    assert resp.status_code == 200
    assert client.get(f"/goals/{goal_id}").json()["current_amount_cents"] == 0


def test_investment_installments_are_clamped(client, headers):
    resp = client.post(
        "/investments",
        json={
            "name": "CDB",
            "type": "Renda fixa",
            "value_cents": 60000,
            "installments": 6,
            "installment_value_cents": 10000,
            "start_date": "2025-01-01",
        },
        headers=headers,
    )
    investment_id = resp.json()["investment"]["id"]

    resp = client.put(
        f"/investments/{investment_id}/paid-installments",
        json={"paid_installments": 10},
        headers=headers,
    )
    assert resp.json()["investment"]["paid_installments"] == 6


def test_category_endpoints(client, headers):
    resp = client.post(
        "/categories", json={"type": "expense", "name": "Pets"}, headers=headers
    )
    assert resp.json()["ok"] is True

    resp = client.post(
        "/categories", json={"type": "expense", "name": "pets"}, headers=headers
    )
    assert resp.status_code == 400
    assert resp.json()["ok"] is False

    items = client.get("/categories", params={"type": "expense"}).json()["items"]
    assert items[0]["display_name"] == "Pets"

    resp = client.put(
        "/categories",
        json={"type": "expense", "old_name": "Pets", "new_name": "Animais"},
        headers=headers,
    )
    assert resp.json()["ok"] is True

    resp = client.delete("/categories/expense/Animais", headers=headers)
    assert resp.json()["ok"] is True


def test_trailing_window_and_rebuild(client, headers):
    client.post(
        "/transactions",
        json={
            "date": "2025-01-05",
            "description": "Salário",
            "category": "Salário",
            "amount_cents": 300000,
            "type": "income",
        },
        headers=headers,
    )
    resp = client.get("/months/trailing", params={"months": 6})
    assert len(resp.json()["items"]) == 6

    resp = client.post("/admin/rebuild-rollups", headers=headers)
    assert resp.json()["months"] == 1
    assert client.get("/months/2025-01/totals").json()["saving_rate"] == 100.0


def test_mode_switch(client, headers, monkeypatch):
    monkeypatch.setattr(
        ModePinClient, "validate", lambda self, pin, action="validate": pin == "4321"
    )

    resp = client.post(
        "/mode/switch", json={"pin": "1111", "target": "business"}, headers=headers
    )
    assert resp.status_code == 403

    resp = client.post(
        "/mode/switch", json={"pin": "4321", "target": "business"}, headers=headers
    )
    assert resp.json()["mode"] == "business"


def test_supplier_lookup_by_document(client, headers):
    resp = client.post(
        "/suppliers",
        json={
            "name": "Distribuidora Sul",
            "document": "12.345.678/0001-90",
            "product_type": "Embalagens",
        },
        headers=headers,
    )
    assert resp.status_code == 200

    found = client.get("/suppliers/by-document/12345678000190").json()
    assert found["name"] == "Distribuidora Sul"
    assert client.get("/suppliers/by-document/00000000000").status_code == 404
