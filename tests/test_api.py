import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import Base
from main import app, get_db


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def signup_and_login(client, email: str = "user@example.com") -> tuple[str, dict]:
    created = client.post(
        "/api/v1/auth/signup",
        json={"email": email, "username": "johndoe", "password": "secret123"},
    )
    assert created.status_code == 201
    login = client.post(
        "/api/v1/auth/login", json={"email": email, "password": "secret123"}
    )
    assert login.status_code == 200
    body = login.json()
    return body["token"], {"Authorization": f"Bearer {body['token']}"}


def test_signup_rejects_duplicates_and_login_checks_password(client) -> None:
    token, _ = signup_and_login(client)
    assert token

    duplicate = client.post(
        "/api/v1/auth/signup",
        json={"email": "user@example.com", "username": "again", "password": "x"},
    )
    assert duplicate.status_code == 409

    wrong = client.post(
        "/api/v1/auth/login", json={"email": "user@example.com", "password": "nope"}
    )
    assert wrong.status_code == 401

    unknown = client.post(
        "/api/v1/auth/login", json={"email": "ghost@example.com", "password": "x"}
    )
    assert unknown.status_code == 404

    invalid = client.post(
        "/api/v1/auth/signup",
        json={"email": "not-an-email", "username": "x", "password": "x"},
    )
    assert invalid.status_code == 422


def test_routes_require_a_valid_token(client) -> None:
    missing = client.get("/api/v1/expense/find")
    assert missing.status_code == 401

    forged = client.get(
        "/api/v1/expense/find", headers={"Authorization": "Bearer forged.token"}
    )
    assert forged.status_code == 403


def test_income_lifecycle_and_monthly_balance(client) -> None:
    _, headers = signup_and_login(client)

    for amount, day in ((1000, "05"), (2000, "20")):
        response = client.post(
            "/api/v1/income/create",
            json={"amount": amount, "source": "Salary", "date": f"2025-06-{day}T00:00:00"},
            headers=headers,
        )
        assert response.status_code == 201
    expense = client.post(
        "/api/v1/expense/create",
        json={"amount": 250.5, "description": "Groceries", "date": "2025-06-07"},
        headers=headers,
    )
    assert expense.status_code == 201
    assert expense.json()["description"] == "Groceries"

    found = client.get(
        "/api/v1/income/find",
        params={"minAmount": 1500, "page": "one", "limit": "ten"},
        headers=headers,
    )
    assert found.status_code == 200
    body = found.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["limit"] == 10
    assert body["data"][0]["amount"] == 2000

    june = client.get(
        "/api/v1/finance/balance", params={"month": "2025-06-01"}, headers=headers
    )
    assert june.json() == {
        "month": "2025-06",
        "totalIncome": 3000,
        "totalExpense": 250.5,
        "balance": 2749.5,
    }

    july = client.get(
        "/api/v1/finance/balance", params={"month": "2025-07-01"}, headers=headers
    )
    assert july.json()["totalIncome"] == 0

    missing_month = client.get("/api/v1/finance/balance", headers=headers)
    assert missing_month.status_code == 400
    bad_month = client.get(
        "/api/v1/finance/balance", params={"month": "June"}, headers=headers
    )
    assert bad_month.status_code == 400


def test_update_and_remove_status_codes(client) -> None:
    _, headers = signup_and_login(client)
    created = client.post(
        "/api/v1/expense/create",
        json={"amount": 10, "description": "Taxi", "date": "2025-01-02"},
        headers=headers,
    ).json()

    updated = client.put(
        f"/api/v1/expense/update/{created['id']}",
        json={"amount": 12},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["amount"] == 12
    assert updated.json()["description"] == "Taxi"

    not_found = client.put(
        f"/api/v1/expense/update/{'0' * 32}", json={"amount": 1}, headers=headers
    )
    assert not_found.status_code == 404

    malformed = client.put(
        "/api/v1/expense/update/xyz", json={"amount": 1}, headers=headers
    )
    assert malformed.status_code == 400

    removed = client.delete(f"/api/v1/expense/remove/{created['id']}", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["amount"] == 12

    gone = client.delete(f"/api/v1/expense/remove/{created['id']}", headers=headers)
    assert gone.status_code == 404


def test_summary_reports_savings_progress(client) -> None:
    _, headers = signup_and_login(client)
    client.post(
        "/api/v1/saving/create",
        json={"title": "Emergency Fund", "targetAmount": 5000, "currentAmount": 1250},
        headers=headers,
    )
    client.post(
        "/api/v1/income/create",
        json={"amount": 8000, "date": "2025-06-30T00:00:00"},
        headers=headers,
    )
    client.post(
        "/api/v1/expense/create",
        json={"amount": 6200, "description": "Rent", "date": "2025-06-01"},
        headers=headers,
    )

    response = client.get(
        "/api/v1/finance/summary",
        params={"from": "2025-06-01", "to": "2025-06-30"},
        headers=headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["period"]["from"].startswith("2025-06-01")
    assert body["totalIncome"] == 8000
    assert body["totalExpenses"] == 6200
    assert body["netBalance"] == 1800
    assert body["savings"]["totalContributed"] == 1250
    assert body["savings"]["goals"][0]["progressPercent"] == 25

    goals = client.get("/api/v1/saving/find", headers=headers).json()
    assert goals["data"][0]["progress"] == 25

    bad = client.get(
        "/api/v1/finance/summary", params={"from": "soon"}, headers=headers
    )
    assert bad.status_code == 400


def test_export_streams_pdf(client, monkeypatch) -> None:
    _, headers = signup_and_login(client)
    client.post(
        "/api/v1/expense/create",
        json={"amount": 9.99, "description": "Book", "date": "2025-03-03"},
        headers=headers,
    )
    captured = {}

    def fake_build_report(kind, records):
        captured["kind"] = kind
        captured["count"] = len(records)
        return b"%PDF-1.7 fake"

    monkeypatch.setattr(main, "build_report", fake_build_report)

    response = client.get("/api/v1/expense/export", headers=headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content == b"%PDF-1.7 fake"
    assert captured == {"kind": main.RecordKind.expense, "count": 1}
