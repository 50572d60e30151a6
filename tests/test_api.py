import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models import FakeListChatModel

from api.auth import create_access_token, get_db_actions
from api.main import app, get_advisor, get_field_parser, get_transcriber
from budget.models import local_now
from pipeline.advisor import FinanceAdvisor
from pipeline.field_parser import FieldParser
from pipeline.speech import SpeechTranscriber


class EmptyListResponse:
    status_code = 200
    ok = True
    text = "[]"

    def json(self):
        return []


class StubSession:
    def post(self, url, params=None, json=None, timeout=None):
        return EmptyListResponse()


@pytest.fixture
def client(db_actions):
    app.dependency_overrides[get_db_actions] = lambda: db_actions
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _onboard(client, auth):
    resp = client.put("/me/profile", headers=auth, json={
        "role": "Professional",
        "income": 50000,
        "fixed_expenses": [{"name": "Rent", "amount": 15000, "category": "Rent/EMI"}],
    })
    assert resp.status_code == 200
    return resp.json()["data"]


def test_register_then_login(client):
    resp = client.post("/auth/register", json={
        "name": "Ravi", "email": "Ravi@Example.com", "username": "ravi", "password": "secret123",
    })
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "ravi@example.com"

    dup = client.post("/auth/register", json={
        "name": "Ravi", "email": "ravi@example.com", "username": "ravi2", "password": "secret123",
    })
    assert dup.status_code == 409

    bad = client.post("/auth/login", json={"login": "ravi", "password": "wrong-one"})
    assert bad.status_code == 401

    good = client.post("/auth/login", json={"login": "ravi", "password": "secret123"})
    token = good.json()["data"]["access_token"]
    me = client.get("/me/profile", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["onboarding_complete"] is False


def test_requests_without_valid_token_are_rejected(client):
    resp = client.get("/me/profile", headers={"Authorization": "Bearer nonsense"})

    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_profile_update_derives_budget(client, auth):
    profile = _onboard(client, auth)

    assert profile["onboarding_complete"] is True
    assert profile["monthly_needs"] == 15000
    assert profile["daily_spending_limit"] == pytest.approx(500)


def test_profile_update_validates_input(client, auth):
    resp = client.put("/me/profile", headers=auth, json={"income": -5})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_transaction_lifecycle(client, auth):
    _onboard(client, auth)
    for amount in (100, 200, 50):
        resp = client.post("/me/transactions", headers=auth, json={"amount": amount, "category": "Food & Dining"})
        assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["todays_spending"] == 350
    assert data["over_daily_limit"] is False

    txn_id = data["transaction"]["id"]
    edited = client.put(f"/me/transactions/{txn_id}", headers=auth, json={"amount": 75, "description": "chai"})
    assert edited.json()["data"]["amount"] == 75

    listed = client.get("/me/transactions", headers=auth).json()["data"]
    assert len(listed["items"]) == 3
    assert listed["overall_spending"] == 375

    assert client.delete(f"/me/transactions/{txn_id}", headers=auth).json()["data"]["deleted"] is True
    assert client.delete("/me/transactions/missing", headers=auth).json()["data"]["deleted"] is False

    missing = client.put("/me/transactions/missing", headers=auth, json={"amount": 5})
    assert missing.status_code == 404


def test_goal_contributions_are_capped(client, auth):
    _onboard(client, auth)
    goal = client.post("/me/goals", headers=auth, json={
        "name": "Laptop", "target_amount": 10000, "monthly_contribution": 2000,
    }).json()["data"]
    assert goal["projected_months"] == 5

    for amount in (2000, 2000, 2000, 2000, 5000):
        resp = client.post(f"/me/goals/{goal['id']}/contributions", headers=auth, json={"amount": amount})
    data = resp.json()["data"]
    assert data["current_amount"] == 10000
    assert data["completed"] is True
    assert len(data["contributions"]) == 5

    goals = client.get("/me/goals", headers=auth).json()["data"]
    assert goals["total_saved"] == 10000
    assert goals["overcommitted"] is False


def test_emergency_fund_flow(client, auth):
    _onboard(client, auth)
    client.put("/me/emergency-fund/target", headers=auth, json={"target": 20000})
    client.post("/me/emergency-fund/deposit", headers=auth, json={"amount": 5000})

    fund = client.get("/me/emergency-fund", headers=auth).json()["data"]
    assert fund["progress_percent"] == 25
    assert fund["reached_milestone"] == "Basic Safety Net"

    resp = client.post("/me/emergency-fund/withdraw", headers=auth, json={"amount": 8000})
    assert resp.json()["data"]["fund"]["current"] == 0
    assert resp.json()["data"]["entry"]["requested_amount"] == 8000


def test_fixed_expense_toggle(client, auth):
    profile = _onboard(client, auth)
    expense_id = profile["fixed_expenses"][0]["id"]

    first = client.post(f"/me/fixed-expenses/{expense_id}/toggle-paid", headers=auth).json()["data"]
    assert first["paid"] is True
    listed = client.get("/me/fixed-expenses", headers=auth).json()["data"]
    assert listed["paid_this_month"] == 1

    second = client.post(f"/me/fixed-expenses/{expense_id}/toggle-paid", headers=auth).json()["data"]
    assert second["paid"] is False
    assert client.post("/me/fixed-expenses/missing/toggle-paid", headers=auth).status_code == 404


def test_exports(client, auth):
    _onboard(client, auth)
    client.post("/me/transactions", headers=auth, json={"amount": 40, "category": "Transport", "description": "bus"})

    csv_resp = client.get("/me/export/transactions.csv", headers=auth)
    assert csv_resp.headers["content-type"].startswith("text/csv")
    assert csv_resp.text.splitlines()[0] == "id,date,description,amount,category"

    report = client.get("/me/export/report", headers=auth).json()["data"]
    assert report["summary"]["income"] == 50000
    assert len(report["transactions"]) == 1


def test_chat_requires_onboarding_and_saves_history(client, auth):
    app.dependency_overrides[get_advisor] = lambda: FinanceAdvisor(llm=FakeListChatModel(responses=["Keep it under 500 today."]))

    blocked = client.post("/ai/chat", headers=auth, json={"message": "hi"})
    assert blocked.status_code == 400

    _onboard(client, auth)
    resp = client.post("/ai/chat", headers=auth, json={"message": "How much can I spend?", "include_context": True})
    data = resp.json()["data"]
    assert data["reply"] == "Keep it under 500 today."
    assert data["context"]["role"] == "Professional"

    history = client.get("/ai/chat/history", headers=auth).json()["data"]
    assert [m["role"] for m in history] == ["user", "ai"]


def test_spending_alerts_need_three_transactions(client, auth):
    app.dependency_overrides[get_advisor] = lambda: FinanceAdvisor(llm=FakeListChatModel(responses=['{"suggestion": "Cut shopping."}']))
    _onboard(client, auth)

    early = client.get("/ai/spending-alerts", headers=auth)
    assert early.json()["error"]["code"] == "NOT_ENOUGH_DATA"

    for amount in (100, 200, 300):
        client.post("/me/transactions", headers=auth, json={"amount": amount, "category": "Shopping"})
    data = client.get("/ai/spending-alerts", headers=auth).json()["data"]
    assert data["suggestion"] == "Cut shopping."
    assert data["suggested_daily_limit"] > 0


def test_parse_fields_endpoint(client, auth):
    model = FakeListChatModel(responses=['{"description": "Auto ride", "amount": 80, "category": "Transport"}'])
    app.dependency_overrides[get_field_parser] = lambda: FieldParser(llm_factory=lambda name: model, model_names=["m"])

    resp = client.post("/capture/parse-fields", headers=auth, json={"text": "auto ride 80", "target_form": "expense"})

    assert resp.json()["data"]["parsed"]["amount"] == 80


def test_delete_account(client, auth):
    _onboard(client, auth)

    assert client.delete("/me/profile", headers=auth).status_code == 200
    assert client.get("/me/profile", headers=auth).status_code == 404


def test_duplicate_fixed_expense_ids_are_a_validation_error(client, auth):
    _onboard(client, auth)

    resp = client.put("/me/profile", headers=auth, json={"fixed_expenses": [
        {"id": "a", "name": "Rent", "amount": 8000},
        {"id": "a", "name": "Wifi", "amount": 700},
    ]})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    assert resp.json()["error"]["details"] == {"field": "fixed_expenses"}
    assert client.get("/me/profile", headers=auth).json()["data"]["monthly_needs"] == 15000


def test_fixed_expense_view_lists_paid_months(client, auth):
    client.put("/me/profile", headers=auth, json={
        "role": "Student",
        "income": 12000,
        "fixed_expenses": [{"id": "hostel", "name": "Hostel", "amount": 5000, "start_date": "2024-01-05T00:00:00"}],
    })
    client.post("/me/fixed-expenses/hostel/toggle-paid", headers=auth)
    client.put("/me/profile", headers=auth, json={"fixed_expenses": [{"id": "hostel", "name": "Hostel", "amount": 5500}]})

    item = client.get("/me/fixed-expenses", headers=auth).json()["data"]["items"][0]
    assert item["paid_months"] == [local_now().strftime("%Y-%m")]
    assert item["start_date"] == "2024-01-05T00:00:00"
    assert item["amount"] == 5500


def test_parse_fields_tolerates_odd_model_replies(client, auth):
    model = FakeListChatModel(responses=['{"description": "Metro", "amount": 40, "category": ["Transport"]}'])
    app.dependency_overrides[get_field_parser] = lambda: FieldParser(llm_factory=lambda name: model, model_names=["m"])

    resp = client.post("/capture/parse-fields", headers=auth, json={"text": "metro 40", "target_form": "expense"})

    assert resp.status_code == 200
    assert resp.json()["data"]["parsed"]["category"] == "Other"


def test_speech_to_text_reports_bad_upstream_body(client, auth):
    app.dependency_overrides[get_transcriber] = lambda: SpeechTranscriber(api_key="k", session=StubSession())

    resp = client.post("/capture/speech-to-text", headers=auth, json={"audio": "UklGRg=="})

    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "SPEECH_TO_TEXT_FAILED"


def test_startup_creates_tables(monkeypatch):
    calls = []
    monkeypatch.setattr("api.main.init_db", lambda: calls.append("init"))

    with TestClient(app):
        assert calls == ["init"]
