"""
Tests for the HTTP endpoints (webhook and reports).
"""

import pytest
from fastapi.testclient import TestClient

import main
from src.core.config import Settings
from src.core.gemini import GeminiClient
from tests.conftest import make_event


@pytest.fixture
def client(session_factory):
    settings = Settings(
        DATABASE_URL="sqlite://",
        TELEGRAM_BOT_TOKEN="test-token",
        SKIP_CHAT_DELIVERY=True,
        TIMEZONE="UTC",
        _env_file=None,
    )
    gemini = GeminiClient(api_key=None, model_name="m", default_model="m")
    main.configure_app_state(main.app, settings, session_factory, gemini_client=gemini)
    # No context manager: the lifespan (real settings, real engine) is not run
    return TestClient(main.app)


def update(text, message_id=1, user_id=42, chat_id=100):
    return {
        "update_id": 1000 + message_id,
        "message": {
            "message_id": message_id,
            "from": {"id": user_id, "username": "seller"},
            "chat": {"id": chat_id, "type": "private"},
            "date": 1736985600,
            "text": text,
        },
    }


class TestWebhook:

    def test_entry_flow_over_http(self, client):
        header = "HDR\nDATE: 2025-01-16\nNAME: Sok Dara\nPHONE: 093724678\nPAGE: Facebook\nFOLLOWER: Srey Sros"

        first = client.post("/webhook", json=update(header, 1))
        assert first.status_code == 200
        assert first.json()["response"].startswith("Select the customer's response reason")

        assert client.post("/webhook", json=update("B", 2)).status_code == 200
        last = client.post("/webhook", json=update("-", 3))
        assert last.json() == {"response": "Saved."}

        events = main.app.state.repository.list_events()
        assert len(events) == 1
        assert events[0].reason_code == "B"
        assert events[0].source.message_id == "1"

    def test_update_without_text(self, client):
        payload = update("x")
        del payload["message"]["text"]
        response = client.post("/webhook", json=payload)

        assert response.status_code == 200
        assert response.json() == {"response": ""}

    def test_unexpected_error_still_returns_200(self, client, monkeypatch):
        async def boom(message):
            raise RuntimeError("kaput")

        monkeypatch.setattr(main.app.state.message_router, "handle", boom)
        response = client.post("/webhook", json=update("hello"))

        assert response.status_code == 200
        assert response.json()["response"].startswith("Sorry")


class TestReports:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        body = client.get("/reports/health").json()
        assert body["status"] == "ok"
        assert body["service"] == "reports"

    def test_daily_requires_date(self, client):
        response = client.get("/reports/daily")
        assert response.status_code == 400
        assert response.json() == {
            "error": "Date parameter is required in YYYY-MM-DD format",
            "status": "error",
        }

    @pytest.mark.parametrize("value", ["16-01-2025", "2025-02-30", "today"])
    def test_daily_bad_date(self, client, value):
        response = client.get("/reports/daily", params={"date": value})
        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_daily(self, client):
        main.app.state.repository.save_events([
            make_event(phone="011", day="2025-01-16", reason_code="A"),
            make_event(phone="022", day="2025-01-17"),
        ])
        body = client.get("/reports/daily", params={"date": "2025-01-16"}).json()

        assert body["total_events"] == 1
        assert body["by_status"] == {"A - Too expensive": 1}

    @pytest.mark.parametrize("value", [None, "2025-13", "2025-1", "Jan"])
    def test_monthly_bad_month(self, client, value):
        params = {"month": value} if value else {}
        response = client.get("/reports/monthly", params=params)
        assert response.status_code == 400
        assert response.json()["status"] == "error"

    def test_monthly(self, client):
        main.app.state.repository.save_events([make_event(phone="011", day="2025-01-16")])
        body = client.get("/reports/monthly", params={"month": "2025-01"}).json()

        assert body["month"] == "2025-01"
        assert body["total_cases"] == 1

    def test_cases(self, client):
        main.app.state.repository.save_events([
            make_event(phone="011", day="2025-01-02", follower="Srey Sros"),
            make_event(phone="011", day="2025-01-06", follower="Srey Sros", reason_code="C"),
        ])
        body = client.get("/reports/cases", params={"follower": "Srey Sros", "month": "2025-01"}).json()

        assert body["total"] == 1
        case = body["cases"][0]
        assert case["current_status"] == "C"
        assert case["first_contact_date"] == "2025-01-02"
        assert case["total_events"] == 2

    def test_cases_requires_follower(self, client):
        response = client.get("/reports/cases", params={"month": "2025-01"})
        assert response.status_code == 400

    def test_cases_storage_error(self, client, monkeypatch):
        def boom(month, follower=None):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(main.app.state.case_service, "cases_for_month", boom)
        response = client.get("/reports/cases", params={"follower": "Srey Sros", "month": "2025-01"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to load cases", "status": "error"}
