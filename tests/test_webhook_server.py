from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from aiogram.exceptions import TelegramBadRequest

import webhook_server
from conftest import STAFF_CHAT_ID, sent_messages
from database.models import TelegramCustomer

ADMIN = {"Authorization": "Bearer admintoken"}


@pytest.fixture
async def client(monkeypatch, container):
    monkeypatch.setattr(
        webhook_server,
        "support_bot",
        SimpleNamespace(is_running=lambda: True, container=container, uptime_seconds=lambda: 1),
    )
    monkeypatch.setattr(webhook_server.config, "admin_api_token", "admintoken")
    monkeypatch.setattr(webhook_server.config, "webhook_secret", "")
    transport = httpx.ASGITransport(app=webhook_server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as c:
        yield c


def _webhook_path():
    return webhook_server.config.webhook_path


async def test_webhook_acks_update_without_action(client, bot):
    r = await client.post(_webhook_path(), json={"update_id": 10})
    assert r.status_code == 200
    assert r.json() == {"success": True}
    bot.send_message.assert_not_awaited()


async def test_webhook_bad_json_is_500(client):
    r = await client.post(_webhook_path(), content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 500
    assert "error" in r.json()


async def test_webhook_malformed_update_is_acked(client):
    r = await client.post(_webhook_path(), json={"hello": "world"})
    assert r.status_code == 200
    assert r.json() == {"success": True}


async def test_webhook_secret_is_checked(client, monkeypatch):
    monkeypatch.setattr(webhook_server.config, "webhook_secret", "s3cret")
    r = await client.post(_webhook_path(), json={"update_id": 11})
    assert r.status_code == 401

    ok = await client.post(
        _webhook_path(), json={"update_id": 12}, headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"}
    )
    assert ok.status_code == 200


async def test_webhook_routes_message_to_router(client, bot):
    update = {
        "update_id": 13,
        "message": {
            "message_id": 5,
            "date": 1700000000,
            "chat": {"id": 321, "type": "private"},
            "from": {"id": 321, "is_bot": False, "first_name": "Ada"},
            "text": "/start",
        },
    }
    r = await client.post(_webhook_path(), json=update)
    assert r.status_code == 200
    ((chat_id, text),) = sent_messages(bot)
    assert chat_id == 321
    assert "Welcome" in text


async def test_widget_chat_round_trip(client, bot):
    r = await client.post("/api/chat/send", json={"message": "Is this in stock?", "visitorName": "Jane"})
    assert r.status_code == 200
    session_id = r.json()["sessionId"]
    assert sent_messages(bot)[0][0] == STAFF_CHAT_ID

    r = await client.get(f"/api/chat/{session_id}/messages")
    assert r.status_code == 200
    assert [m["message_text"] for m in r.json()["messages"]] == ["Is this in stock?"]


async def test_widget_chat_rejects_empty_message(client):
    r = await client.post("/api/chat/send", json={"message": "  "})
    assert r.status_code == 400


async def test_widget_chat_send_failure_is_502(client, bot):
    bot.send_message.side_effect = TelegramBadRequest(method=MagicMock(), message="Bad Request: chat not found")
    r = await client.post("/api/chat/send", json={"message": "hello"})
    assert r.status_code == 502


async def test_rating_requires_closed_session(client):
    session_id = (await client.post("/api/chat/send", json={"message": "hi"})).json()["sessionId"]

    r = await client.post(f"/api/chat/{session_id}/rating", json={"rating": 5})
    assert r.status_code == 400

    r = await client.post(f"/api/admin/sessions/{session_id}/status", json={"status": "closed"}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["session"]["ended_at"] is not None

    r = await client.post(f"/api/chat/{session_id}/rating", json={"rating": 5, "feedback": "great"})
    assert r.status_code == 200
    assert r.json()["session"]["rating"] == 5


async def test_admin_endpoints_need_token(client):
    r = await client.post("/api/admin/relay", json={"chatId": 42, "message": "hi"})
    assert r.status_code == 401
    r = await client.post("/api/sweeps/low-stock", headers={"X-Admin-Token": "wrong"})
    assert r.status_code == 401


async def test_admin_relay_prefixes_reply(client, bot):
    r = await client.post("/api/admin/relay", json={"chatId": 42, "message": "Your parcel left today"}, headers=ADMIN)
    assert r.status_code == 200
    ((chat_id, text),) = sent_messages(bot)
    assert chat_id == 42
    assert text.startswith("💬 <b>Support Team:</b>")


async def test_admin_relay_platform_rejection_is_502(client, bot):
    bot.send_message.side_effect = TelegramBadRequest(method=MagicMock(), message="Bad Request: chat not found")
    r = await client.post("/api/admin/relay", json={"chatId": 42, "message": "hi"}, headers=ADMIN)
    assert r.status_code == 502


async def test_admin_session_update_and_delete(client):
    session_id = (await client.post("/api/chat/send", json={"message": "hi"})).json()["sessionId"]

    r = await client.patch(
        f"/api/admin/sessions/{session_id}", json={"priority": "urgent", "isStarred": True}, headers=ADMIN
    )
    assert r.status_code == 200
    assert r.json()["session"]["priority"] == "urgent"

    r = await client.patch(f"/api/admin/sessions/{session_id}", json={"priority": "asap"}, headers=ADMIN)
    assert r.status_code == 400

    r = await client.post("/api/admin/sessions/delete", json={"sessionIds": [session_id]}, headers=ADMIN)
    assert r.json()["deleted"] == 1
    assert (await client.get(f"/api/chat/{session_id}/messages")).status_code == 404


async def test_customers_csv_export(client, database):
    async with database.session() as session:
        session.add(TelegramCustomer(chat_id=55, first_name="Ada", username="ada", email="ada@example.com"))

    r = await client.get("/api/admin/customers.csv", headers=ADMIN)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.splitlines()
    assert lines[0] == '"Name","Username","Email","Phone","Chat ID","Last Active","Joined"'
    assert lines[1].startswith('"Ada","ada","ada@example.com","","55",')


async def test_sweep_endpoint(client):
    r = await client.post("/api/sweeps/abandoned-carts", headers=ADMIN)
    assert r.status_code == 200
    assert r.json() == {"sweep": "abandoned-carts", "attempted": 0, "succeeded": 0, "failed": 0}

    r = await client.post("/api/sweeps/nope", headers=ADMIN)
    assert r.status_code == 404


async def test_order_notify_unknown_order_is_404(client):
    r = await client.post("/api/admin/orders/missing/notify", headers=ADMIN)
    assert r.status_code == 404


async def test_checkout_validation(client):
    r = await client.post("/api/checkout/validate", json={"customer_email": "bad"})
    assert r.status_code == 400
    fields = {e["field"] for e in r.json()["errors"]}
    assert {"customer_email", "customer_name", "items"} <= fields


async def test_health(client):
    r = await client.get("/health")
    assert r.json()["status"] == "ok"
    assert "database_ok" not in r.json()

    r = await client.get("/health", headers=ADMIN)
    body = r.json()
    assert body["database_ok"] is True
    assert body["tables"]["chat_sessions"] == 0


async def test_not_ready_returns_503(monkeypatch):
    monkeypatch.setattr(webhook_server, "support_bot", None)
    transport = httpx.ASGITransport(app=webhook_server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as c:
        r = await c.post("/api/chat/send", json={"message": "hi"})
    assert r.status_code == 503


async def test_webhook_before_startup_is_500(monkeypatch):
    monkeypatch.setattr(webhook_server, "support_bot", None)
    monkeypatch.setattr(webhook_server.config, "webhook_secret", "")
    update = {
        "update_id": 14,
        "message": {
            "message_id": 6,
            "date": 1700000000,
            "chat": {"id": 321, "type": "private"},
            "from": {"id": 321, "is_bot": False, "first_name": "Ada"},
            "text": "/start",
        },
    }
    transport = httpx.ASGITransport(app=webhook_server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://relay.test") as c:
        r = await c.post(_webhook_path(), json=update)
    assert r.status_code == 500
    assert r.json() == {"error": "bot not ready"}
