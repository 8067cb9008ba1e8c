from __future__ import annotations

from paychat.repositories import chat_repository as repo
from tests.utils import payment_headers

WALLET = "HistoryWallet111111111111111111111111111111"


def _create(client, **extra) -> dict:
    resp = client.post("/api/chats", json={"walletAddress": WALLET, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()["chat"]


def test_wallet_address_is_required(client):
    resp = client.get("/api/chats")

    assert resp.status_code == 400
    assert resp.json()["error"] == "walletAddress query parameter is required"


def test_create_and_list_chats(client):
    first = _create(client, title="  Trip planning  ")
    second = _create(client, model="gpt-5")

    assert first["title"] == "Trip planning"
    assert second["title"] == "New Chat"
    assert second["aiModel"] == "gpt-5"
    assert second["totalMessages"] == 0

    listed = client.get("/api/chats", params={"walletAddress": WALLET}).json()["chats"]
    assert {c["id"] for c in listed} == {first["id"], second["id"]}


def test_create_chat_rejects_unknown_model(client):
    resp = client.post("/api/chats", json={"walletAddress": WALLET, "model": "llama"})

    assert resp.status_code == 400


def test_get_rename_and_delete_chat(client):
    chat = _create(client)
    params = {"walletAddress": WALLET}

    fetched = client.get(f"/api/chats/{chat['id']}", params=params)
    assert fetched.json()["chat"]["id"] == chat["id"]

    renamed = client.patch(
        f"/api/chats/{chat['id']}",
        json={"walletAddress": WALLET, "title": "  Renamed   chat "},
    )
    assert renamed.status_code == 200
    assert renamed.json()["chat"]["title"] == "Renamed chat"

    deleted = client.delete(f"/api/chats/{chat['id']}", params=params)
    assert deleted.status_code == 204
    assert client.get(f"/api/chats/{chat['id']}", params=params).status_code == 404


def test_rename_validates_title(client):
    chat = _create(client)

    empty = client.patch(f"/api/chats/{chat['id']}", json={"walletAddress": WALLET, "title": "   "})
    too_long = client.patch(
        f"/api/chats/{chat['id']}", json={"walletAddress": WALLET, "title": "x" * 121}
    )

    assert empty.status_code == 422
    assert too_long.status_code == 422


def test_chats_are_scoped_to_wallet(client):
    chat = _create(client)

    resp = client.get(f"/api/chats/{chat['id']}", params={"walletAddress": "intruder"})
    delete = client.delete(f"/api/chats/{chat['id']}", params={"walletAddress": "intruder"})
    bogus = client.get("/api/chats/not-a-uuid", params={"walletAddress": WALLET})

    assert resp.status_code == 404
    assert resp.json()["error"] == "Chat not found"
    assert delete.status_code == 404
    assert bogus.status_code == 404


def test_messages_endpoint_returns_paid_conversation(client, fake_upstream):
    resp = client.post(
        "/api/chat",
        json={"message": "first question", "walletAddress": WALLET},
        headers=payment_headers(),
    )
    chat_id = resp.json()["chatId"]

    messages = client.get(
        f"/api/chats/{chat_id}/messages", params={"walletAddress": WALLET}
    ).json()["messages"]

    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "first question"
    assert messages[1]["content"] == "Hello from the model"
    assert messages[1]["costUsdc"] == 0.03
    assert messages[1]["aiModel"] == "deepseek"

    listed = client.get("/api/chats", params={"walletAddress": WALLET}).json()["chats"]
    assert listed[0]["id"] == chat_id
    assert listed[0]["totalMessages"] == 2
    assert listed[0]["totalCostUsdc"] == 0.03


def test_messages_are_paginated_in_order(client, db_session):
    user = repo.get_or_create_user(db_session, WALLET)
    chat = repo.create_chat(db_session, user_id=user.id, title="t", ai_model="deepseek")
    for i in range(5):
        repo.add_message(db_session, chat=chat, user=user, role="user", content=f"m{i}")

    page = client.get(
        f"/api/chats/{chat.id}/messages",
        params={"walletAddress": WALLET, "limit": 2, "offset": 2},
    ).json()["messages"]

    assert [m["content"] for m in page] == ["m2", "m3"]
