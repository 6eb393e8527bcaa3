"""End-to-end tests over the WebSocket transport."""

import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import auth

BASE = "/api/chat"


def join(ws, recipient_id):
    ws.send_json({"event": "join_chat", "data": {"recipientId": recipient_id}})
    ack = ws.receive_json()
    assert ack["event"] == "joined_chat"
    return ack["data"]["roomId"]


def test_handshake_requires_valid_token(app):
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage"):
                pass
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws"):
                pass


def test_token_in_authorization_header(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect("/ws", headers=auth(tokens["alice"])) as ws:
            assert join(ws, "bob") == "alice_bob"


def test_live_message_between_connected_users(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice, \
                client.websocket_connect(f"/ws?token={tokens['bob']}") as bob:
            assert join(alice, "bob") == join(bob, "alice") == "alice_bob"

            alice.send_json(
                {"event": "send_message", "data": {"recipientId": "bob", "content": "Hello"}}
            )

            received = bob.receive_json()
            assert received["event"] == "receive_message"
            assert received["data"]["content"] == "Hello"
            assert received["data"]["sender"]["id"] == "alice"
            assert received["data"]["read"] is False

            notification = bob.receive_json()
            assert notification == {
                "event": "new_message_notification",
                "data": {"message": "You have a new message", "sender": "Alice"},
            }

            echoed = alice.receive_json()
            assert echoed["event"] == "receive_message"
            assert echoed["data"]["id"] == received["data"]["id"]


def test_offline_send_then_fetch_sends_receipt(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice:
            join(alice, "bob")
            alice.send_json(
                {"event": "send_message", "data": {"recipientId": "bob", "content": "Hello"}}
            )
            # Bob is offline; the echo in the pairing room confirms the message is stored
            assert alice.receive_json()["event"] == "receive_message"

            response = client.get(f"{BASE}/messages/alice", headers=auth(tokens["bob"]))
            assert response.status_code == 200
            messages = response.json()
            assert [m["content"] for m in messages] == ["Hello"]
            assert messages[0]["sender"]["id"] == "alice"

            receipt = alice.receive_json()
            assert receipt == {"event": "messages_read", "data": {"readerId": "bob"}}

        response = client.get(f"{BASE}/unread-count", headers=auth(tokens["bob"]))
        assert response.json() == {"unreadCount": 0}


def test_rest_send_reaches_live_recipient(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['bob']}") as bob:
            join(bob, "alice")

            response = client.post(
                f"{BASE}/send",
                json={"recipientId": "bob", "content": "Sent over HTTP"},
                headers=auth(tokens["alice"]),
            )
            assert response.status_code == 201

            received = bob.receive_json()
            assert received["event"] == "receive_message"
            assert received["data"]["id"] == response.json()["message"]["id"]
            assert bob.receive_json()["event"] == "new_message_notification"


def test_socket_send_error_goes_to_sender(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice:
            alice.send_json(
                {"event": "send_message", "data": {"recipientId": "bob", "content": ""}}
            )
            assert alice.receive_json() == {
                "event": "message_error",
                "data": {"error": "Message content is required"},
            }


def test_disconnect_releases_session(app, tokens):
    sessions = app.state.sessions
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice:
            join(alice, "bob")
            assert sessions.is_online("alice")
        assert not sessions.is_online("alice")
        assert sessions.sessions_in("alice_bob") == []


def test_binary_frames_are_dispatched(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice:
            alice.send_bytes(
                json.dumps({"event": "join_chat", "data": {"recipientId": "bob"}}).encode()
            )
            assert alice.receive_json() == {"event": "joined_chat", "data": {"roomId": "alice_bob"}}

            alice.send_bytes(
                json.dumps(
                    {"event": "send_message", "data": {"recipientId": "bob", "content": "Bytes"}}
                ).encode()
            )
            received = alice.receive_json()
            assert received["event"] == "receive_message"
            assert received["data"]["content"] == "Bytes"
            assert "createdAt" in received["data"]


def test_unknown_event_keeps_connection_open(app, tokens):
    with TestClient(app) as client:
        with client.websocket_connect(f"/ws?token={tokens['alice']}") as alice:
            alice.send_json({"event": "launch_rockets", "data": {}})
            alice.send_text("{not json")
            assert join(alice, "bob") == "alice_bob"
