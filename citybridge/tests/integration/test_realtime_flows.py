"""
End-to-end realtime flows over the /api/ws endpoint.

These tests are synchronous: Starlette's TestClient runs the application,
including its lifespan, on its own event loop. Users are seeded beforehand
through a separate Database handle on the same SQLite file.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from citybridge.app.factory import create_app
from citybridge.auth.tokens import create_access_token
from citybridge.database import Database
from citybridge.models.notification import NotificationType
from citybridge.models.user import User, UserRole
from citybridge.persistence.repositories import NotificationRepository, PostRepository, UserRepository
from citybridge.tests.fakes import auth_headers

pytestmark = pytest.mark.slow


def _seed(config, *specs: tuple[str, UserRole]) -> list[User]:
    async def seed() -> list[User]:
        database = Database.from_config(config.database)
        await database.create_all()
        users = UserRepository(database)
        try:
            return [await users.create(name, f"{name}@example.com", role=role) for name, role in specs]
        finally:
            await database.dispose()

    return asyncio.run(seed())


def _run(config, operation):
    async def run():
        database = Database.from_config(config.database)
        try:
            return await operation(database)
        finally:
            await database.dispose()

    return asyncio.run(run())


def _ws_url(user: User, config) -> str:
    return f"/api/ws?token={create_access_token(user.id, config.security)}"


def _receive_until(websocket, event_type: str, limit: int = 10) -> dict:
    for _ in range(limit):
        event = websocket.receive_json()
        if event["event_type"] == event_type:
            return event
    raise AssertionError(f"{event_type} not received")


def test_direct_message_between_two_online_users(app_config):
    x, y = _seed(app_config, ("xavier", UserRole.USER), ("yuki", UserRole.USER))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(x, app_config)) as x_ws:
            connected = x_ws.receive_json()
            assert connected["event_type"] == "connected"
            assert connected["data"] == {"userId": str(x.id)}
            assert x_ws.receive_json()["data"] == {"count": 0}

            with client.websocket_connect(_ws_url(y, app_config)) as y_ws:
                assert [y_ws.receive_json()["event_type"] for _ in range(2)] == ["connected", "unread_notifications"]
                online = x_ws.receive_json()
                assert online["event_type"] == "user_online"
                assert online["data"] == {"userId": str(y.id)}

                x_ws.send_json(
                    {
                        "event_type": "send_message",
                        "data": {"receiver": str(y.id), "content": "hello"},
                        "request_id": "r1",
                    }
                )

                received = y_ws.receive_json()
                assert received["event_type"] == "receive_message"
                assert received["data"]["content"] == "hello"
                assert received["data"]["sender"] == str(x.id)

                sent = x_ws.receive_json()
                assert sent["event_type"] == "message_sent"
                assert sent["reply_to"] == "r1"
                assert sent["data"]["id"] == received["data"]["id"]
                assert sent["sequence_number"] > online["sequence_number"] > connected["sequence_number"]

            offline = x_ws.receive_json()
            assert offline["event_type"] == "user_offline"
            assert offline["data"] == {"userId": str(y.id)}

        history = client.get(f"/api/messages/{x.id}", headers=auth_headers(y, app_config))
        assert [m["content"] for m in history.json()["messages"]] == ["hello"]


def test_send_message_refusal_reaches_sender_only(app_config):
    x, y = _seed(app_config, ("xena", UserRole.USER), ("yara", UserRole.USER))
    _run(app_config, lambda db: UserRepository(db).block(y.id, x.id))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(x, app_config)) as x_ws:
            _receive_until(x_ws, "unread_notifications")
            x_ws.send_json(
                {"event_type": "send_message", "data": {"receiver": str(y.id), "content": "hi"}, "request_id": "b1"}
            )
            error = x_ws.receive_json()

    assert error["event_type"] == "message_error"
    assert error["reply_to"] == "b1"
    assert error["data"] == {"error": "Cannot send message to this user"}


def test_check_user_status_is_correlated(app_config):
    x, y = _seed(app_config, ("xiu", UserRole.USER), ("yann", UserRole.USER))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(x, app_config)) as x_ws:
            _receive_until(x_ws, "unread_notifications")

            x_ws.send_json({"event_type": "check_user_status", "data": {"userId": str(y.id)}, "request_id": "s1"})
            offline = x_ws.receive_json()

            with client.websocket_connect(_ws_url(y, app_config)) as y_ws:
                _receive_until(y_ws, "unread_notifications")
                _receive_until(x_ws, "user_online")
                x_ws.send_json({"event_type": "check_user_status", "data": {"userId": str(y.id)}, "request_id": "s2"})
                online = x_ws.receive_json()

    assert (offline["reply_to"], offline["data"]["isOnline"]) == ("s1", False)
    assert (online["reply_to"], online["data"]["isOnline"]) == ("s2", True)


def test_unread_count_pushed_on_connect(app_config):
    (user,) = _seed(app_config, ("uma", UserRole.USER))
    _run(
        app_config,
        lambda db: NotificationRepository(db).create(user.id, NotificationType.POST_APPROVED, "1", "approved"),
    )

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(user, app_config)) as ws:
            unread = _receive_until(ws, "unread_notifications")

    assert unread["data"] == {"count": 1}


def test_post_approval_pushes_notification(app_config):
    author, moderator = _seed(app_config, ("ada", UserRole.USER), ("mod", UserRole.MODERATOR))
    post = _run(app_config, lambda db: PostRepository(db).create(author.id, "Night market"))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(author, app_config)) as ws:
            _receive_until(ws, "unread_notifications")

            response = client.put(
                f"/api/moderation/posts/{post.id}/approve", headers=auth_headers(moderator, app_config)
            )
            assert response.status_code == 200

            pushed = ws.receive_json()

    assert pushed["event_type"] == "new_notification"
    assert pushed["data"]["type"] == "postApproved"
    assert pushed["data"]["content"] == 'Your post "Night market" has been approved'


def test_subprotocol_token_is_accepted(app_config):
    (user,) = _seed(app_config, ("sam", UserRole.USER))
    token = create_access_token(user.id, app_config.security)

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect("/api/ws", subprotocols=["bearer", token]) as ws:
            assert ws.accepted_subprotocol == "bearer"
            assert ws.receive_json()["event_type"] == "connected"


@pytest.mark.parametrize("url", ["/api/ws", "/api/ws?token=not-a-jwt"])
def test_handshake_without_valid_token_is_refused(app_config, url):
    _seed(app_config)

    with TestClient(create_app(app_config)) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(url):
                pass

    assert exc_info.value.code == 1008


def test_unknown_event_and_bad_frames_keep_session_open(app_config):
    (user,) = _seed(app_config, ("kim", UserRole.USER))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(user, app_config)) as ws:
            _receive_until(ws, "unread_notifications")

            ws.send_text("{broken")
            invalid = ws.receive_json()
            ws.send_json({"event_type": "teleport", "request_id": "t1"})
            unknown = ws.receive_json()
            ws.send_json({"event_type": "check_user_status", "data": {"userId": str(user.id)}})
            status = ws.receive_json()

    assert invalid["data"]["error_type"] == "invalid_format"
    assert unknown["data"]["error_type"] == "unknown_event"
    assert unknown["reply_to"] == "t1"
    assert status["data"]["isOnline"] is True


def test_binary_frame_keeps_session_open(app_config):
    (user,) = _seed(app_config, ("lee", UserRole.USER))

    with TestClient(create_app(app_config)) as client:
        with client.websocket_connect(_ws_url(user, app_config)) as ws:
            _receive_until(ws, "unread_notifications")

            ws.send_bytes(b"\x00\x01")
            invalid = ws.receive_json()
            ws.send_json({"event_type": "check_user_status", "data": {"userId": str(user.id)}, "request_id": "b1"})
            status = ws.receive_json()

    assert invalid["event_type"] == "error"
    assert invalid["data"]["details"]["reason"] == "invalid_frame"
    assert status["reply_to"] == "b1"
    assert status["data"]["isOnline"] is True
