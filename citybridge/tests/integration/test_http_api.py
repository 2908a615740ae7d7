"""End-to-end tests for the HTTP API over ASGI."""

import asyncio
import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from citybridge.app.factory import create_app
from citybridge.config.models import AppConfig, RateLimitConfig
from citybridge.container import ApplicationContainer
from citybridge.models.connection import ConnectionStatus
from citybridge.models.notification import NotificationType
from citybridge.models.post import PostStatus
from citybridge.models.user import MessagingPrivacy, UserRole
from citybridge.realtime.presence_registry import ConnectionHandle
from citybridge.tests.fakes import FakeWebSocket, auth_headers, create_user


def _go_online(container, user) -> FakeWebSocket:
    socket = FakeWebSocket()
    container.presence.register(ConnectionHandle(user_id=user.id, websocket=socket))
    return socket


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/notifications")

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required", "type": "authentication_failed"}
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/notifications", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["x-correlation-id"] == "corr-123"

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": True, "online_users": 0}


class TestMessages:
    @pytest.mark.asyncio
    async def test_send_to_offline_receiver_is_stored(self, client, container, app_config):
        sender = await create_user(container.user_repository)
        receiver = await create_user(container.user_repository)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(receiver.id), "content": "  hi  "},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["content"] == "hi"
        assert body["sender"] == str(sender.id)
        assert body["receiver"] == str(receiver.id)
        assert body["read"] is False
        assert body["createdAt"].endswith("Z")

        history = await client.get(f"/api/messages/{sender.id}", headers=auth_headers(receiver, app_config))
        assert history.status_code == 200
        assert [m["content"] for m in history.json()["messages"]] == ["hi"]
        assert history.json()["pagination"] == {"hasMore": False, "nextCursor": None}

    @pytest.mark.asyncio
    async def test_online_receiver_gets_push(self, client, container, app_config):
        sender = await create_user(container.user_repository)
        receiver = await create_user(container.user_repository)
        socket = _go_online(container, receiver)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(receiver.id), "content": "hello"},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 201
        pushed = socket.events("receive_message")
        assert len(pushed) == 1
        assert pushed[0]["data"]["id"] == response.json()["id"]

    @pytest.mark.asyncio
    async def test_blocked_sender_gets_403(self, client, container, app_config):
        sender = await create_user(container.user_repository)
        receiver = await create_user(container.user_repository)
        await container.user_repository.block(receiver.id, sender.id)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(receiver.id), "content": "hi"},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 403
        assert response.json() == {"error": "Cannot send message to this user", "type": "messaging_denied"}

    @pytest.mark.asyncio
    async def test_friends_only_receiver(self, client, container, app_config):
        sender = await create_user(container.user_repository)
        receiver = await create_user(container.user_repository, messaging_privacy=MessagingPrivacy.FRIENDS_ONLY)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(receiver.id), "content": "hi"},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "User only accepts messages from friends"

    @pytest.mark.asyncio
    async def test_unknown_receiver(self, client, container, app_config):
        sender = await create_user(container.user_repository)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(uuid.uuid4()), "content": "hi"},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Receiver not found"

    @pytest.mark.asyncio
    async def test_blank_content_rejected(self, client, container, app_config):
        sender = await create_user(container.user_repository)
        receiver = await create_user(container.user_repository)

        response = await client.post(
            "/api/messages",
            json={"receiver": str(receiver.id), "content": "   "},
            headers=auth_headers(sender, app_config),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Message content is required"
        assert response.json()["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_conversations_and_unread_count(self, client, container, app_config):
        me = await create_user(container.user_repository)
        friend = await create_user(container.user_repository, "friend_of_me")
        for text in ("one", "two"):
            await client.post(
                "/api/messages",
                json={"receiver": str(me.id), "content": text},
                headers=auth_headers(friend, app_config),
            )

        unread = await client.get("/api/messages/unread/count", headers=auth_headers(me, app_config))
        assert unread.json() == {"count": 2}

        conversations = await client.get("/api/messages/conversations", headers=auth_headers(me, app_config))
        summary = conversations.json()[0]
        assert summary["user"] == {"id": str(friend.id), "username": "friend_of_me"}
        assert summary["lastMessage"]["content"] == "two"
        assert summary["unreadCount"] == 2

        await client.get(f"/api/messages/{friend.id}", headers=auth_headers(me, app_config))
        unread = await client.get("/api/messages/unread/count", headers=auth_headers(me, app_config))
        assert unread.json() == {"count": 0}


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_message_limit_returns_429(self, app_config):
        config = AppConfig(database=app_config.database, rate_limit=RateLimitConfig(message_max_requests=2))
        container = ApplicationContainer(config=config)
        await container.initialize()
        app = create_app(config)
        app.state.container = container
        try:
            sender = await create_user(container.user_repository)
            receiver = await create_user(container.user_repository)
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
                statuses = []
                for _ in range(3):
                    response = await http.post(
                        "/api/messages",
                        json={"receiver": str(receiver.id), "content": "hi"},
                        headers=auth_headers(sender, config),
                    )
                    statuses.append(response.status_code)

            assert statuses == [201, 201, 429]
            assert response.json() == {"error": "Too many messages sent"}
            assert int(response.headers["retry-after"]) > 0
        finally:
            await container.shutdown()

    @pytest.mark.asyncio
    async def test_disabled_limits_never_reject(self, app_config):
        config = AppConfig(
            database=app_config.database, rate_limit=RateLimitConfig(enabled=False, api_max_requests=1)
        )
        container = ApplicationContainer(config=config)
        await container.initialize()
        app = create_app(config)
        app.state.container = container
        try:
            user = await create_user(container.user_repository)
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
                for _ in range(3):
                    response = await http.get("/api/notifications", headers=auth_headers(user, config))
                    assert response.status_code == 200
        finally:
            await container.shutdown()


class TestNotifications:
    @pytest.mark.asyncio
    async def test_read_and_delete(self, client, container, app_config):
        user = await create_user(container.user_repository)
        other = await create_user(container.user_repository)
        first = await container.notification_dispatcher.dispatch(user.id, NotificationType.POST_APPROVED, 1, "first")
        await container.notification_dispatcher.dispatch(user.id, NotificationType.POST_APPROVED, 2, "second")
        headers = auth_headers(user, app_config)

        listed = await client.get("/api/notifications", headers=headers)
        assert [n["content"] for n in listed.json()] == ["second", "first"]
        assert listed.json()[0]["type"] == "postApproved"
        assert (await client.get("/api/notifications/unread/count", headers=headers)).json() == {"count": 2}

        read = await client.put(f"/api/notifications/{first.id}/read", headers=headers)
        assert read.status_code == 200
        assert read.json()["read"] is True

        foreign = await client.put(f"/api/notifications/{first.id}/read", headers=auth_headers(other, app_config))
        assert foreign.status_code == 404
        assert foreign.json()["error"] == "Notification not found"

        all_read = await client.put("/api/notifications/read-all", headers=headers)
        assert all_read.json() == {"message": "All notifications marked as read"}
        assert (await client.get("/api/notifications/unread/count", headers=headers)).json() == {"count": 0}

        deleted = await client.delete(f"/api/notifications/{first.id}", headers=headers)
        assert deleted.json() == {"message": "Notification deleted"}
        assert (await client.delete(f"/api/notifications/{first.id}", headers=headers)).status_code == 404


class TestConnections:
    @pytest.mark.asyncio
    async def test_request_accept_flow(self, client, container, app_config):
        alice = await create_user(container.user_repository, "alice")
        bob = await create_user(container.user_repository, "bob")
        bob_socket = _go_online(container, bob)

        requested = await client.post(f"/api/connections/request/{bob.id}", headers=auth_headers(alice, app_config))
        assert requested.status_code == 201
        assert requested.json()["status"] == "pending"
        assert requested.json()["requestedBy"] == str(alice.id)
        connection_id = requested.json()["id"]

        pushed = bob_socket.events("new_notification")[0]["data"]
        assert pushed["type"] == "friendRequest"
        assert pushed["content"] == "alice sent you a friend request"
        assert pushed["fromUserId"] == str(alice.id)

        own = await client.put(f"/api/connections/{connection_id}/accept", headers=auth_headers(alice, app_config))
        assert own.status_code == 403
        assert own.json()["error"] == "Not authorized"

        invalid = await client.put(f"/api/connections/{connection_id}/maybe", headers=auth_headers(bob, app_config))
        assert invalid.status_code == 400
        assert invalid.json()["error"] == "Invalid action"

        accepted = await client.put(f"/api/connections/{connection_id}/accept", headers=auth_headers(bob, app_config))
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        notes = await container.notification_repository.list_for_user(alice.id)
        assert notes[0].content == "bob accepted your friend request"

        again = await client.put(f"/api/connections/{connection_id}/reject", headers=auth_headers(bob, app_config))
        assert again.status_code == 400
        assert again.json()["error"] == "Connection request is no longer pending"

        listed = await client.get("/api/connections?status=accepted", headers=auth_headers(alice, app_config))
        assert [c["id"] for c in listed.json()] == [connection_id]

    @pytest.mark.asyncio
    async def test_duplicate_and_self_requests(self, client, container, app_config):
        alice = await create_user(container.user_repository)
        bob = await create_user(container.user_repository)
        headers = auth_headers(alice, app_config)

        await client.post(f"/api/connections/request/{bob.id}", headers=headers)
        duplicate = await client.post(f"/api/connections/request/{alice.id}", headers=auth_headers(bob, app_config))
        assert duplicate.status_code == 400
        assert duplicate.json()["error"] == "Connection already exists"

        own = await client.post(f"/api/connections/request/{alice.id}", headers=headers)
        assert own.status_code == 400

        missing = await client.post(f"/api/connections/request/{uuid.uuid4()}", headers=headers)
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_connection(self, client, container, app_config):
        alice = await create_user(container.user_repository)
        bob = await create_user(container.user_repository)
        outsider = await create_user(container.user_repository)
        connection = await container.connection_repository.create_request(alice.id, bob.id)
        await container.connection_repository.set_status(connection.id, ConnectionStatus.ACCEPTED)

        forbidden = await client.delete(f"/api/connections/{connection.id}", headers=auth_headers(outsider, app_config))
        deleted = await client.delete(f"/api/connections/{connection.id}", headers=auth_headers(bob, app_config))
        missing = await client.delete(f"/api/connections/{connection.id}", headers=auth_headers(alice, app_config))

        assert forbidden.status_code == 403
        assert forbidden.json()["error"] == "Not authorized"
        assert deleted.json() == {"message": "Connection deleted"}
        assert await container.connection_repository.are_connected(alice.id, bob.id) is False
        assert missing.status_code == 404
        assert missing.json()["error"] == "Connection not found"

    @pytest.mark.asyncio
    async def test_concurrent_accepts_notify_once(self, client, container, app_config):
        alice = await create_user(container.user_repository)
        bob = await create_user(container.user_repository)
        connection = await container.connection_repository.create_request(alice.id, bob.id)
        headers = auth_headers(bob, app_config)

        responses = await asyncio.gather(
            client.put(f"/api/connections/{connection.id}/accept", headers=headers),
            client.put(f"/api/connections/{connection.id}/accept", headers=headers),
        )

        assert sorted(r.status_code for r in responses) == [200, 400]
        notes = await container.notification_repository.list_for_user(alice.id)
        assert [n.type for n in notes] == [NotificationType.FRIEND_ACCEPTED]

    @pytest.mark.asyncio
    async def test_unknown_connection(self, client, container, app_config):
        user = await create_user(container.user_repository)

        response = await client.put("/api/connections/999/accept", headers=auth_headers(user, app_config))

        assert response.status_code == 404
        assert response.json()["error"] == "Connection request not found"


class TestPostsAndModeration:
    @pytest.mark.asyncio
    async def test_moderation_requires_moderator(self, client, container, app_config):
        author = await create_user(container.user_repository)
        post = await container.post_repository.create(author.id, "Harvest festival")

        response = await client.put(
            f"/api/moderation/posts/{post.id}/approve", headers=auth_headers(author, app_config)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Moderator access required"

    @pytest.mark.asyncio
    async def test_approve_notifies_author(self, client, container, app_config):
        author = await create_user(container.user_repository)
        moderator = await create_user(container.user_repository, role=UserRole.MODERATOR)
        author_socket = _go_online(container, author)
        created = await client.post(
            "/api/posts", json={"title": "Harvest festival"}, headers=auth_headers(author, app_config)
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        response = await client.put(
            f"/api/moderation/posts/{created.json()['id']}/approve", headers=auth_headers(moderator, app_config)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        pushed = author_socket.events("new_notification")[0]["data"]
        assert pushed["type"] == "postApproved"
        assert pushed["content"] == 'Your post "Harvest festival" has been approved'
        assert pushed["fromUserId"] is None

    @pytest.mark.asyncio
    async def test_reject_with_and_without_reason(self, client, container, app_config):
        author = await create_user(container.user_repository)
        moderator = await create_user(container.user_repository, role=UserRole.ADMIN)
        post = await container.post_repository.create(author.id, "Street food")
        headers = auth_headers(moderator, app_config)

        with_reason = await client.put(
            f"/api/moderation/posts/{post.id}/reject", json={"reason": "Duplicate"}, headers=headers
        )
        without_reason = await client.put(f"/api/moderation/posts/{post.id}/reject", headers=headers)
        missing = await client.put("/api/moderation/posts/999/reject", headers=headers)

        assert with_reason.json()["rejectionReason"] == "Duplicate"
        assert without_reason.status_code == 200
        assert missing.status_code == 404
        contents = [n.content for n in await container.notification_repository.list_for_user(author.id)]
        assert 'Your post "Street food" was rejected. Reason: Duplicate' in contents
        assert 'Your post "Street food" was rejected' in contents

    @pytest.mark.asyncio
    async def test_like_and_comment_notifications(self, client, container, app_config):
        author = await create_user(container.user_repository, "author")
        fan = await create_user(container.user_repository, "fan")
        post = await container.post_repository.create(author.id, "Lantern walk")
        fan_headers = auth_headers(fan, app_config)

        liked = await client.post(f"/api/posts/{post.id}/like", headers=fan_headers)
        assert liked.json() == {"liked": True, "likeCount": 1}
        unliked = await client.post(f"/api/posts/{post.id}/like", headers=fan_headers)
        assert unliked.json() == {"liked": False, "likeCount": 0}

        comment = await client.post(f"/api/posts/{post.id}/comment", json={"text": "Lovely"}, headers=fan_headers)
        assert comment.status_code == 201

        reply = await client.post(
            f"/api/posts/{post.id}/comment",
            json={"text": "Thanks!", "parentCommentId": comment.json()["id"]},
            headers=auth_headers(author, app_config),
        )
        assert reply.status_code == 201
        assert reply.json()["parentCommentId"] == comment.json()["id"]

        author_notes = [n.content for n in await container.notification_repository.list_for_user(author.id)]
        assert author_notes == ['fan commented on your post "Lantern walk"', 'fan liked your post "Lantern walk"']
        fan_notes = [n.content for n in await container.notification_repository.list_for_user(fan.id)]
        assert fan_notes == ['author replied to your comment on "Lantern walk"']

    @pytest.mark.asyncio
    async def test_own_like_does_not_notify(self, client, container, app_config):
        author = await create_user(container.user_repository)
        post = await container.post_repository.create(author.id, "Solo")

        await client.post(f"/api/posts/{post.id}/like", headers=auth_headers(author, app_config))

        assert await container.notification_repository.count_unread(author.id) == 0

    @pytest.mark.asyncio
    async def test_reply_to_comment_of_other_post(self, client, container, app_config):
        author = await create_user(container.user_repository)
        first = await container.post_repository.create(author.id, "First")
        second = await container.post_repository.create(author.id, "Second")
        comment = await container.post_repository.add_comment(first.id, author.id, "hi")

        response = await client.post(
            f"/api/posts/{second.id}/comment",
            json={"text": "x", "parentCommentId": comment.id},
            headers=auth_headers(author, app_config),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Comment not found"

    @pytest.mark.asyncio
    async def test_blank_post_title(self, client, container, app_config):
        author = await create_user(container.user_repository)

        response = await client.post("/api/posts", json={"title": "   "}, headers=auth_headers(author, app_config))

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_spam_post_is_flagged_but_pending(self, client, container, app_config):
        author = await create_user(container.user_repository)

        response = await client.post(
            "/api/posts",
            json={"title": "Casino night", "content": "Buy now, act now, free money for everyone at the lottery"},
            headers=auth_headers(author, app_config),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["flagged"] is True
        assert body["flagReasons"] == ["Contains 5 spam keyword(s)"]

    @pytest.mark.asyncio
    async def test_repeated_post_is_flagged_as_duplicate(self, client, container, app_config):
        author = await create_user(container.user_repository)
        headers = auth_headers(author, app_config)
        post = {"title": "Night market", "content": "Dumplings and tea by the river every Friday"}

        first = await client.post("/api/posts", json=post, headers=headers)
        second = await client.post("/api/posts", json=post, headers=headers)

        assert first.json()["flagged"] is False
        assert second.json()["flagged"] is True
        assert second.json()["flagReasons"] == ["Duplicate content detected"]

    @pytest.mark.asyncio
    async def test_moderation_queues(self, client, container, app_config):
        author = await create_user(container.user_repository)
        moderator = await create_user(container.user_repository, role=UserRole.MODERATOR)
        clean = await container.post_repository.create(author.id, "Tea house")
        flagged = await container.post_repository.create(
            author.id, "Lottery", flagged=True, flag_reasons=["Contains 1 spam keyword(s)"]
        )
        reviewed = await container.post_repository.create(author.id, "Old news", flagged=True)
        await container.post_repository.moderate(reviewed.id, moderator.id, PostStatus.REJECTED)
        headers = auth_headers(moderator, app_config)

        pending = await client.get("/api/moderation/pending", headers=headers)
        flagged_queue = await client.get("/api/moderation/flagged", headers=headers)
        forbidden = await client.get("/api/moderation/flagged", headers=auth_headers(author, app_config))

        assert [p["id"] for p in pending.json()] == [flagged.id, clean.id]
        assert [p["id"] for p in flagged_queue.json()] == [reviewed.id, flagged.id]
        assert flagged_queue.json()[1]["flagReasons"] == ["Contains 1 spam keyword(s)"]
        assert forbidden.status_code == 403


class TestBlocking:
    @pytest.mark.asyncio
    async def test_block_list(self, client, container, app_config):
        me = await create_user(container.user_repository)
        pest = await create_user(container.user_repository, "pest")
        headers = auth_headers(me, app_config)

        assert (await client.post(f"/api/blocking/{pest.id}", headers=headers)).json() == {"message": "User blocked"}
        assert (await client.get("/api/blocking", headers=headers)).json() == [{"id": str(pest.id), "username": "pest"}]

        blocked_send = await client.post(
            "/api/messages", json={"receiver": str(me.id), "content": "hey"}, headers=auth_headers(pest, app_config)
        )
        assert blocked_send.status_code == 403

        unblocked = await client.delete(f"/api/blocking/{pest.id}", headers=headers)
        assert unblocked.json() == {"message": "User unblocked"}
        not_blocked = await client.delete(f"/api/blocking/{pest.id}", headers=headers)
        assert not_blocked.status_code == 404
        assert not_blocked.json()["error"] == "User is not blocked"

    @pytest.mark.asyncio
    async def test_block_removes_friendship(self, client, container, app_config):
        me = await create_user(container.user_repository)
        friend = await create_user(container.user_repository, messaging_privacy=MessagingPrivacy.FRIENDS_ONLY)
        connection = await container.connection_repository.create_request(me.id, friend.id)
        await container.connection_repository.set_status(connection.id, ConnectionStatus.ACCEPTED)

        blocked = await client.post(f"/api/blocking/{me.id}", headers=auth_headers(friend, app_config))
        await client.delete(f"/api/blocking/{me.id}", headers=auth_headers(friend, app_config))
        send = await client.post(
            "/api/messages", json={"receiver": str(friend.id), "content": "hi"}, headers=auth_headers(me, app_config)
        )

        assert blocked.status_code == 200
        assert await container.connection_repository.get_between(me.id, friend.id) is None
        assert send.status_code == 403
        assert send.json()["error"] == "User only accepts messages from friends"

    @pytest.mark.asyncio
    async def test_cannot_block_self_or_unknown(self, client, container, app_config):
        me = await create_user(container.user_repository)
        headers = auth_headers(me, app_config)

        own = await client.post(f"/api/blocking/{me.id}", headers=headers)
        missing = await client.post(f"/api/blocking/{uuid.uuid4()}", headers=headers)

        assert own.status_code == 400
        assert own.json()["error"] == "Cannot block yourself"
        assert missing.status_code == 404
