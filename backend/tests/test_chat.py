# tests/test_chat.py

"""Tests for chat persistence, visibility and live delivery."""

from app.domains.chat.services.chat_service import ChatConnectionManager
from conftest import auth_headers

CHAT = "/api/v1/chat"


class FakeSocket:
    """Records frames pushed to a connected client."""

    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


async def test_message_is_stored_and_pushed(client, owner, tenant, chat_connections):
    """Posting a message persists it and pushes it to the receiver's sockets."""
    socket = FakeSocket()
    await chat_connections.connect(owner.id, socket)

    response = await client.post(
        f"{CHAT}/messages",
        json={"receiverId": owner.id, "content": "  Is the flat still available?  "},
        headers=auth_headers(tenant),
    )

    assert response.status_code == 201
    message = response.json()
    assert message["senderId"] == tenant.id
    assert message["content"] == "Is the flat still available?"
    assert socket.accepted
    assert socket.sent == [{"type": "message", "message": message}]


async def test_conversations_newest_first(client, owner, tenant):
    """Both participants see the exchange, newest first."""
    await client.post(f"{CHAT}/messages", json={"receiver_id": owner.id, "content": "hello"}, headers=auth_headers(tenant))
    await client.post(f"{CHAT}/messages", json={"receiver_id": tenant.id, "content": "hi!"}, headers=auth_headers(owner))

    for user in (owner, tenant):
        response = await client.get(f"{CHAT}/conversations/{user.id}", headers=auth_headers(user))
        assert response.status_code == 200
        assert [m["content"] for m in response.json()] == ["hi!", "hello"]


async def test_conversations_of_others_are_forbidden(client, owner, tenant):
    """Users only read their own conversations."""
    response = await client.get(f"{CHAT}/conversations/{owner.id}", headers=auth_headers(tenant))
    assert response.status_code == 403


async def test_admin_reads_any_conversation(client, owner, admin):
    """Admins may read anyone's conversations."""
    response = await client.get(f"{CHAT}/conversations/{owner.id}", headers=auth_headers(admin))
    assert response.status_code == 200


async def test_unknown_receiver_is_404(client, tenant):
    """Messages to missing users are rejected."""
    response = await client.post(
        f"{CHAT}/messages", json={"receiver_id": 9999, "content": "anyone?"}, headers=auth_headers(tenant)
    )
    assert response.status_code == 404
    assert response.json()["error_code"] == "RECIPIENT_NOT_FOUND"


async def test_blank_message_is_rejected(client, owner, tenant):
    """Whitespace-only content is invalid."""
    response = await client.post(
        f"{CHAT}/messages", json={"receiver_id": owner.id, "content": "   "}, headers=auth_headers(tenant)
    )
    assert response.status_code == 422


async def test_dead_sockets_are_dropped():
    """A socket that fails to receive is disconnected; healthy ones still get the frame."""
    manager = ChatConnectionManager()
    healthy, dead = FakeSocket(), FakeSocket(fail=True)
    await manager.connect(1, healthy)
    await manager.connect(1, dead)

    delivered = await manager.send_to_user(1, {"type": "ping"})

    assert delivered == 1
    assert healthy.sent == [{"type": "ping"}]
    assert manager.connection_count(1) == 1


async def test_disconnect_forgets_user():
    """Closing the last socket removes the user entry."""
    manager = ChatConnectionManager()
    socket = FakeSocket()
    await manager.connect(5, socket)
    await manager.disconnect(5, socket)
    assert manager.connection_count(5) == 0
    assert await manager.send_to_user(5, {"type": "ping"}) == 0
