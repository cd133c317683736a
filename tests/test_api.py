import json

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from mankeli import db
from mankeli.api import (
    InternalServerError,
    InvalidInput,
    NotFound,
    create_app,
    mark_messages_as_sent,
)


@pytest_asyncio.fixture
async def conn():
    connection = await db.connect(":memory:")
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def client(conn):
    async with TestClient(TestServer(create_app(conn))) as test_client:
        yield test_client


async def _friend_row(conn, username):
    async with conn.execute(
        "SELECT status, sent, address FROM friends WHERE username = ?", (username,)
    ) as cursor:
        return await cursor.fetchone()


def _friend_payload(req_type, hostname="bob", address="1.1.1.1"):
    return {
        "username": "alice",
        "hostname": hostname,
        "address": address,
        "req_type": req_type,
    }


async def _queue_messages(conn, count):
    await db.setup_db(conn, db.User(0, "testuser", "127.0.0.1"))
    await db.send_invite(conn, db.FriendRequest("user3", "3.3.3.3"))
    for number in range(count):
        await db.send_message_to_que(
            conn, db.OutgoingMessage("user3", f"subject {number}", "Hello world!")
        )


@pytest.mark.asyncio
async def test_index_greets(client):
    response = await client.get("/")
    assert response.status == 200
    assert await response.text() == "Hello, this is a mankeli-chat server"


@pytest.mark.asyncio
async def test_fetch_messages_success(conn, client):
    await db.setup_db(conn, db.User(0, "testuser", "127.0.0.1"))
    await db.send_invite(conn, db.FriendRequest("user3", "3.3.3.3"))
    await db.send_message_to_que(
        conn, db.OutgoingMessage("user3", "test message", "Hello world!")
    )

    response = await client.post(
        "/fetch_messages", json={"username": "user3", "address": "1.1.1.1"}
    )
    assert response.status == 200
    body = await response.json()
    assert body == {
        "messages": [
            {"sender": "testuser", "subject": "test message", "body": "Hello world!"}
        ]
    }


@pytest.mark.asyncio
async def test_fetched_messages_are_not_delivered_twice(conn, client):
    await _queue_messages(conn, 1)
    first = await client.post("/fetch_messages", json={"username": "user3", "address": "x"})
    assert len((await first.json())["messages"]) == 1

    second = await client.post("/fetch_messages", json={"username": "user3", "address": "x"})
    assert (await second.json()) == {"messages": []}
    outgoing = await db.fetch_outgoing(conn)
    assert [message.sent for message in outgoing] == [True]


@pytest.mark.asyncio
async def test_fetch_messages_for_other_user_is_empty(conn, client):
    await _queue_messages(conn, 1)
    response = await client.post(
        "/fetch_messages", json={"username": "someone", "address": "x"}
    )
    assert (await response.json()) == {"messages": []}


@pytest.mark.asyncio
async def test_fetch_messages_missing_field_is_unprocessable(client):
    response = await client.post("/fetch_messages", json={"username": "user3"})
    assert response.status == 422


@pytest.mark.asyncio
async def test_fetch_messages_requires_json_content_type(client):
    response = await client.post("/fetch_messages", data="{}")
    assert response.status == 415


@pytest.mark.asyncio
async def test_fetch_messages_malformed_json_is_bad_request(client):
    response = await client.post(
        "/fetch_messages",
        data="{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status == 400


@pytest.mark.asyncio
async def test_friend_invite_sent_records_incoming_invite(conn, client):
    response = await client.post("/friend_request", json=_friend_payload("InviteSent"))
    assert response.status == 200
    assert (await response.json())["status"] == "invite_sent"
    assert await _friend_row(conn, "bob") == (1, 1, "1.1.1.1")


@pytest.mark.asyncio
async def test_accept_after_incoming_invite_is_rejected(conn, client):
    await client.post("/friend_request", json=_friend_payload("InviteSent"))
    response = await client.post("/friend_request", json=_friend_payload("Accepted"))
    assert response.status == 400
    assert await response.json() == {"error": "No pending invitation to accept."}
    assert (await _friend_row(conn, "bob"))[0] == 1


@pytest.mark.asyncio
async def test_accept_pending_outgoing_invite(conn, client):
    await db.send_invite(conn, db.FriendRequest("bob", "1.1.1.1"))
    response = await client.post("/friend_request", json=_friend_payload("Accepted"))
    assert response.status == 200
    assert (await response.json())["status"] == "accepted"
    assert await _friend_row(conn, "bob") == (2, 1, "1.1.1.1")


@pytest.mark.asyncio
async def test_accept_without_invitation_is_not_found(client):
    response = await client.post("/friend_request", json=_friend_payload("Accepted"))
    assert response.status == 404
    assert await response.json() == {"error": "No invitation found."}


@pytest.mark.asyncio
async def test_accept_with_wrong_address_is_not_found(conn, client):
    await db.send_invite(conn, db.FriendRequest("bob", "1.1.1.1"))
    response = await client.post(
        "/friend_request", json=_friend_payload("Accepted", address="9.9.9.9")
    )
    assert response.status == 404


@pytest.mark.asyncio
async def test_invite_received_is_invalid(client):
    response = await client.post("/friend_request", json=_friend_payload("InviteReceived"))
    assert response.status == 400
    assert await response.json() == {"error": "why would you request this"}


@pytest.mark.asyncio
async def test_reject_pending_invite(conn, client):
    await db.send_invite(conn, db.FriendRequest("bob", "1.1.1.1"))
    response = await client.post("/friend_request", json=_friend_payload("Rejected"))
    assert response.status == 200
    assert (await response.json())["status"] == "rejected"
    assert await _friend_row(conn, "bob") == (3, 1, "1.1.1.1")


@pytest.mark.asyncio
async def test_reject_without_pending_invite(client):
    response = await client.post("/friend_request", json=_friend_payload("Rejected"))
    assert response.status == 400
    assert await response.json() == {"error": "No pending invitation to reject."}


@pytest.mark.asyncio
async def test_unknown_request_type_is_unprocessable(client):
    response = await client.post("/friend_request", json=_friend_payload("Blocked"))
    assert response.status == 422


@pytest.mark.asyncio
async def test_mark_messages_as_sent_marks_only_given_ids(conn):
    await _queue_messages(conn, 2)
    first, second = await db.fetch_outgoing(conn)
    await mark_messages_as_sent(conn, [first.id])
    assert [m.sent for m in await db.fetch_outgoing(conn)] == [True, False]
    assert second.sent is False


@pytest.mark.asyncio
async def test_mark_messages_as_sent_with_no_ids_changes_nothing(conn):
    await _queue_messages(conn, 2)
    await mark_messages_as_sent(conn, [])
    assert [m.sent for m in await db.fetch_outgoing(conn)] == [False, False]


@pytest.mark.parametrize(
    ("error", "status"),
    [(InvalidInput("bad"), 400), (NotFound("bad"), 404), (InternalServerError("bad"), 500)],
)
def test_api_error_response(error, status):
    response = error.to_response()
    assert response.status == status
    assert json.loads(response.text) == {"error": "bad"}