import json

import pytest

from mankeli.models import (
    FetchMessageInput,
    FetchMessageResponse,
    FriendInput,
    FriendRequestStatus,
    Message,
    status_enum,
    status_str,
)


@pytest.mark.parametrize(
    "code, label",
    [(0, "invite_sent"), (1, "invite_received"), (2, "accepted"), (3, "rejected")],
)
def test_status_str_known_codes(code, label):
    assert status_str(code) == label


@pytest.mark.parametrize("code", [-1, 4, 99])
def test_status_str_unknown_codes(code):
    assert status_str(code) == "unknown"


@pytest.mark.parametrize("status", list(FriendRequestStatus))
def test_status_enum_round_trips_code(status):
    assert status_enum(status.code()) is status


@pytest.mark.parametrize("code", [-5, 4, 42])
def test_status_enum_unknown_is_rejected(code):
    assert status_enum(code) is FriendRequestStatus.REJECTED


def test_status_codes_are_distinct():
    codes = [FriendRequestStatus(status.value).code() for status in FriendRequestStatus]
    assert sorted(codes) == [0, 1, 2, 3]
    labels = {status_str(code) for code in codes}
    assert labels == {"invite_sent", "invite_received", "accepted", "rejected"}


def test_friend_request_status_wire_names():
    assert FriendRequestStatus.INVITE_SENT.value == "InviteSent"
    assert FriendRequestStatus("Accepted") is FriendRequestStatus.ACCEPTED


def test_message_round_trip():
    message = Message(sender="alice", subject="hi", body="hello")
    assert Message.from_dict(message.to_dict()) == message
    assert message.to_dict() == {"sender": "alice", "subject": "hi", "body": "hello"}


def test_message_missing_field_raises():
    with pytest.raises(ValueError):
        Message.from_dict({"sender": "alice", "subject": "hi"})


def test_message_wrong_type_raises():
    with pytest.raises(ValueError):
        Message.from_dict({"sender": "alice", "subject": 3, "body": "x"})


def test_fetch_message_input_round_trip():
    item = FetchMessageInput(username="user3", address="1.1.1.1")
    restored = FetchMessageInput.from_dict(json.loads(json.dumps(item.to_dict())))
    assert restored == item


def test_fetch_message_response_round_trip():
    response = FetchMessageResponse(
        messages=[
            Message(sender="alice", subject="hi", body="hello"),
            Message(sender="bob", subject="re", body="yo"),
        ]
    )
    restored = FetchMessageResponse.from_dict(json.loads(json.dumps(response.to_dict())))
    assert restored == response
    assert len(restored.messages) == 2


def test_fetch_message_response_requires_list():
    with pytest.raises(ValueError):
        FetchMessageResponse.from_dict({"messages": "nope"})
    with pytest.raises(ValueError):
        FetchMessageResponse.from_dict({})


def test_friend_input_round_trip():
    item = FriendInput(
        username="alice",
        hostname="bob",
        address="1.1.1.1",
        req_type=FriendRequestStatus.INVITE_SENT,
    )
    data = item.to_dict()
    assert data["req_type"] == "InviteSent"
    assert FriendInput.from_dict(data) == item


def test_friend_input_unknown_variant_raises():
    with pytest.raises(ValueError):
        FriendInput.from_dict(
            {"username": "a", "hostname": "b", "address": "c", "req_type": "Maybe"}
        )