"""Wire-level data types shared by the HTTP API and the background fetchers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class FriendRequestStatus(Enum):
    """State of a friendship as stored locally and exchanged between peers."""

    INVITE_SENT = "InviteSent"
    INVITE_RECEIVED = "InviteReceived"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"

    def code(self) -> int:
        """Return the integer stored in the ``friends.status`` column."""
        return _STATUS_CODES[self]


_STATUS_CODES = {
    FriendRequestStatus.INVITE_SENT: 0,
    FriendRequestStatus.INVITE_RECEIVED: 1,
    FriendRequestStatus.ACCEPTED: 2,
    FriendRequestStatus.REJECTED: 3,
}

_STATUS_BY_CODE = {code: status for status, code in _STATUS_CODES.items()}

_STATUS_LABELS = {
    0: "invite_sent",
    1: "invite_received",
    2: "accepted",
    3: "rejected",
}


def status_str(code: int) -> str:
    """Human-readable label for a stored status code; ``"unknown"`` otherwise."""
    return _STATUS_LABELS.get(code, "unknown")


def status_enum(code: int) -> FriendRequestStatus:
    """Map a stored status code to its enum; unknown codes count as rejected."""
    return _STATUS_BY_CODE.get(code, FriendRequestStatus.REJECTED)


def _require_str(data: Mapping[str, Any], key: str) -> str:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


@dataclass
class Message:
    """A chat message as delivered between peers."""

    sender: str
    subject: str
    body: str

    def to_dict(self) -> dict[str, str]:
        return {"sender": self.sender, "subject": self.subject, "body": self.body}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls(
            sender=_require_str(data, "sender"),
            subject=_require_str(data, "subject"),
            body=_require_str(data, "body"),
        )


@dataclass
class FetchMessageInput:
    """Request body for ``/fetch_messages``."""

    username: str
    address: str

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "address": self.address}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FetchMessageInput":
        return cls(
            username=_require_str(data, "username"),
            address=_require_str(data, "address"),
        )


@dataclass
class FetchMessageResponse:
    """Response body for ``/fetch_messages``."""

    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"messages": [message.to_dict() for message in self.messages]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FetchMessageResponse":
        if not isinstance(data, Mapping):
            raise ValueError("expected a JSON object")
        if "messages" not in data:
            raise ValueError("missing field `messages`")
        raw = data["messages"]
        if not isinstance(raw, list):
            raise ValueError("field `messages` must be a list")
        return cls(messages=[Message.from_dict(item) for item in raw])


@dataclass
class FriendInput:
    """Request body for ``/friend_request``."""

    username: str
    hostname: str
    address: str
    req_type: FriendRequestStatus

    def to_dict(self) -> dict[str, str]:
        return {
            "username": self.username,
            "hostname": self.hostname,
            "address": self.address,
            "req_type": self.req_type.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FriendInput":
        raw_type = _require_str(data, "req_type")
        try:
            req_type = FriendRequestStatus(raw_type)
        except ValueError:
            raise ValueError(f"unknown variant `{raw_type}` for `req_type`") from None
        return cls(
            username=_require_str(data, "username"),
            hostname=_require_str(data, "hostname"),
            address=_require_str(data, "address"),
            req_type=req_type,
        )