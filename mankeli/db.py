"""SQLite storage for the local user, friends, inbox and outgoing queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

import aiosqlite

from mankeli.models import Message

_SCHEMA = """
CREATE TABLE IF NOT EXISTS user (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL,
    address TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS friends (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    address TEXT NOT NULL,
    status INTEGER NOT NULL DEFAULT 0,
    sent BOOLEAN NOT NULL DEFAULT 0,
    added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS inbox (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sender TEXT NOT NULL,
    subject TEXT NOT NULL,
    message TEXT NOT NULL,
    received_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS outgoing (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sender TEXT NOT NULL,
    recipient TEXT NOT NULL,
    recipient_address TEXT NOT NULL,
    subject TEXT NOT NULL,
    message TEXT NOT NULL,
    queued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    sent BOOLEAN DEFAULT 0
);
"""

_FRIEND_COLUMNS = "id, username, address, status, added_at"
_OUTGOING_COLUMNS = (
    "id, sender, recipient, recipient_address, subject, message, queued_at, sent"
)


@dataclass
class User:
    id: int
    username: str
    address: str


@dataclass
class Friend:
    id: int
    username: str
    address: str
    status: int
    added_at: datetime | None = None


@dataclass
class InboxMessage:
    id: int
    sender: str
    subject: str
    message: str
    received_at: datetime | None = None


@dataclass
class Outgoing:
    id: int
    sender: str
    recipient: str
    recipient_address: str
    subject: str
    body: str
    queued_at: datetime | None = None
    sent: bool | None = None


@dataclass
class OutgoingMessage:
    send_to: str
    subject: str
    content: str


@dataclass
class FriendRequest:
    username: str
    address: str


def _timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _friend(row: Any) -> Friend:
    return Friend(row[0], row[1], row[2], int(row[3]), _timestamp(row[4]))


def _outgoing(row: Any) -> Outgoing:
    sent = None if row[7] is None else bool(row[7])
    return Outgoing(row[0], row[1], row[2], row[3], row[4], row[5], _timestamp(row[6]), sent)


async def _fetch_all(conn: aiosqlite.Connection, sql: str, params: Iterable[Any] = ()) -> list:
    async with conn.execute(sql, tuple(params)) as cursor:
        return list(await cursor.fetchall())


async def _fetch_optional(conn: aiosqlite.Connection, sql: str, params: Iterable[Any] = ()):
    async with conn.execute(sql, tuple(params)) as cursor:
        return await cursor.fetchone()


async def _write(conn: aiosqlite.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cursor = await conn.execute(sql, tuple(params))
    await conn.commit()
    return cursor.rowcount


async def migrate(conn: aiosqlite.Connection) -> None:
    """Create the tables if they do not exist yet."""
    await conn.executescript(_SCHEMA)
    await conn.commit()


async def connect(path: str) -> aiosqlite.Connection:
    """Open (creating if needed) the database at ``path`` and migrate it."""
    conn = await aiosqlite.connect(path)
    await migrate(conn)
    return conn


async def setup_db(conn: aiosqlite.Connection, initial_user: User) -> None:
    """Store the local user unless one with the same name already exists."""
    existing = await _fetch_optional(
        conn, "SELECT id FROM user WHERE username = ?", (initial_user.username,)
    )
    if existing is None:
        await _write(
            conn,
            "INSERT INTO user (username, address) VALUES (?, ?)",
            (initial_user.username, initial_user.address),
        )


async def retr_user(conn: aiosqlite.Connection) -> User:
    """Return the local user; raise LookupError if none is stored."""
    row = await _fetch_optional(conn, "SELECT id, username, address FROM user LIMIT 1")
    if row is None:
        raise LookupError("no rows returned by a query that expected to return at least one row")
    return User(row[0], row[1], row[2])


async def fetch_users(conn: aiosqlite.Connection) -> list[Friend]:
    rows = await _fetch_all(conn, f"SELECT {_FRIEND_COLUMNS} FROM friends")
    return [_friend(row) for row in rows]


async def fetch_inbox(conn: aiosqlite.Connection) -> list[InboxMessage]:
    rows = await _fetch_all(
        conn, "SELECT id, sender, subject, message, received_at FROM inbox"
    )
    return [InboxMessage(r[0], r[1], r[2], r[3], _timestamp(r[4])) for r in rows]


async def fetch_outgoing(conn: aiosqlite.Connection) -> list[Outgoing]:
    rows = await _fetch_all(conn, f"SELECT {_OUTGOING_COLUMNS} FROM outgoing")
    return [_outgoing(row) for row in rows]


async def send_message_to_que(conn: aiosqlite.Connection, message: OutgoingMessage) -> None:
    """Queue a message for a friend; raise LookupError if the friend is unknown."""
    sender = await retr_user(conn)
    row = await _fetch_optional(
        conn, "SELECT address FROM friends WHERE username = ?", (message.send_to,)
    )
    if row is None:
        raise LookupError(f"no friend named {message.send_to!r}")
    await _write(
        conn,
        "INSERT INTO outgoing (sender, recipient, recipient_address, subject, message) "
        "VALUES (?, ?, ?, ?, ?)",
        (sender.username, message.send_to, row[0], message.subject, message.content),
    )


async def send_invite(conn: aiosqlite.Connection, request: FriendRequest) -> None:
    await _write(
        conn,
        "INSERT INTO friends (username, address) VALUES (?, ?)",
        (request.username, request.address),
    )


async def delete_message(conn: aiosqlite.Connection, message_id: int) -> None:
    await _write(conn, "DELETE FROM inbox WHERE id = ?", (message_id,))


async def delete_user(conn: aiosqlite.Connection, friend_id: int) -> None:
    await _write(conn, "DELETE FROM friends WHERE id = ?", (friend_id,))


async def invite_decision(conn: aiosqlite.Connection, friend_id: int, accept: bool) -> None:
    """Accept or reject a friend and mark the change as not yet delivered."""
    status = 2 if accept else 3
    await _write(
        conn, "UPDATE friends SET status = ?, sent = ? WHERE id = ?", (status, 0, friend_id)
    )


async def fetch_messages_for_user(conn: aiosqlite.Connection, username: str) -> list[Outgoing]:
    rows = await _fetch_all(
        conn,
        f"SELECT {_OUTGOING_COLUMNS} FROM outgoing WHERE recipient = ? AND sent = 0",
        (username,),
    )
    return [_outgoing(row) for row in rows]


async def fetch_active_friends(conn: aiosqlite.Connection) -> list[Friend]:
    rows = await _fetch_all(
        conn, f"SELECT {_FRIEND_COLUMNS} FROM friends WHERE status = ?", (2,)
    )
    return [_friend(row) for row in rows]


async def fetch_unsent_friend_updt(conn: aiosqlite.Connection) -> tuple[User, list[Friend]]:
    """Return the local user and friends whose status change is undelivered."""
    user = await retr_user(conn)
    rows = await _fetch_all(
        conn, f"SELECT {_FRIEND_COLUMNS} FROM friends WHERE sent = ?", (0,)
    )
    return user, [_friend(row) for row in rows]


async def batch_ingest(conn: aiosqlite.Connection, messages: Iterable[Message]) -> None:
    rows = [(m.sender, m.subject, m.body) for m in messages]
    if not rows:
        return
    await conn.executemany(
        "INSERT INTO inbox (sender, subject, message) VALUES (?, ?, ?)", rows
    )
    await conn.commit()


async def update_friend_status_as_sent(conn: aiosqlite.Connection, username: str) -> None:
    await _write(conn, "UPDATE friends SET sent = 1 WHERE username = ?", (username,))