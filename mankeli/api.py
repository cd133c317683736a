"""HTTP endpoints that peers call to collect messages and exchange friend requests."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, TypeVar

import aiosqlite
from aiohttp import web

from mankeli.db import fetch_messages_for_user
from mankeli.models import (
    FetchMessageInput,
    FetchMessageResponse,
    FriendInput,
    FriendRequestStatus,
    Message,
)

log = logging.getLogger(__name__)

_CONN_KEY = web.AppKey("conn", aiosqlite.Connection)

_T = TypeVar("_T")


class ApiError(Exception):
    """An error reported to the caller as a JSON body with an HTTP status."""

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> web.Response:
        return web.json_response({"error": self.message}, status=self.status)


class InvalidInput(ApiError):
    status = 400


class NotFound(ApiError):
    status = 404


class InternalServerError(ApiError):
    status = 500


def create_app(conn: aiosqlite.Connection) -> web.Application:
    """Build the web application serving the peer-to-peer endpoints."""
    app = web.Application()
    app[_CONN_KEY] = conn
    app.router.add_get("/", index_handler)
    app.router.add_post("/fetch_messages", fetch_messages_handler)
    app.router.add_post("/friend_request", friend_request_handler)
    return app


async def _execute(conn: aiosqlite.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cursor = await conn.execute(sql, tuple(params))
    await conn.commit()
    return cursor.rowcount


async def mark_messages_as_sent(conn: aiosqlite.Connection, message_ids: list[int]) -> None:
    """Flag the given outgoing messages as delivered."""
    if not message_ids:
        return
    placeholders = ",".join("?" for _ in message_ids)
    await _execute(
        conn, f"UPDATE outgoing SET sent = 1 WHERE id IN ({placeholders})", message_ids
    )


async def _parse_json(request: web.Request, model: type[_T]) -> _T:
    content_type = request.content_type
    if not (content_type == "application/json" or content_type.endswith("+json")):
        raise web.HTTPUnsupportedMediaType(
            text="Expected request with `Content-Type: application/json`"
        )
    try:
        data = await request.json()
    except ValueError as exc:
        raise web.HTTPBadRequest(
            text=f"Failed to parse the request body as JSON: {exc}"
        ) from exc
    try:
        return model.from_dict(data)  # type: ignore[attr-defined]
    except ValueError as exc:
        raise web.HTTPUnprocessableEntity(
            text=f"Failed to deserialize the JSON body into the target type: {exc}"
        ) from exc


async def index_handler(request: web.Request) -> web.Response:
    return web.Response(text="Hello, this is a mankeli-chat server")


async def fetch_messages_handler(request: web.Request) -> web.Response:
    """Hand over every undelivered message queued for the caller and mark it sent."""
    payload = await _parse_json(request, FetchMessageInput)
    conn = request.app[_CONN_KEY]
    try:
        queued = await fetch_messages_for_user(conn, payload.username)
        await mark_messages_as_sent(conn, [message.id for message in queued])
    except sqlite3.Error as exc:
        return InternalServerError(str(exc)).to_response()
    response = FetchMessageResponse(
        [Message(sender=m.sender, subject=m.subject, body=m.body) for m in queued]
    )
    return web.json_response(response.to_dict())


_UPSERT_FRIEND = """
    INSERT INTO friends (username, address, status, sent)
    VALUES (?, ?, {status}, 1)
    ON CONFLICT(username) DO UPDATE SET
        status = {status},
        added_at = CURRENT_TIMESTAMP
"""


async def _record_invite(conn: aiosqlite.Connection, payload: FriendInput) -> str:
    try:
        await _execute(conn, _UPSERT_FRIEND.format(status=1), (payload.hostname, payload.address))
    except sqlite3.Error as exc:
        log.error("Failed to send invite: %r", exc)
        raise InternalServerError("DB insert failed") from exc
    return "invite_sent"


async def _record_acceptance(conn: aiosqlite.Connection, payload: FriendInput) -> str:
    try:
        async with conn.execute(
            "SELECT status FROM friends WHERE username = ? AND address = ?",
            (payload.hostname, payload.address),
        ) as cursor:
            row = await cursor.fetchone()
    except sqlite3.Error as exc:
        log.error("DB check failed: %r", exc)
        raise InternalServerError("DB check failed") from exc

    if row is None:
        raise NotFound("No invitation found.")
    if row[0] != 0:
        raise InvalidInput("No pending invitation to accept.")

    try:
        await _execute(conn, _UPSERT_FRIEND.format(status=2), (payload.hostname, payload.address))
    except sqlite3.Error as exc:
        log.error("Failed to accept friend: %r", exc)
        raise InternalServerError("Failed to accept friend") from exc
    return "accepted"


async def _record_rejection(conn: aiosqlite.Connection, payload: FriendInput) -> str:
    try:
        updated = await _execute(
            conn,
            "UPDATE friends SET status = 3, sent = 1, added_at = CURRENT_TIMESTAMP "
            "WHERE username = ? AND address = ? AND status = 0",
            (payload.hostname, payload.address),
        )
    except sqlite3.Error as exc:
        log.error("Failed to reject friend: %r", exc)
        raise InternalServerError("Failed to reject friend.") from exc
    if updated == 0:
        raise InvalidInput("No pending invitation to reject.")
    return "rejected"


async def _apply_friend_request(conn: aiosqlite.Connection, payload: FriendInput) -> str:
    match payload.req_type:
        case FriendRequestStatus.INVITE_SENT:
            return await _record_invite(conn, payload)
        case FriendRequestStatus.INVITE_RECEIVED:
            raise InvalidInput("why would you request this")
        case FriendRequestStatus.ACCEPTED:
            return await _record_acceptance(conn, payload)
        case FriendRequestStatus.REJECTED:
            return await _record_rejection(conn, payload)
    raise InvalidInput(f"unsupported request type {payload.req_type!r}")


async def friend_request_handler(request: web.Request) -> web.Response:
    """Apply a friendship change announced by a peer."""
    payload = await _parse_json(request, FriendInput)
    try:
        outcome = await _apply_friend_request(request.app[_CONN_KEY], payload)
    except ApiError as exc:
        return exc.to_response()
    return web.json_response({"status": outcome})