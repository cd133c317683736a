"""Background workers that pull messages from friends and push friend-status changes."""

from __future__ import annotations

import asyncio
import sqlite3
import sys
from typing import Awaitable, Callable, Iterable, TypeVar

import aiohttp
import aiosqlite

from mankeli.db import (
    Friend,
    batch_ingest,
    fetch_active_friends,
    fetch_unsent_friend_updt,
    update_friend_status_as_sent,
)
from mankeli.models import FetchMessageInput, FetchMessageResponse, FriendInput, status_enum

_MESSAGE_CONCURRENCY = 10
_FRIEND_CONCURRENCY = 5
_RETRY_AFTER_ERROR = 60
_IDLE_MESSAGE_WAIT = 30
_IDLE_FRIEND_WAIT = 15

_T = TypeVar("_T")


def _describe_status(response: aiohttp.ClientResponse) -> str:
    return f"{response.status} {response.reason or ''}".rstrip()


async def _for_each_concurrent(
    items: Iterable[_T], limit: int, worker: Callable[[_T], Awaitable[None]]
) -> None:
    semaphore = asyncio.Semaphore(limit)

    async def bounded(item: _T) -> None:
        async with semaphore:
            await worker(item)

    await asyncio.gather(*(bounded(item) for item in items))


async def process_friend_messages(
    conn: aiosqlite.Connection,
    session: aiohttp.ClientSession,
    our_username: str,
    our_address: str,
    friend: Friend,
) -> None:
    """Collect the messages a friend has queued for us and store them in the inbox.

    Raises RuntimeError describing the step that failed.
    """
    url = f"http://{friend.address}/fetch_messages"
    body = FetchMessageInput(username=our_username, address=our_address).to_dict()
    try:
        async with session.post(url, json=body) as response:
            if not 200 <= response.status < 300:
                raise RuntimeError(f"Bad status: {_describe_status(response)}")
            try:
                payload = FetchMessageResponse.from_dict(await response.json(content_type=None))
            except ValueError as exc:
                raise RuntimeError(f"Parse error: {exc}") from exc
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise RuntimeError(f"Request error: {exc}") from exc

    if payload.messages:
        try:
            await batch_ingest(conn, payload.messages)
        except sqlite3.Error as exc:
            raise RuntimeError(f"DB error: {exc}") from exc


async def message_fetcher(
    conn: aiosqlite.Connection, our_username: str, our_address: str, sleep_time: float
) -> None:
    """Poll every accepted friend for new messages, forever."""
    print("Message fetcher started.")
    async with aiohttp.ClientSession() as session:

        async def handle(friend: Friend) -> None:
            try:
                await process_friend_messages(conn, session, our_username, our_address, friend)
            except RuntimeError as exc:
                print(f"Error processing messages from {friend.username}: {exc}", file=sys.stderr)
            else:
                print(f"Processed messages from {friend.username}")

        while True:
            try:
                friends = await fetch_active_friends(conn)
            except sqlite3.Error as exc:
                print(
                    f"Error fetching friend list: {exc}. Retrying in 60s.", file=sys.stderr
                )
                await asyncio.sleep(_RETRY_AFTER_ERROR)
                continue

            if not friends:
                await asyncio.sleep(_IDLE_MESSAGE_WAIT)
                continue

            await _for_each_concurrent(friends, _MESSAGE_CONCURRENCY, handle)
            await asyncio.sleep(sleep_time)


async def send_friend_request(
    conn: aiosqlite.Connection,
    session: aiohttp.ClientSession,
    our_username: str,
    friend: Friend,
    address: str,
) -> None:
    """Tell a friend about our side's friendship status and mark it delivered.

    Raises RuntimeError describing the step that failed.
    """
    body = FriendInput(
        username=friend.username,
        hostname=our_username,
        address=address,
        req_type=status_enum(friend.status),
    ).to_dict()
    url = f"http://{friend.address}/friend_request"
    try:
        async with session.post(url, json=body) as response:
            succeeded = 200 <= response.status < 300
            status = _describe_status(response)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise RuntimeError(f"Network error: {exc}") from exc

    if not succeeded:
        raise RuntimeError(f"Non-200 response: {status}")
    try:
        await update_friend_status_as_sent(conn, friend.username)
    except sqlite3.Error as exc:
        raise RuntimeError(f"DB error: {exc}") from exc


async def friend_fetcher(conn: aiosqlite.Connection, sleep_time: float) -> None:
    """Deliver undelivered friendship changes to the friends concerned, forever."""
    print("Friend fetcher service started.")
    async with aiohttp.ClientSession() as session:
        while True:
            try:
                user, friends = await fetch_unsent_friend_updt(conn)
            except (sqlite3.Error, LookupError) as exc:
                print(
                    f"DB Error fetching friend updates: {exc}. Retrying in 60s.",
                    file=sys.stderr,
                )
                await asyncio.sleep(_RETRY_AFTER_ERROR)
                continue

            if not friends:
                await asyncio.sleep(_IDLE_FRIEND_WAIT)
                continue

            async def handle(friend: Friend) -> None:
                try:
                    await send_friend_request(conn, session, user.username, friend, user.address)
                except RuntimeError as exc:
                    print(
                        f"Error sending request to {friend.username}: {exc}", file=sys.stderr
                    )
                else:
                    print(f"Friend request sent to {friend.username}")

            await _for_each_concurrent(friends, _FRIEND_CONCURRENCY, handle)
            await asyncio.sleep(sleep_time)