"""Interactive terminal client that also serves the peer endpoints in the background."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import re
import sqlite3
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

import aiosqlite
from aiohttp import web

from mankeli.api import create_app
from mankeli.comms import friend_fetcher, message_fetcher
from mankeli.db import (
    FriendRequest,
    OutgoingMessage,
    User,
    connect,
    delete_message,
    delete_user,
    fetch_inbox,
    fetch_outgoing,
    fetch_users,
    invite_decision,
    retr_user,
    send_invite,
    send_message_to_que,
    setup_db,
)
from mankeli.models import status_str

DEFAULT_DB_PATH = "mankeli.db"
DEFAULT_CONFIG_PATH = "config.json"

_STARTUP_PAUSE = 2
_MENU_PROMPT = (
    "\nAvailable commands: inbox, friends, send, outbound, quit\nPlease enter something: "
)
_FRIENDS_PROMPT = "a: Add Friend, r: remove Friend, i: invites, b: go back: "
_ROW_FORMAT = "{:<4} {:<15} {:<25} {:<18} {}"

_SIGNED = re.compile(r"[+-]?[0-9]+")
_UNSIGNED = re.compile(r"\+?[0-9]+")


@dataclass
class Config:
    """Settings read from the JSON configuration file."""

    server_address: str
    message_fetch_interval: int
    friend_fetch_interval: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        if not isinstance(data, Mapping):
            raise ValueError("expected a JSON object")
        for key in ("server_address", "message_fetch_interval", "friend_fetch_interval"):
            if key not in data:
                raise ValueError(f"missing field `{key}`")
        address = data["server_address"]
        if not isinstance(address, str):
            raise ValueError("field `server_address` must be a string")
        intervals = {}
        for key in ("message_fetch_interval", "friend_fetch_interval"):
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"field `{key}` must be a non-negative integer")
            intervals[key] = value
        return cls(server_address=address, **intervals)


def load_config(path: str | Path) -> Config:
    """Read and validate the configuration file; raise ValueError if malformed."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"JSON was not well-formatted: {exc}") from exc
    return Config.from_dict(data)


def read_input(prompt: str) -> str:
    """Show ``prompt`` and return the next input line, stripped; EOFError at end of input."""
    print(prompt, end="", flush=True)
    line = sys.stdin.readline()
    if not line:
        raise EOFError("end of input")
    return line.strip()


async def _ask(prompt: str) -> str:
    return await asyncio.to_thread(read_input, prompt)


def _parse_int(text: str, pattern: re.Pattern[str]) -> int:
    text = text.strip()
    if not text:
        raise ValueError("cannot parse integer from empty string")
    if not pattern.fullmatch(text):
        raise ValueError("invalid digit found in string")
    return int(text)


def _error(message: str) -> None:
    print(message, file=sys.stderr)


async def init_db(conn: aiosqlite.Connection, username: str, address: str) -> User:
    """Store the local user and return it as read back from the database."""
    await setup_db(conn, User(id=0, username=username, address=address))
    return await retr_user(conn)


async def read_inbox(conn: aiosqlite.Connection) -> None:
    """List the inbox and let the user read and optionally delete one message."""
    try:
        inbox = await fetch_inbox(conn)
    except sqlite3.Error as exc:
        _error(f"Error fetching inbox: {exc}")
        return

    if not inbox:
        print("You don't have any mail.")
        return

    print("Your inbox:")
    for number, message in enumerate(inbox, start=1):
        print(f"{number}. From: {message.sender}, Subject: {message.subject}")

    while True:
        answer = await _ask("\nEnter message number to read in full, or 'b' to go back: ")
        if answer.lower() == "b":
            print("Returning to main menu...")
            return
        try:
            number = _parse_int(answer, _UNSIGNED)
        except ValueError:
            number = 0
        if not 0 < number <= len(inbox):
            print("Invalid input. Please enter a valid number or 'b'.")
            continue

        message = inbox[number - 1]
        print(f"\nFrom: {message.sender}\nSubject: {message.subject}\n\n{message.message}")
        if (await _ask("Delete this message? (y/n): ")).lower() == "y":
            try:
                await delete_message(conn, message.id)
            except sqlite3.Error as exc:
                print(f"Failed to delete message: {exc}")
            else:
                print("Message deleted.")
        return


def _print_friends(friends: list) -> None:
    print("Your friends:")
    if not friends:
        print("You don't have any friends yet.")
        return
    print(_ROW_FORMAT.format("ID", "Username", "Address", "Status", "Added At (UTC)"))
    print("-" * 80)
    for friend in friends:
        added = str(friend.added_at) if friend.added_at is not None else "N/A"
        print(
            _ROW_FORMAT.format(
                friend.id, friend.username, friend.address, status_str(friend.status), added
            )
        )


async def _add_friend(conn: aiosqlite.Connection) -> None:
    username = await _ask("Enter username of user: ")
    address = await _ask("Enter ip/hostname of user: ")
    try:
        await send_invite(conn, FriendRequest(username=username, address=address))
    except sqlite3.Error as exc:
        _error(f"Error sending invite: {exc}")
    else:
        print("Friend invite sent!")


async def _remove_friend(conn: aiosqlite.Connection) -> None:
    answer = await _ask("Enter friend id to remove them: ")
    try:
        friend_id = _parse_int(answer, _SIGNED)
    except ValueError as exc:
        print(f"Invalid input: must be a number. Error: {exc}")
        return
    print(f"Removing friend with id: {friend_id}")
    try:
        await delete_user(conn, friend_id)
    except sqlite3.Error as exc:
        _error(f"Failed to remove friend: {exc}")
    else:
        print("Friend removed.")


async def _decide_invite(conn: aiosqlite.Connection) -> None:
    answer = await _ask("Select id to accept/reject request: ")
    command = (await _ask("a: accept, r: reject: ")).strip()
    try:
        friend_id = _parse_int(answer, _SIGNED)
    except ValueError as exc:
        print(f"Invalid input: must be a number. Error: {exc}")
        return
    decisions = {"a": True, "r": False}
    if command not in decisions:
        print("Invalid command. Use 'a' to accept or 'r' to reject.")
        return
    accept = decisions[command]
    try:
        await invite_decision(conn, friend_id, accept)
    except sqlite3.Error as exc:
        _error(f"Failed to process decision: {exc}")
    else:
        print("Friend request accepted." if accept else "Friend request rejected.")


async def read_friends(conn: aiosqlite.Connection) -> None:
    """Show the friend list and manage friends until the user goes back."""
    actions: dict[str, Callable[[aiosqlite.Connection], Awaitable[None]]] = {
        "a": _add_friend,
        "r": _remove_friend,
        "i": _decide_invite,
    }
    while True:
        try:
            friends = await fetch_users(conn)
        except sqlite3.Error as exc:
            _error(f"Error fetching users: {exc}")
            return
        _print_friends(friends)

        response = (await _ask(_FRIENDS_PROMPT)).lower()
        if response == "b":
            print("Returning to main menu...")
            return
        action = actions.get(response)
        if action is None:
            print("Invalid input. Please enter 'a', 'r', or 'b'.")
        else:
            await action(conn)


async def send_message(conn: aiosqlite.Connection) -> None:
    """Ask for a recipient, subject and content and queue the message."""
    print("Please fill the following fields")
    send_to = await _ask("Recipient: ")
    subject = await _ask("Subject: ")
    content = await _ask("Content: ")
    message = OutgoingMessage(send_to=send_to, subject=subject, content=content)
    try:
        await send_message_to_que(conn, message)
    except (sqlite3.Error, LookupError) as exc:
        _error(f"Error queuing message: {exc}")
    else:
        print("Message queued!")


async def view_outbound(conn: aiosqlite.Connection) -> None:
    """List every queued outgoing message with its delivery state."""
    try:
        outbound = await fetch_outgoing(conn)
    except sqlite3.Error as exc:
        _error(f"Error fetching outbound messages: {exc}")
        return

    print("Your outbound mail:")
    if not outbound:
        print("You don't have any outbound messages.")
        return
    for message in outbound:
        print(f"To: {message.recipient} | Subject: {message.subject} | Sent: {message.sent}")


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"invalid socket address: {address!r}")
    return host.strip("[]"), int(port)


async def run(db_path: str = DEFAULT_DB_PATH, config_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Start the server and background workers, then drive the interactive menu."""
    conn = await connect(db_path)
    runner: web.AppRunner | None = None
    tasks: list[asyncio.Task] = []
    try:
        config = load_config(config_path)
        username = await _ask("Enter Username: ")

        try:
            user = await retr_user(conn)
        except (LookupError, sqlite3.Error) as exc:
            _error(f"User not found or error retrieving user: {exc}. Initializing new user.")
            user = await init_db(conn, username, config.server_address)
        else:
            print(f"\nWelcome back {user.username}!\n")

        runner = web.AppRunner(create_app(conn))
        await runner.setup()
        host, port = _split_address(config.server_address)
        await web.TCPSite(runner, host, port).start()

        tasks.append(asyncio.create_task(friend_fetcher(conn, config.friend_fetch_interval)))
        tasks.append(
            asyncio.create_task(
                message_fetcher(
                    conn, user.username, user.address, config.message_fetch_interval
                )
            )
        )

        print(f"\nWelcome {user.username}!\n")
        await asyncio.sleep(_STARTUP_PAUSE)

        commands = {
            "inbox": read_inbox,
            "friends": read_friends,
            "send": send_message,
            "outbound": view_outbound,
        }
        while True:
            try:
                command = (await _ask(_MENU_PROMPT)).lower()
            except EOFError:
                command = "quit"
            if command == "quit":
                print("Goodbye!")
                break
            handler = commands.get(command)
            if handler is None:
                print("Unknown command.")
            else:
                await handler(conn)
    finally:
        for task in tasks:
            task.cancel()
        with contextlib.suppress(Exception):
            await asyncio.gather(*tasks, return_exceptions=True)
        if runner is not None:
            await runner.cleanup()
        await conn.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mankeli", description="Peer-to-peer chat client.")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="path of the SQLite database")
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="path of the JSON configuration"
    )
    args = parser.parse_args(argv)
    try:
        asyncio.run(run(args.db, args.config))
    except KeyboardInterrupt:
        print("Goodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())