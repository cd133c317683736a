# mankeli

A small peer-to-peer chat client. Every participant runs their own node: a
local SQLite database holds the local user, the friend list, the inbox and
queued outgoing messages, and an HTTP server lets friends collect the messages
queued for them. Two background tasks deliver friend invites and decisions to
peers and pull new messages from accepted friends.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Configuration

The node reads a JSON configuration file, `config.json` in the working
directory unless told otherwise:

```json
{
    "server_address": "127.0.0.1:3000",
    "message_fetch_interval": 30,
    "friend_fetch_interval": 15
}
```

- `server_address` – the `host:port` the node listens on. It is also stored as
  the local user's address and sent to friends with every friend request.
- `message_fetch_interval` – seconds to wait after each round of pulling
  messages from accepted friends.
- `friend_fetch_interval` – seconds to wait after each round of delivering
  pending friend invites and decisions.

All three fields are required; the intervals must be non-negative integers.
`mankeli.cli.load_config` raises `ValueError` for a malformed file.

The database is kept in `mankeli.db` in the working directory and its tables
are created when it is opened.

## Usage

```
mankeli
```

or, with other paths:

```
mankeli --db other.db --config other.json
```

At start you are asked for a username. If the database has no user yet, that
name becomes the identity of this node; otherwise the stored user is greeted
back. The node then starts its HTTP server on `server_address`, starts the
background tasks, and shows the main menu:

- `inbox` – list received messages, read one in full by its number and
  optionally delete it.
- `friends` – show friends with id, address, status and time added, then:
  `a` adds a friend by username and address, `r` removes one by id, `i`
  accepts or rejects a friend by id, `b` goes back.
- `send` – queue a message for a friend (recipient, subject, content). The
  recipient must be on the friend list.
- `outbound` – list queued messages and whether they have been collected.
- `quit` – leave the program (end of input does the same).

### How friendship and delivery work

Adding a friend stores them with status `invite_sent`. The friend fetcher sends
every not-yet-delivered friend entry to that peer's `/friend_request`; the peer
records you as `invite_received`. When the peer accepts or rejects you under
`friends` → `i`, their node sends the decision back and yours moves the entry
to `accepted` or `rejected`.

The message fetcher asks each accepted friend's `/fetch_messages` for the
messages queued there for your username and stores them in your inbox. Your
own queued messages wait until the recipient's node collects them.

## HTTP interface

`mankeli.api.create_app(conn)` builds an aiohttp application with:

- `GET /` – a short greeting text.
- `POST /fetch_messages` – body `{"username": ..., "address": ...}`; returns
  `{"messages": [{"sender": ..., "subject": ..., "body": ...}, ...]}` with every
  unsent message queued for that username, and marks them as sent.
- `POST /friend_request` – body `{"username", "hostname", "address",
  "req_type"}`. `req_type` `InviteSent` records the caller (`hostname`,
  `address`) as having invited you and answers `{"status": "invite_sent"}`;
  `Accepted` and `Rejected` apply the caller's decision on an invite you sent
  and answer `{"status": "accepted"}` or `{"status": "rejected"}`.
  `InviteReceived` is refused.

Requests must have `Content-Type: application/json`; otherwise the answer is
415, an unparsable body gives 400 and a body with missing or wrongly typed
fields gives 422. Failures of the request itself are answered as
`{"error": "..."}` with status 400 (`InvalidInput`), 404 (`NotFound`) or 500
(`InternalServerError`), all subclasses of `mankeli.api.ApiError`.

## Using the library

`mankeli.db` works on an `aiosqlite` connection:

```python
import asyncio
from mankeli import db

async def demo():
    conn = await db.connect(":memory:")
    await db.setup_db(conn, db.User(id=0, username="alice", address="127.0.0.1:3000"))
    await db.send_invite(conn, db.FriendRequest(username="bob", address="127.0.0.1:3001"))
    for friend in await db.fetch_users(conn):
        print(friend.username, friend.address, friend.status)
    await conn.close()

asyncio.run(demo())
```

`mankeli.models` holds the JSON message types (`Message`,
`FetchMessageInput`, `FetchMessageResponse`, `FriendInput`), the
`FriendRequestStatus` enum and the helpers `status_str` and `status_enum` that
map stored status codes 0–3.

`mankeli.comms` holds the background tasks `message_fetcher` and
`friend_fetcher`, which run forever, and the single-peer helpers
`process_friend_messages` and `send_friend_request`, which raise
`RuntimeError` when a step fails.

## Limitations

Peers talk plain HTTP with no authentication or encryption: any caller that
names a username on `/fetch_messages` receives the messages queued for it.
There is one local user per database.