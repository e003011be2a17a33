import asyncio

from app.models.chat import ChatMessage
from app.models.user import User, UserRole
from app.realtime.change_feed import MessageChangeFeed
from app.realtime.gateway import ChatGateway
from app.realtime.sessions import Connection, GatewaySessions
from app.repositories import ChatRepositories
from app.repositories.base import MessageInsert
from app.repositories.memory import InMemoryMessageRepository
from app.services.chat_service import ChatService


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)


class RecordingGateway:
    def __init__(self, fail_first: bool = False):
        self.fail_first = fail_first
        self.calls = []

    async def broadcast_new_message(self, message):
        self.calls.append(message.id)
        if self.fail_first and len(self.calls) == 1:
            raise RuntimeError("socket write failed")


class FlakyMessages:
    """Message store whose first insert stream dies after one event"""

    def __init__(self, inner, events_before_failure: int = 1):
        self.inner = inner
        self.events_before_failure = events_before_failure
        self.resume_args = []

    async def watch_inserts(self, resume_after=None):
        self.resume_args.append(resume_after)
        attempt = len(self.resume_args)
        seen = 0
        async for event in self.inner.watch_inserts(resume_after):
            yield event
            seen += 1
            if attempt == 1 and seen >= self.events_before_failure:
                raise RuntimeError("cursor killed")


async def wait_for(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def message(text: str) -> ChatMessage:
    return ChatMessage(room_id="room-1", sender_id="user-1", content=text)


def test_forwards_inserted_messages():
    async def scenario():
        messages = InMemoryMessageRepository()
        gateway = RecordingGateway()
        feed = MessageChangeFeed(messages, gateway, retry_initial=0.01, retry_max=0.05)

        feed.start()
        await asyncio.sleep(0.01)
        stored = await messages.insert(message("hello"))
        await wait_for(lambda: feed.delivered == 1)
        await feed.stop()
        return feed, gateway, stored

    feed, gateway, stored = asyncio.run(scenario())

    assert gateway.calls == [stored.id]
    assert feed.resume_token == 1
    assert not feed.running


def test_reconnects_after_last_seen_event():
    async def scenario():
        inner = InMemoryMessageRepository()
        flaky = FlakyMessages(inner)
        gateway = RecordingGateway()
        feed = MessageChangeFeed(flaky, gateway, retry_initial=0.01, retry_max=0.05)

        feed.start()
        await asyncio.sleep(0.01)
        first = await inner.insert(message("one"))
        await wait_for(lambda: len(flaky.resume_args) == 2)
        second = await inner.insert(message("two"))
        await wait_for(lambda: feed.delivered == 2)
        await feed.stop()
        return flaky, gateway, [first.id, second.id]

    flaky, gateway, expected = asyncio.run(scenario())

    assert flaky.resume_args == [None, 1]
    assert gateway.calls == expected


def test_delivery_failure_does_not_stop_stream():
    async def scenario():
        messages = InMemoryMessageRepository()
        gateway = RecordingGateway(fail_first=True)
        feed = MessageChangeFeed(messages, gateway, retry_initial=0.01, retry_max=0.05)

        feed.start()
        await asyncio.sleep(0.01)
        await messages.insert(message("lost"))
        await messages.insert(message("kept"))
        await wait_for(lambda: len(gateway.calls) == 2)
        await feed.stop()
        return feed

    feed = asyncio.run(scenario())

    assert feed.delivered == 1
    assert feed.resume_token == 2


class ScriptedMessages:
    """Insert stream that replays fixed events and then stays open"""

    def __init__(self, events):
        self.events = events
        self.resume_args = []

    async def watch_inserts(self, resume_after=None):
        self.resume_args.append(resume_after)
        for event in self.events:
            if resume_after is None or event.resume_token > resume_after:
                yield event
        await asyncio.Event().wait()


def test_undecodable_event_is_skipped_and_resume_token_advances():
    first, last = message("before"), message("after")
    first.id, last.id = "m1", "m3"
    scripted = ScriptedMessages([
        MessageInsert(resume_token=1, message=first),
        MessageInsert(resume_token=2, message=None),
        MessageInsert(resume_token=3, message=last),
    ])

    async def scenario():
        gateway = RecordingGateway()
        feed = MessageChangeFeed(scripted, gateway, retry_initial=0.01, retry_max=0.05)
        feed.start()
        await wait_for(lambda: feed.resume_token == 3)
        await feed.stop()
        return feed, gateway

    feed, gateway = asyncio.run(scenario())

    assert gateway.calls == ["m1", "m3"]
    assert feed.delivered == 2
    assert scripted.resume_args == [None]


def test_socket_subscriber_receives_message_from_both_paths():
    async def scenario():
        repos = ChatRepositories.in_memory()
        customer = repos.users.add(User(email="alice@petshop.com", username="alice"))
        service = ChatService(repos.rooms, repos.messages, repos.users)
        room, _ = await service.create_or_get_active_room(customer.id, UserRole.CUSTOMER)

        sessions = GatewaySessions()
        gateway = ChatGateway(service, sessions)
        websocket = FakeWebSocket()
        connection = Connection(websocket)
        sessions.register(connection)
        sessions.attach_user(connection, customer)
        await gateway.handle_join_room(connection, {"roomId": room.id})

        feed = MessageChangeFeed(repos.messages, gateway, retry_initial=0.01, retry_max=0.05)
        feed.start()
        await asyncio.sleep(0.01)

        await gateway.handle_send_message(connection, {"roomId": room.id, "content": "Any hamster wheels left?"})
        await wait_for(lambda: feed.delivered == 1)
        await feed.stop()
        return websocket.sent

    frames = asyncio.run(scenario())

    new_messages = [f["data"] for f in frames if f["event"] == "new_message"]
    sent = [f["data"] for f in frames if f["event"] == "message_sent"]
    assert len(new_messages) == 2
    assert new_messages[0]["id"] == new_messages[1]["id"] == sent[0]["messageId"]
    assert new_messages[1]["content"] == "Any hamster wheels left?"
