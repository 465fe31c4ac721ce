"""Tests for the client session state machine against a fake transport."""

import asyncio

import pytest

from roomchat.client.session import ChatClient, ClientState
from roomchat.core.errors import ChatConnectionError

from tests.conftest import FakeConnector, drain


def make_client(connector):
    states = []
    client = ChatClient(url="ws://test", connect=connector, on_state_change=states.append)
    return client, states


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_joins_exactly_once(self, connector):
        client, states = make_client(connector)

        assert await client.submit(" Alice ", "abc123") is True

        assert states == [ClientState.JOINING, ClientState.JOINED]
        assert client.state is ClientState.JOINED
        assert client.room == "ABC123"
        assert connector.calls == ["ws://test"]
        assert connector.last.sent == [
            {"type": "join", "data": {"name": "Alice", "message": [], "room": "ABC123"}}
        ]
        await client.leave()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,room", [("", "ABC123"), ("   ", "ABC123"), ("Alice", ""), ("Alice", "  ")])
    async def test_blank_input_is_a_noop(self, connector, name, room):
        client, states = make_client(connector)

        assert await client.submit(name, room) is False

        assert states == []
        assert client.state is ClientState.DISCONNECTED
        assert connector.calls == []

    @pytest.mark.asyncio
    async def test_connection_failure_reverts(self):
        connector = FakeConnector(error=ConnectionRefusedError("refused"))
        client, states = make_client(connector)

        with pytest.raises(ChatConnectionError):
            await client.submit("Alice", "ABC123")

        assert client.state is ClientState.DISCONNECTED
        assert states == [ClientState.JOINING, ClientState.DISCONNECTED]

    @pytest.mark.asyncio
    async def test_submit_while_joined_ignored(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")

        assert await client.submit("Alice", "OTHER1") is False
        assert len(connector.calls) == 1
        await client.leave()

    @pytest.mark.asyncio
    async def test_can_rejoin_after_leaving(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")
        await client.leave()

        assert await client.submit("Alice", "XYZ789") is True
        assert client.state is ClientState.JOINED
        assert len(connector.sockets) == 2
        await client.leave()


class TestMessages:

    @pytest.mark.asyncio
    async def test_send_appends_optimistic_copy_and_drops_echo(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")
        ws = connector.last
        ws.feed({"type": "welcome", "session_id": "s-alice", "name": "Alice", "room": "ABC123", "members": ["Alice"]})
        await drain()

        local = await client.send("hello")
        sent = ws.of_type("message")[0]
        ws.feed({"type": "message", "id": sent["data"]["id"], "sender": "Alice", "sender_id": "s-alice",
                 "message": "hello", "receiver": "Everyone", "room": "ABC123"})
        await drain()

        assert sent["data"] == {"message": "hello", "name": "Alice", "receiver": "Everyone", "id": local.message_id}
        assert [m.text for m in client.messages] == ["hello"]
        assert client.log.is_own(client.messages[0])
        await client.leave()

    @pytest.mark.asyncio
    async def test_blank_send_is_a_noop(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")

        assert await client.send("   ") is None
        assert connector.last.of_type("message") == []
        assert client.messages == ()
        await client.leave()

    @pytest.mark.asyncio
    async def test_send_before_join_is_a_noop(self, connector):
        client, _ = make_client(connector)
        assert await client.send("hi") is None

    @pytest.mark.asyncio
    async def test_incoming_frames_logged_in_receipt_order(self, connector):
        received = []
        client = ChatClient(url="ws://test", connect=connector, on_message=received.append)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        ws.feed({"type": "welcome", "session_id": "s-alice", "name": "Alice", "room": "ABC123", "members": ["Alice"]})
        ws.feed({"type": "presence", "event": "join", "name": "Bob", "session_id": "s-bob", "room": "ABC123",
                 "members": ["Alice", "Bob"], "message": "Bob joined the room"})
        ws.feed("this is not json")
        ws.feed({"sender": "Bob", "message": "hi"})
        ws.feed({"type": "error", "message": "Message text is required"})
        await drain()

        assert [(m.sender, m.text, m.receiver) for m in client.messages] == [
            ("System", "Bob joined the room", "Everyone"),
            ("Bob", "hi", "Everyone"),
        ]
        assert received == list(client.messages)
        assert client.members == ("Alice", "Bob")
        assert client.session_id == "s-alice"
        assert client.last_error == "Message text is required"
        assert client.state is ClientState.JOINED
        await client.leave()

    @pytest.mark.asyncio
    async def test_undecodable_binary_frame_is_dropped(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        ws.feed(b'{"a": "\x80"}')
        ws.feed({"sender": "Bob", "message": "after"})
        await drain()

        assert [(m.sender, m.text) for m in client.messages] == [("Bob", "after")]
        assert client.state is ClientState.JOINED

        ws.drop()
        await drain()
        assert client.state is ClientState.LEFT

    @pytest.mark.asyncio
    async def test_failing_callback_still_tears_down(self, connector):
        def explode(message):
            raise RuntimeError("renderer crashed")

        states = []
        client = ChatClient(url="ws://test", connect=connector, on_message=explode,
                            on_state_change=states.append)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        ws.feed({"sender": "Bob", "message": "hi"})
        await drain()

        assert client.state is ClientState.LEFT
        assert states.count(ClientState.LEFT) == 1
        assert len(ws.of_type("leave")) == 1
        assert ws.closed is True


class TestLeave:

    @pytest.mark.asyncio
    async def test_leave_twice_sends_one_leave(self, connector):
        client, states = make_client(connector)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        await client.leave()
        await client.leave()

        assert ws.of_type("leave") == [
            {"type": "leave", "data": {"name": "Alice", "message": [], "room": "ABC123"}}
        ]
        assert ws.closed is True
        assert states.count(ClientState.LEFT) == 1
        assert client.state is ClientState.LEFT

    @pytest.mark.asyncio
    async def test_leave_discards_session_state(self, connector):
        client, _ = make_client(connector)
        await client.submit("Alice", "ABC123")
        connector.last.feed({"type": "welcome", "session_id": "s", "name": "Alice", "room": "ABC123", "members": []})
        await drain()
        await client.send("hi")

        await client.leave()

        assert client.messages == ()
        assert client.session_id is None
        assert client.members == ()

    @pytest.mark.asyncio
    async def test_abrupt_close_tears_down_once(self, connector):
        client, states = make_client(connector)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        ws.drop()
        await drain()
        await client.leave()

        assert client.state is ClientState.LEFT
        assert states.count(ClientState.LEFT) == 1
        # One best-effort leave attempt, which the dead socket refused
        assert [f["type"] for f in ws.send_attempts] == ["join", "leave"]
        assert ws.of_type("leave") == []

    @pytest.mark.asyncio
    async def test_leave_racing_close(self, connector):
        client, states = make_client(connector)
        await client.submit("Alice", "ABC123")
        ws = connector.last

        await asyncio.gather(client.leave(), client.leave())
        await drain()

        assert len(ws.of_type("leave")) == 1
        assert states.count(ClientState.LEFT) == 1
