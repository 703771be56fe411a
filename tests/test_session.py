"""RconSession 状态机与多包响应测试"""

import asyncio
import struct

import pytest

from fakes import PASSWORD, FakeServer, FakeTransport, FixedRandom, frame, make_session
from source_rcon import (
    AlreadyAuthenticated,
    AuthenticationFailed,
    MalformedPacket,
    NotAuthenticated,
    NotConnected,
    PacketTooLarge,
    RconConnectionError,
    RconTimeout,
    TerminatorAggregator,
    UnableToAuthenticate,
    rcon_command,
)
from source_rcon.protocol import (
    ID_AUTH,
    SERVERDATA_AUTH,
    SERVERDATA_AUTH_RESPONSE,
    SERVERDATA_EXECCOMMAND,
    SERVERDATA_RESPONSE_VALUE,
)

BIG = 4000


def run(coro):
    return asyncio.run(coro)


async def authed(transport: FakeTransport, **kwargs):
    session = make_session(transport, **kwargs)
    assert await session.authenticate(PASSWORD) is True
    return session


class TestAuthenticate:
    def test_success(self):
        async def scenario():
            transport = FakeTransport()
            session = await authed(transport)
            return session, transport

        session, transport = run(scenario())
        assert session.connected
        assert session.authenticated
        auth = transport.written[0]
        assert (auth.type, auth.id, auth.text) == (SERVERDATA_AUTH, ID_AUTH, PASSWORD)

    def test_wrong_password_returns_false_and_disconnects(self):
        async def scenario():
            transport = FakeTransport(FakeServer(password="secret"))
            session = make_session(transport)
            ok = await session.authenticate("wrong")
            return ok, session, transport

        ok, session, transport = run(scenario())
        assert ok is False
        assert not session.connected
        assert not session.authenticated
        assert transport.closed

    def test_twice_raises_and_keeps_state(self):
        async def scenario():
            transport = FakeTransport()
            session = await authed(transport)
            with pytest.raises(AlreadyAuthenticated):
                await session.authenticate(PASSWORD)
            return session, transport

        session, transport = run(scenario())
        assert session.connected and session.authenticated
        assert len(transport.written) == 1
        assert transport.connects == 1

    def test_connect_failure(self):
        async def scenario():
            session = make_session(FakeTransport(fail_connect=True))
            with pytest.raises(RconConnectionError):
                await session.authenticate(PASSWORD)
            return session

        session = run(scenario())
        assert not session.connected

    def test_timeout_disconnects(self):
        async def scenario():
            server = FakeServer()
            server.silent = True
            transport = FakeTransport(server)
            session = make_session(transport, timeout=0.05)
            with pytest.raises(RconTimeout):
                await session.authenticate(PASSWORD)
            return session, transport

        session, transport = run(scenario())
        assert not session.connected
        assert transport.closed

    def test_auth_response_split_across_chunks(self):
        async def scenario():
            transport = FakeTransport(chunk_size=3)
            return await authed(transport)

        assert run(scenario()).authenticated

    def test_oversized_password(self):
        async def scenario():
            transport = FakeTransport()
            session = make_session(transport, max_packet_size=32)
            with pytest.raises(PacketTooLarge):
                await session.authenticate("x" * 64)
            return session, transport

        session, transport = run(scenario())
        assert transport.written == []
        assert not session.connected

    def test_auth_response_with_other_id_succeeds(self):
        def responder(packet):
            if packet.type == SERVERDATA_AUTH:
                return [frame(SERVERDATA_RESPONSE_VALUE, 7), frame(SERVERDATA_AUTH_RESPONSE, 7)]
            return FakeServer()(packet)

        async def scenario():
            session = make_session(FakeTransport(responder))
            return await session.authenticate(PASSWORD), session

        ok, session = run(scenario())
        assert ok is True
        assert session.authenticated

    def test_connect_and_request_share_one_deadline(self):
        transport = SlowTransport(connect_delay=0.15, write_delay=0.15)

        async def scenario():
            session = make_session(transport, timeout=0.2)
            with pytest.raises(RconTimeout):
                await session.authenticate(PASSWORD)
            return session

        session = run(scenario())
        assert not session.connected
        assert not session.authenticated

    def test_hung_connect_times_out(self):
        async def scenario():
            session = make_session(SlowTransport(connect_delay=10), timeout=0.1)
            with pytest.raises(RconTimeout):
                await session.authenticate(PASSWORD)
            return session

        assert not run(scenario()).connected


class TestExecuteGuards:
    def test_execute_before_connect(self):
        async def scenario():
            transport = FakeTransport()
            session = make_session(transport)
            with pytest.raises(NotConnected):
                await session.execute("status")
            return transport

        transport = run(scenario())
        assert transport.connects == 0
        assert transport.written == []

    def test_execute_after_rejected_auth(self):
        async def scenario():
            transport = FakeTransport(FakeServer(password="secret"))
            session = make_session(transport)
            await session.authenticate("wrong")
            with pytest.raises(NotAuthenticated):
                await session.execute("status")
            return transport

        transport = run(scenario())
        assert [p.type for p in transport.written] == [SERVERDATA_AUTH]

    def test_packet_too_large_is_not_sent(self):
        async def scenario():
            transport = FakeTransport()
            session = await authed(transport, max_packet_size=64)
            with pytest.raises(PacketTooLarge):
                await session.execute("say " + "x" * 100)
            return session, transport

        session, transport = run(scenario())
        assert len(transport.written) == 1
        assert session.authenticated

    def test_zero_max_packet_size_is_unlimited(self):
        command = "say " + "x" * 10000

        async def scenario():
            transport = FakeTransport(FakeServer(responses={command: "ok"}))
            session = await authed(transport, max_packet_size=0)
            return await session.execute(command)

        assert run(scenario()) == "ok"


class TestExecute:
    def test_single_packet_response(self):
        async def scenario():
            transport = FakeTransport(FakeServer(responses={"echo hello": "hello"}))
            session = await authed(transport)
            return await session.execute("echo hello"), transport

        result, transport = run(scenario())
        assert result == "hello"
        command = transport.written[1]
        assert (command.type, command.id, command.text) == (SERVERDATA_EXECCOMMAND, 42, "echo hello")
        assert transport.probes() == []

    def test_empty_response(self):
        async def scenario():
            session = await authed(FakeTransport())
            return await session.execute("sv_cheats 0")

        assert run(scenario()) == ""

    def test_multi_packet_response(self):
        fragments = ["a" * BIG, "b" * BIG, "c" * BIG]

        async def scenario():
            transport = FakeTransport(FakeServer(responses={"cvarlist": fragments}), chunk_size=1000)
            session = await authed(transport)
            return await session.execute("cvarlist"), transport

        result, transport = run(scenario())
        assert result == "".join(fragments)
        assert len(transport.probes()) == 3

    def test_large_fragment_then_small_tail(self):
        fragments = ["a" * BIG, "tail\n"]

        async def scenario():
            transport = FakeTransport(FakeServer(responses={"cvarlist": fragments}))
            session = await authed(transport)
            return await session.execute("cvarlist"), transport

        result, transport = run(scenario())
        assert result == "a" * BIG + "tail\n"
        assert len(transport.probes()) == 1

    def test_multi_byte_character_split_between_fragments(self):
        first = "a" * (BIG - 1) + "é"
        head, tail = first.encode("utf-8")[:-1], first.encode("utf-8")[-1:]

        def responder(packet):
            if packet.type == SERVERDATA_EXECCOMMAND:
                return [
                    _raw_frame(packet.id, head),
                    _raw_frame(packet.id, tail + "!".encode("utf-8")),
                ]
            return FakeServer()(packet)

        async def scenario():
            session = await authed(FakeTransport(responder))
            return await session.execute("dump")

        assert run(scenario()) == first + "!"

    def test_probe_leftovers_do_not_leak_into_next_command(self):
        responses = {"cvarlist": ["a" * BIG, "b" * BIG], "echo hello": "hello"}

        async def scenario():
            transport = FakeTransport(FakeServer(responses=responses))
            session = await authed(transport, rng=FixedRandom(10, 11))
            first = await session.execute("cvarlist")
            second = await session.execute("echo hello")
            return first, second

        first, second = run(scenario())
        assert first == "a" * BIG + "b" * BIG
        assert second == "hello"

    def test_stale_packet_is_discarded(self):
        async def scenario():
            transport = FakeTransport(FakeServer(responses={"status": "map: de_dust2"}))
            session = await authed(transport)
            transport.push(frame(SERVERDATA_RESPONSE_VALUE, 7, "old output"))
            return await session.execute("status")

        assert run(scenario()) == "map: de_dust2"

    def test_terminator_strategy(self):
        fragments = ["first ", "second"]

        async def scenario():
            transport = FakeTransport(FakeServer(responses={"users": fragments}))
            session = await authed(transport, aggregator_factory=TerminatorAggregator)
            return await session.execute("users"), transport

        result, transport = run(scenario())
        assert result == "first second"
        assert len(transport.probes()) == 1

    def test_auth_failure_mid_stream(self):
        def responder(packet):
            if packet.type == SERVERDATA_EXECCOMMAND:
                return [frame(SERVERDATA_RESPONSE_VALUE, -1)]
            return FakeServer()(packet)

        async def scenario():
            session = await authed(FakeTransport(responder))
            with pytest.raises(AuthenticationFailed):
                await session.execute("status")

        run(scenario())

    def test_malformed_packet(self):
        def responder(packet):
            if packet.type == SERVERDATA_EXECCOMMAND:
                return [b"\x04\x00\x00\x00" + b"\x00" * 8]
            return FakeServer()(packet)

        async def scenario():
            session = await authed(FakeTransport(responder))
            with pytest.raises(MalformedPacket):
                await session.execute("status")

        run(scenario())

    def test_timeout_keeps_connection(self):
        async def scenario():
            server = FakeServer()
            transport = FakeTransport(server)
            session = await authed(transport, timeout=0.05)
            server.silent = True
            with pytest.raises(RconTimeout):
                await session.execute("status")
            return session

        session = run(scenario())
        assert session.connected
        assert session.authenticated

    def test_peer_closes_mid_response(self):
        def responder(packet):
            if packet.type == SERVERDATA_EXECCOMMAND:
                return []
            return FakeServer()(packet)

        async def scenario():
            transport = FakeTransport(responder)
            session = await authed(transport)
            transport.hang_up()
            with pytest.raises(RconConnectionError):
                await session.execute("status")
            assert not session.connected
            assert not session.authenticated
            with pytest.raises(NotConnected):
                await session.execute("status")
            return transport

        assert run(scenario()).closed

    def test_waiting_for_lock_counts_against_timeout(self):
        async def scenario():
            transport = FakeTransport(FakeServer(responses={"status": "ok"}))
            session = await authed(transport, timeout=0.1)
            # 另一个请求占着连接
            async with session._lock:
                with pytest.raises(RconTimeout):
                    await session.execute("status")
            return session, transport

        session, transport = run(scenario())
        assert session.authenticated
        assert len(transport.written) == 1

    def test_concurrent_calls_are_serialized(self):
        responses = {"one": "1", "two": ["x" * BIG, "y"]}

        async def scenario():
            transport = FakeTransport(FakeServer(responses=responses))
            session = await authed(transport, rng=FixedRandom(1, 2))
            return await asyncio.gather(session.execute("one"), session.execute("two"))

        assert run(scenario()) == ["1", "x" * BIG + "y"]


class TestDisconnect:
    def test_idempotent(self):
        async def scenario():
            transport = FakeTransport()
            session = await authed(transport)
            await session.disconnect()
            await session.disconnect()
            return session, transport

        session, transport = run(scenario())
        assert not session.connected
        assert not session.authenticated
        assert transport.closed

    def test_never_connected(self):
        async def scenario():
            session = make_session(FakeTransport())
            await session.disconnect()
            return session

        assert not run(scenario()).connected

    def test_context_manager(self):
        async def scenario():
            transport = FakeTransport()
            async with make_session(transport) as session:
                await session.authenticate(PASSWORD)
            return session, transport

        session, transport = run(scenario())
        assert transport.closed
        assert not session.connected

    def test_reauthenticate_after_disconnect(self):
        async def scenario():
            transport = FakeTransport()
            session = await authed(transport)
            await session.disconnect()
            return await session.authenticate(PASSWORD), transport

        ok, transport = run(scenario())
        assert ok is True
        assert transport.connects == 2


class TestRconCommand:
    def test_one_shot(self):
        transport = FakeTransport(FakeServer(responses={"status": "hostname: test"}))
        result = run(
            rcon_command("127.0.0.1", 27015, PASSWORD, "status", transport_factory=lambda: transport)
        )
        assert result == "hostname: test"
        assert transport.closed

    def test_one_shot_bad_password(self):
        transport = FakeTransport(FakeServer(password="secret"))
        with pytest.raises(UnableToAuthenticate):
            run(rcon_command("127.0.0.1", 27015, "wrong", "status", transport_factory=lambda: transport))


class SlowTransport(FakeTransport):
    def __init__(self, connect_delay: float = 0.0, write_delay: float = 0.0):
        super().__init__()
        self.connect_delay = connect_delay
        self.write_delay = write_delay

    async def connect(self, host: str, port: int) -> None:
        await asyncio.sleep(self.connect_delay)
        await super().connect(host, port)

    async def write(self, data: bytes) -> None:
        await asyncio.sleep(self.write_delay)
        await super().write(data)


def _raw_frame(req_id: int, body: bytes) -> bytes:
    return struct.pack("<iii", len(body) + 10, req_id, SERVERDATA_RESPONSE_VALUE) + body + b"\x00\x00"
