import asyncio

import pytest

from helpers import FakeTransport
from linechat.hub import ServerHub
from linechat.protocol import ListenError


def _connect(hub, count):
    transports = [FakeTransport(peername=("127.0.0.1", 50000 + i)) for i in range(count)]
    ids = [hub.accept(t) for t in transports]
    for t in transports:
        t.written.clear()
    return ids, transports


def test_accept_assigns_increasing_ids_and_announces_join_to_everyone():
    hub = ServerHub()
    first, second = FakeTransport(), FakeTransport()

    assert hub.accept(first) == 1
    assert first.text == "1 has joined\n"

    assert hub.accept(second) == 2
    assert first.text == "1 has joined\n2 has joined\n"
    assert second.text == "2 has joined\n"
    assert sorted(hub.sessions) == [1, 2]


def test_line_from_one_session_is_broadcast_to_all_sessions():
    hub = ServerHub()
    ids, transports = _connect(hub, 3)
    assert ids == [1, 2, 3]

    hub.on_data(2, "hello everyone\n")

    for t in transports:
        assert t.text == "hello everyone\n"


def test_partial_lines_are_buffered_per_session():
    hub = ServerHub()
    _, (a, b) = _connect(hub, 2)

    hub.on_data(1, "hel")
    hub.on_data(2, "other\n")
    assert a.text == "other\n"

    hub.on_data(1, "lo\nmore")
    assert a.text == "other\nhello\n"
    assert b.text == "other\nhello\n"
    assert hub.sessions[1].framer.pending == "more"


def test_multiple_lines_in_one_chunk_keep_order():
    hub = ServerHub()
    _, (a,) = _connect(hub, 1)

    hub.on_data(1, "one\ntwo\nthree\n")

    assert a.text == "one\ntwo\nthree\n"


def test_close_announces_leave_to_remaining_sessions():
    hub = ServerHub()
    _, (a, b) = _connect(hub, 2)

    hub.close(1, had_error=True)

    assert 1 not in hub.sessions
    assert a.text == ""
    assert b.text == "1 has left\n"


def test_session_ids_are_never_reused():
    hub = ServerHub()
    for _ in range(6):
        hub.accept(FakeTransport())
    hub.close(6)
    late = FakeTransport()
    assert hub.accept(late) == 7
    hub.close(7)
    after = FakeTransport()
    assert hub.accept(after) == 8
    assert after.text == "8 has joined\n"


def test_close_and_data_for_unknown_session_are_ignored():
    hub = ServerHub()
    _, (a,) = _connect(hub, 1)

    hub.close(42)
    hub.on_data(42, "ghost\n")

    assert a.text == ""
    assert list(hub.sessions) == [1]


def test_hubs_keep_independent_registries():
    first, second = ServerHub(), ServerHub()
    assert first.accept(FakeTransport()) == 1
    assert first.accept(FakeTransport()) == 2
    assert second.accept(FakeTransport()) == 1
    assert len(first.sessions) == 2
    assert len(second.sessions) == 1


def test_stop_closes_every_session_transport():
    hub = ServerHub()
    _, transports = _connect(hub, 2)
    hub.stop()
    assert all(t.closed for t in transports)


@pytest.mark.asyncio
async def test_loopback_join_broadcast_and_leave():
    hub = ServerHub("127.0.0.1", 0)
    await hub.start()
    host, port = hub.address
    try:
        r1, w1 = await asyncio.open_connection(host, port)
        assert await asyncio.wait_for(r1.readline(), 1) == b"1 has joined\n"

        r2, w2 = await asyncio.open_connection(host, port)
        assert await asyncio.wait_for(r1.readline(), 1) == b"2 has joined\n"
        assert await asyncio.wait_for(r2.readline(), 1) == b"2 has joined\n"

        w2.write("안녕\n".encode("utf-8"))
        await w2.drain()
        assert await asyncio.wait_for(r1.readline(), 1) == "안녕\n".encode("utf-8")
        assert await asyncio.wait_for(r2.readline(), 1) == "안녕\n".encode("utf-8")

        w2.close()
        await w2.wait_closed()
        assert await asyncio.wait_for(r1.readline(), 1) == b"2 has left\n"
        w1.close()
        await w1.wait_closed()
    finally:
        hub.stop()


@pytest.mark.asyncio
async def test_start_fails_when_port_is_taken():
    first = ServerHub("127.0.0.1", 0)
    await first.start()
    host, port = first.address
    try:
        second = ServerHub(host, port)
        with pytest.raises(ListenError):
            await second.start()
    finally:
        first.stop()


@pytest.mark.asyncio
async def test_start_times_out_when_listener_never_becomes_ready(monkeypatch):
    loop = asyncio.get_running_loop()

    async def never_ready(*args, **kwargs):
        await asyncio.Event().wait()

    monkeypatch.setattr(loop, "create_server", never_ready)
    hub = ServerHub("127.0.0.1", 0, listen_timeout_ms=20)

    with pytest.raises(ListenError, match="timeout"):
        await hub.start()


@pytest.mark.asyncio
async def test_serve_raises_when_listening_socket_closes():
    hub = ServerHub("127.0.0.1", 0)
    await hub.start()
    task = asyncio.create_task(hub.serve())
    await asyncio.sleep(0.01)

    hub.stop()

    with pytest.raises(ListenError, match="closed"):
        await asyncio.wait_for(task, 1)
