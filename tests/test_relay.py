"""Tests for the duplex relay and its close-reason race."""
import asyncio

import pytest
import pytest_asyncio

from proxy_server import ManagedConnection, RelayOutcome, relay


@pytest_asyncio.fixture
async def tcp_pair(start_server):
    """Factory: a loopback connection as (proxy-side ManagedConnection, peer reader, peer writer)."""
    accepted = asyncio.Queue()

    async def on_accept(reader, writer):
        await accepted.put((reader, writer))

    port = await start_server(on_accept)
    opened = []

    async def _pair():
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        local_reader, local_writer = await accepted.get()
        conn = ManagedConnection(local_reader, local_writer)
        opened.append((conn, writer))
        return conn, reader, writer

    yield _pair

    for conn, writer in opened:
        writer.close()
        await conn.close()


@pytest.mark.asyncio
async def test_upstream_closing_first_is_server_closed(tcp_pair):
    client, client_peer_reader, client_peer_writer = await tcp_pair()
    upstream, upstream_peer_reader, upstream_peer_writer = await tcp_pair()
    request = b"x" * 10000
    response = b"y" * 7000

    task = asyncio.create_task(relay(client, upstream))

    client_peer_writer.write(request)
    await client_peer_writer.drain()
    assert await upstream_peer_reader.readexactly(len(request)) == request

    upstream_peer_writer.write(response)
    await upstream_peer_writer.drain()
    upstream_peer_writer.close()

    assert await asyncio.wait_for(task, timeout=5) is RelayOutcome.SERVER_CLOSED
    assert await client_peer_reader.readexactly(len(response)) == response


@pytest.mark.asyncio
async def test_client_closing_first_is_client_closed(tcp_pair):
    client, _, client_peer_writer = await tcp_pair()
    upstream, upstream_peer_reader, _ = await tcp_pair()

    task = asyncio.create_task(relay(client, upstream))

    client_peer_writer.write(b"last words")
    await client_peer_writer.drain()
    client_peer_writer.close()

    assert await asyncio.wait_for(task, timeout=5) is RelayOutcome.CLIENT_CLOSED
    assert await upstream_peer_reader.readexactly(10) == b"last words"


@pytest.mark.asyncio
async def test_small_buffer_still_relays_everything(tcp_pair):
    client, _, client_peer_writer = await tcp_pair()
    upstream, upstream_peer_reader, upstream_peer_writer = await tcp_pair()
    payload = bytes(range(256)) * 40

    task = asyncio.create_task(relay(client, upstream, buffer_size=7))
    client_peer_writer.write(payload)
    await client_peer_writer.drain()
    assert await upstream_peer_reader.readexactly(len(payload)) == payload

    upstream_peer_writer.close()
    assert await asyncio.wait_for(task, timeout=5) is RelayOutcome.SERVER_CLOSED


@pytest.mark.asyncio
async def test_cancelling_relay_propagates(tcp_pair):
    client, _, _ = await tcp_pair()
    upstream, _, _ = await tcp_pair()

    task = asyncio.create_task(relay(client, upstream))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
