# Make the flat modules at the repository root importable without installing.
import asyncio
import contextlib
import os
import sys

import pytest_asyncio

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from proxy_server import ForwardProxy  # noqa: E402


@pytest_asyncio.fixture
async def start_server():
    """Factory: start an asyncio server for a handler, return its port."""
    servers = []

    async def _start(handler):
        server = await asyncio.start_server(handler, "127.0.0.1", 0)
        servers.append(server)
        return server.sockets[0].getsockname()[1]

    yield _start

    for server in servers:
        server.close()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(server.wait_closed(), timeout=1.0)


@pytest_asyncio.fixture
async def start_proxy():
    """Factory: start a ForwardProxy on an ephemeral loopback port."""
    proxies = []

    async def _start(**kwargs):
        proxy = ForwardProxy(host="127.0.0.1", port=0, **kwargs)
        await proxy.start()
        proxies.append(proxy)
        return proxy

    yield _start

    for proxy in proxies:
        await proxy.stop()
