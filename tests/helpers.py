"""Loopback servers and small async helpers shared by the tests."""
import asyncio
import socket
import struct


class Origin:
    """Test origin server: reads ``expect`` bytes, sends ``reply``, closes.

    With ``expect=None`` it reads until EOF instead.
    """

    def __init__(self, expect=0, reply=b""):
        self.expect = expect
        self.reply = reply
        self.received = bytearray()
        self.connections = 0
        self.done = asyncio.Event()

    async def __call__(self, reader, writer):
        self.connections += 1
        try:
            if self.expect is None:
                while True:
                    data = await reader.read(4096)
                    if not data:
                        break
                    self.received += data
            elif self.expect:
                self.received += await reader.readexactly(self.expect)
            if self.reply:
                writer.write(self.reply)
                await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()
            self.done.set()


class FakeSocks5:
    """Minimal SOCKS5 server that forwards every CONNECT to ``forward_port``."""

    def __init__(self, forward_port=None, accept=True):
        self.forward_port = forward_port
        self.accept = accept
        self.requests = []
        self.connections = 0

    async def __call__(self, reader, writer):
        self.connections += 1
        up_writer = None
        try:
            await reader.readexactly(3)
            if not self.accept:
                writer.write(b"\x05\xff")
                await writer.drain()
                return
            writer.write(b"\x05\x00")
            await writer.drain()

            head = await reader.readexactly(4)
            atyp = head[3]
            if atyp == 0x03:
                length = (await reader.readexactly(1))[0]
                host = (await reader.readexactly(length)).decode()
            elif atyp == 0x01:
                host = socket.inet_ntoa(await reader.readexactly(4))
            else:
                host = socket.inet_ntop(socket.AF_INET6, await reader.readexactly(16))
            port = struct.unpack(">H", await reader.readexactly(2))[0]
            self.requests.append((host, port))

            up_reader, up_writer = await asyncio.open_connection("127.0.0.1", self.forward_port)
            writer.write(b"\x05\x00\x00\x01\x7f\x00\x00\x01\x00\x00")
            await writer.drain()

            async def pipe(src, dst):
                while True:
                    data = await src.read(4096)
                    if not data:
                        break
                    dst.write(data)
                    await dst.drain()

            tasks = [
                asyncio.create_task(pipe(reader, up_writer)),
                asyncio.create_task(pipe(up_reader, writer)),
            ]
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            if up_writer is not None:
                up_writer.close()
            writer.close()


async def read_all(reader, timeout=5.0):
    """Read until EOF.  A reset from an aborted peer counts as EOF."""
    chunks = []
    async with asyncio.timeout(timeout):
        while True:
            try:
                data = await reader.read(4096)
            except ConnectionResetError:
                break
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks)


async def wait_until(predicate, timeout=2.0):
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


async def wait_for_log(caplog, text, timeout=2.0):
    async with asyncio.timeout(timeout):
        while text not in caplog.text:
            await asyncio.sleep(0.01)


def unused_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
