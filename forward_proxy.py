"""
forward_proxy.py — command-line entry point.

Settings come from the command line first, then the ``[proxy]`` section of
an INI file, then built-in defaults::

    [proxy]
    bind = 0.0.0.0:1080
    target = proxy
    socks5 = 127.0.0.1:9050
    map_file = map.txt
    hosts_file = hosts.json

The short ``-b=``, ``-t=`` and ``-pos=`` spellings work as well.
"""

from __future__ import annotations

import argparse
import asyncio
import configparser
import logging
import signal
import sys
import traceback
from dataclasses import dataclass
from typing import Optional, Sequence

import uvloop

from address_table import AddressTable, load_address_table
from proxy_server import (
    SNIFF_TARGET,
    ForwardProxy,
    ProxyConfig,
    ProxyError,
    Socks5Client,
    log_handler,
    logger,
)


@dataclass(frozen=True)
class Settings:
    bind_host: str
    bind_port: int
    target: str
    socks5: Optional[str]
    map_file: str
    hosts_file: str
    proxy_name: str
    connect_timeout: Optional[float]
    log_level: str

    def proxy_config(self) -> ProxyConfig:
        return ProxyConfig(
            connect_timeout=self.connect_timeout,
            proxy_name=self.proxy_name,
        )


def split_bind(bind: str) -> tuple[str, int]:
    """``host:port`` -> ``(host, port)``.  An empty host means all interfaces."""
    host, sep, port = bind.rpartition(":")
    if not sep or not port.isdigit() or not 0 <= int(port) < 65536:
        raise ValueError(f"bind address must be host:port, got {bind!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


def setup_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        logger.warning("Unknown log level %s, using INFO", level_name)
        level = logging.INFO
    logger.setLevel(level)
    table_logger = logging.getLogger("address_table")
    table_logger.setLevel(level)
    if log_handler not in table_logger.handlers:
        table_logger.addHandler(log_handler)
    table_logger.propagate = False


class Init:
    def __init__(self, argv: Optional[Sequence[str]] = None) -> None:
        self.loop: asyncio.AbstractEventLoop
        self.proxy_instance: Optional[ForwardProxy] = None

        self.in_progress: bool = False
        self.args: argparse.Namespace = parser.parse_args(argv)
        self.config: configparser.ConfigParser = configparser.ConfigParser()
        self.config.read(self.args.config)

    def config_ini(self) -> Optional[Settings]:
        """Merge flags over the INI file.  ``None`` means "nothing to serve"."""
        bind: str = (
            self.args.bind
            if self.args.bind is not None
            else self.config.get("proxy", "bind", fallback="0.0.0.0:1080")
        )
        target: str = (
            self.args.target
            if self.args.target is not None
            else self.config.get("proxy", "target", fallback=SNIFF_TARGET)
        )
        socks5: Optional[str] = (
            self.args.socks5
            if self.args.socks5 is not None
            else self.config.get("proxy", "socks5", fallback=None)
        )
        map_file: str = (
            self.args.map_file
            if self.args.map_file is not None
            else self.config.get("proxy", "map_file", fallback="map.txt")
        )
        hosts_file: str = (
            self.args.hosts_file
            if self.args.hosts_file is not None
            else self.config.get("proxy", "hosts_file", fallback="hosts.json")
        )
        proxy_name: str = (
            self.args.name
            if self.args.name is not None
            else self.config.get("proxy", "proxy_name", fallback=ProxyConfig.proxy_name)
        )
        connect_timeout: Optional[float] = (
            self.args.connect_timeout
            if self.args.connect_timeout is not None
            else self.config.getfloat("proxy", "connect_timeout", fallback=None)
        )
        log_level: str = (
            self.args.log_level
            if self.args.log_level is not None
            else self.config.get("proxy", "log_level", fallback="INFO")
        )

        bind, target = bind.strip(), target.strip()
        if not bind or not target:
            return None
        try:
            bind_host, bind_port = split_bind(bind)
        except ValueError as e:
            parser.error(str(e))
        socks5 = socks5.strip() if socks5 else None
        if socks5:
            try:
                Socks5Client.split_proxy(socks5)
            except ProxyError as e:
                parser.error(f"socks5 address must be [user@]host[:port]: {e.detail}")

        return Settings(
            bind_host=bind_host,
            bind_port=bind_port,
            target=target,
            socks5=socks5 or None,
            map_file=map_file,
            hosts_file=hosts_file,
            proxy_name=proxy_name,
            connect_timeout=connect_timeout,
            log_level=log_level,
        )

    def build_proxy(self, settings: Settings, table: AddressTable) -> ForwardProxy:
        return ForwardProxy(
            table,
            upstream=settings.socks5,
            target=settings.target,
            host=settings.bind_host,
            port=settings.bind_port,
            config=settings.proxy_config(),
        )

    def prepserver(self) -> None:
        settings = self.config_ini()
        if settings is None:
            logger.warning("Empty bind address or target, nothing to serve")
            return
        setup_logging(settings.log_level)

        table = load_address_table(settings.map_file, settings.hosts_file)
        logger.info("%d address overrides loaded", len(table))
        logger.info(
            "forward-proxy -b=%s:%d -t=%s -pos=%s",
            settings.bind_host,
            settings.bind_port,
            settings.target,
            settings.socks5 or "",
        )

        self.loop = uvloop.new_event_loop()
        asyncio.set_event_loop(self.loop)

        def task_exception_handler(task: asyncio.Task[None]) -> None:
            try:
                task.result()
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.error("Exception in task: %s", traceback.format_exc())
                self.terminated()

        try:
            self.proxy_instance = self.build_proxy(settings, table)
            self.loop.add_signal_handler(signal.SIGTERM, self.terminated)
            self.loop.add_signal_handler(signal.SIGINT, self.terminated)
            run_server_task: asyncio.Task[None] = self.loop.create_task(self.run_server())
            run_server_task.set_name("Server")
            run_server_task.add_done_callback(task_exception_handler)
            self.loop.run_forever()
        finally:
            self.loop.close()

    async def run_server(self) -> None:
        assert self.proxy_instance is not None
        await self.proxy_instance.start()
        await self.proxy_instance.serve_forever()

    async def graceful_shutdown(self) -> None:
        try:
            if self.proxy_instance:
                await self.proxy_instance.stop()
        except Exception:
            logger.error(traceback.format_exc())

        tasks_to_cancel: list[asyncio.Task[None]] = [
            t for t in asyncio.all_tasks(self.loop) if t.get_name() != "Shutdown"
        ]
        for task in tasks_to_cancel:
            task.cancel()
        await asyncio.gather(*tasks_to_cancel, return_exceptions=True)
        logger.debug("Tasks cancelled.")
        self.loop.stop()

    def terminated(self) -> None:
        if self.in_progress:
            return
        self.in_progress = True
        logger.info("Shutting down")
        shutdown_task = self.loop.create_task(self.graceful_shutdown())
        shutdown_task.set_name("Shutdown")


parser = argparse.ArgumentParser(description="Forwarding HTTP proxy with address overrides")
parser.add_argument('-c', '--config', type=str, metavar='PATH', default='./config.ini', help="Path to config")
parser.add_argument('-b', '--bind', dest='bind', type=str, metavar='HOST:PORT', default=None, help='Address to listen on (default: 0.0.0.0:1080)')
parser.add_argument('-t', '--target', dest='target', type=str, metavar='ADDR', default=None, help='Fixed target host:port, or "proxy" to sniff each request (default: proxy)')
parser.add_argument('-pos', '--socks5', dest='socks5', type=str, metavar='HOST:PORT', default=None, help='Upstream SOCKS5 proxy (default: dial directly)')
parser.add_argument('--map', dest='map_file', type=str, metavar='PATH', default=None, help='key=value override file (default: map.txt)')
parser.add_argument('--hosts', dest='hosts_file', type=str, metavar='PATH', default=None, help='JSON [[new, old], ...] override file (default: hosts.json)')
parser.add_argument('--name', dest='name', type=str, default=None, help='Host value in the CONNECT reply')
parser.add_argument('--connect-timeout', dest='connect_timeout', type=float, metavar='SECONDS', default=None, help='Outbound connect timeout (default: none)')
parser.add_argument('--log-level', dest='log_level', type=str, default=None, help='TRACE, DEBUG, INFO, WARNING or ERROR (default: INFO)')


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        Init(argv).prepserver()
    except Exception:
        logger.critical('Failed to initialize %s', str(traceback.format_exc()))
        sys.exit(1)


if __name__ == "__main__":
    main()
