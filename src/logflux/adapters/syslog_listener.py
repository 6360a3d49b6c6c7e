"""Syslog listener source.

Runs a UDP datagram endpoint and/or a newline-framed TCP server on the
configured address, decodes RFC 3164 messages, applies the facility
pre-filter and buffers the survivors as pipeline lines of the form
"Mmm d hh:mm:ss host content".

Datagram callbacks cannot wait, so when the buffer holds max_buffer
lines new messages are dropped and counted rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from logflux.adapters.base import BaseSource, SourceState
from logflux.errors import StartupError
from logflux.models.syslog import FacilityFilter, SyslogMessage

logger = logging.getLogger("logflux.adapters.syslog")

MAX_SLOGS = 65535

# RFC 3164: <PRI>Mmm dd hh:mm:ss hostname content
_RFC3164_RE = re.compile(
    r"^(?:<(?P<pri>\d{1,3})>)?"
    r"(?:(?P<ts>[A-Z][a-z]{2}\s+\d{1,2}\s\d{2}:\d{2}:\d{2})\s+"
    r"(?P<host>\S+)\s)?"
    r"(?P<content>.*)$",
    re.DOTALL,
)

# facility user, severity notice
_DEFAULT_PRI = 13


def sys_time(s: str, year: Optional[int] = None) -> datetime:
    """Parse a syslog timestamp, which carries no year.

    The current year is assumed unless one is given.
    """
    year = year if year is not None else datetime.now().year
    return datetime.strptime(f"{' '.join(s.split())} {year}", "%b %d %H:%M:%S %Y")


def parse_rfc3164(data: str, now: Optional[datetime] = None) -> SyslogMessage:
    """Decode one RFC 3164 message.

    Missing parts take RFC defaults: priority 13 and the time of
    receipt. Priorities above 191 are clamped to the last facility.
    """
    now = now or datetime.now()
    m = _RFC3164_RE.match(data.strip())
    pri = _DEFAULT_PRI
    ts = now
    hostname = ""
    content = data.strip()
    if m:
        if m.group("pri"):
            pri = min(int(m.group("pri")), 191)
        if m.group("ts"):
            try:
                ts = sys_time(m.group("ts"), now.year)
                hostname = m.group("host")
            except ValueError:
                ts = now
            else:
                content = m.group("content")
        elif m.group("pri"):
            content = m.group("content")
    return SyslogMessage(
        facility=pri // 8,
        severity=pri % 8,
        hostname=hostname,
        content=content.strip(),
        timestamp=ts,
    )


class _UDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, source: SyslogSource):
        self.source = source

    def datagram_received(self, data: bytes, addr) -> None:
        self.source.ingest(data.decode("utf-8", errors="replace"))

    def error_received(self, exc: Exception) -> None:
        self.source._record_error(f"UDP: {exc}")


class SyslogSource(BaseSource):
    """Live syslog feed over UDP and/or TCP.

    Args:
        ip: Address to bind.
        tcp_port: TCP port, 0 disables TCP.
        udp_port: UDP port, 0 disables UDP.
        filters: Facility pre-filters; an empty list admits everything.
        max_buffer: Lines held before new messages are dropped.
    """

    def __init__(
        self,
        ip: str = "0.0.0.0",
        tcp_port: int = 514,
        udp_port: int = 514,
        filters: Sequence[FacilityFilter] = (),
        max_buffer: int = MAX_SLOGS,
    ):
        super().__init__()
        self.ip = ip
        self.tcp_port = tcp_port
        self.udp_port = udp_port
        self.filters = list(filters)
        self.max_buffer = max_buffer
        self._buffer: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._clients: set[asyncio.StreamWriter] = set()

    @property
    def source_type(self) -> str:
        return "syslog"

    @property
    def endpoint(self) -> str:
        return f"{self.ip} tcp/{self.tcp_port} udp/{self.udp_port}"

    def admits(self, msg: SyslogMessage) -> bool:
        if not self.filters:
            return True
        return any(f.admits(msg) for f in self.filters)

    def ingest(self, data: str) -> None:
        """Decode, pre-filter and buffer a raw message."""
        msg = parse_rfc3164(data)
        if not self.admits(msg):
            return
        logger.debug("SLOG: %s", msg)
        if self._buffer.qsize() >= self.max_buffer:
            self._dropped += 1
            if self._dropped == 1 or self._dropped % 1000 == 0:
                logger.warning("Syslog buffer full, %d messages dropped", self._dropped)
            return
        self._buffer.put_nowait(msg.to_line())

    async def open(self) -> None:
        self._state = SourceState.OPENING
        loop = asyncio.get_running_loop()
        try:
            if self.udp_port > 0:
                self._transport, _ = await loop.create_datagram_endpoint(
                    lambda: _UDPProtocol(self),
                    local_addr=(self.ip, self.udp_port),
                )
            if self.tcp_port > 0:
                self._server = await asyncio.start_server(
                    self._handle_tcp, self.ip, self.tcp_port
                )
        except OSError as e:
            self._state = SourceState.FAILED
            await self._stop_listeners()
            raise StartupError(f"cannot listen on {self.endpoint}: {e}") from e
        self._state = SourceState.OPEN
        logger.info("Listening for syslog on %s", self.endpoint)

    async def _handle_tcp(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        logger.debug("TCP connection from %s", peer)
        self._clients.add(writer)
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if line:
                    self.ingest(line)
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            self._record_error(f"TCP {peer}: {e}")
        finally:
            self._clients.discard(writer)
            writer.close()

    async def lines(self) -> AsyncIterator[str]:
        """Yield buffered lines until close(). Call open() first."""
        while True:
            line = await self._buffer.get()
            if line is None:
                break
            self._record_line()
            yield line

    async def _stop_listeners(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        if self._server is not None:
            self._server.close()
            for client in list(self._clients):
                client.close()
            await self._server.wait_closed()
            self._server = None

    async def close(self) -> None:
        await self._stop_listeners()
        if self._state is not SourceState.CLOSED:
            self._buffer.put_nowait(None)
        self._state = SourceState.CLOSED
        logger.info("Syslog listener on %s stopped", self.endpoint)
