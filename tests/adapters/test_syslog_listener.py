"""Tests for syslog decoding, pre-filtering and buffering."""

import asyncio
from datetime import datetime

import pytest

from logflux.adapters.base import SourceState
from logflux.adapters.syslog_listener import SyslogSource, parse_rfc3164, sys_time
from logflux.models.syslog import FacilityFilter, SyslogMessage

NOW = datetime(2024, 6, 15, 8, 0, 0)


def _msg(facility=16, severity=6, hostname="web1"):
    return SyslogMessage(
        facility=facility, severity=severity, hostname=hostname,
        content="x", timestamp=NOW,
    )


class TestSysTime:

    def test_current_year_assumed(self):
        ts = sys_time("Oct 11 22:14:15", 2023)
        assert ts == datetime(2023, 10, 11, 22, 14, 15)

    def test_padded_day(self):
        assert sys_time("Feb  3 01:02:03", 2024) == datetime(2024, 2, 3, 1, 2, 3)


class TestParseRFC3164:

    def test_full_message(self):
        msg = parse_rfc3164(
            "<34>Oct 11 22:14:15 mymachine su: 'su root' failed", now=NOW
        )
        assert msg.facility == 4
        assert msg.severity == 2
        assert msg.hostname == "mymachine"
        assert msg.content == "su: 'su root' failed"
        assert msg.timestamp == datetime(2024, 10, 11, 22, 14, 15)

    def test_missing_priority_uses_default(self):
        msg = parse_rfc3164("Oct 11 22:14:15 host app: hi", now=NOW)
        assert (msg.facility, msg.severity) == (1, 5)
        assert msg.hostname == "host"

    def test_missing_header_keeps_content(self):
        msg = parse_rfc3164("<13>just some text", now=NOW)
        assert msg.hostname == ""
        assert msg.content == "just some text"
        assert msg.timestamp == NOW

    def test_priority_clamped(self):
        msg = parse_rfc3164("<999>Oct 11 22:14:15 h c", now=NOW)
        assert msg.facility == 23
        assert msg.severity == 7

    def test_to_line(self):
        msg = parse_rfc3164("<134>Mar  5 09:08:07 web1 nginx: GET /", now=NOW)
        assert msg.to_line() == "Mar 5 09:08:07 web1 nginx: GET /"


class TestFacilityFilter:

    def test_facility_must_match(self):
        assert FacilityFilter(facility=16).admits(_msg(facility=16))
        assert not FacilityFilter(facility=16).admits(_msg(facility=17))

    def test_severity_is_a_maximum(self):
        f = FacilityFilter(facility=16, severity=4)
        assert f.admits(_msg(severity=3))
        assert f.admits(_msg(severity=4))
        assert not f.admits(_msg(severity=6))

    def test_zero_severity_admits_all(self):
        assert FacilityFilter(facility=16, severity=0).admits(_msg(severity=7))

    def test_hostname(self):
        f = FacilityFilter(facility=16, hostname="web1")
        assert f.admits(_msg(hostname="web1"))
        assert not f.admits(_msg(hostname="db1"))


class TestSyslogSource:

    @pytest.mark.asyncio
    async def test_ingest_and_iterate(self):
        source = SyslogSource(tcp_port=0, udp_port=0)
        await source.open()
        source.ingest("<134>Mar  5 09:08:07 web1 nginx: GET /")
        source.ingest("<134>Mar  5 09:08:08 web1 nginx: GET /a")
        await source.close()

        got = [line async for line in source.lines()]
        assert got == [
            "Mar 5 09:08:07 web1 nginx: GET /",
            "Mar 5 09:08:08 web1 nginx: GET /a",
        ]
        assert source.health().lines_delivered == 2

    @pytest.mark.asyncio
    async def test_prefilter_applied(self):
        source = SyslogSource(
            tcp_port=0, udp_port=0, filters=[FacilityFilter(facility=16, severity=6)],
        )
        await source.open()
        source.ingest("<134>Mar  5 09:08:07 web1 kept")      # local0.info
        source.ingest("<135>Mar  5 09:08:07 web1 too low")   # local0.debug
        source.ingest("<142>Mar  5 09:08:07 web1 other")     # local1.info
        await source.close()

        got = [line async for line in source.lines()]
        assert got == ["Mar 5 09:08:07 web1 kept"]

    @pytest.mark.asyncio
    async def test_full_buffer_drops(self):
        source = SyslogSource(tcp_port=0, udp_port=0, max_buffer=2)
        await source.open()
        for i in range(5):
            source.ingest(f"<134>Mar  5 09:08:07 web1 m{i}")
        assert source.health().dropped == 3
        await source.close()
        got = [line async for line in source.lines()]
        assert len(got) == 2

    @pytest.mark.asyncio
    async def test_tcp_end_to_end(self, unused_tcp_port):
        source = SyslogSource(ip="127.0.0.1", tcp_port=unused_tcp_port, udp_port=0)
        await source.open()
        assert source.health().state is SourceState.OPEN

        _, writer = await asyncio.open_connection("127.0.0.1", unused_tcp_port)
        writer.write(b"<134>Mar  5 09:08:07 web1 nginx: GET /\n")
        await writer.drain()

        lines = source.lines()
        line = await asyncio.wait_for(lines.__anext__(), 2)
        assert line == "Mar 5 09:08:07 web1 nginx: GET /"

        writer.close()
        await source.close()
        assert source.health().state is SourceState.CLOSED
