"""Tests for the pipeline driver."""

import pytest

from logflux.errors import ExtractionError, TimestampError
from logflux.models.rules import FilterRule, TranslateSpec
from logflux.pipeline.driver import DriverStats, ErrorPolicy, base_record, process, run
from logflux.pipeline.patterns import PatternEngine


async def _lines(items):
    for item in items:
        yield item


class _Collector:
    def __init__(self):
        self.points = []

    async def __call__(self, point):
        self.points.append(point)


class TestBaseRecord:

    def test_no_pattern_uses_message(self, dict_engine):
        assert base_record(dict_engine, "", "hello") == {"message": "hello"}

    def test_pattern_captures(self, dict_engine):
        dict_engine.captures["BASE"] = {"app": "nginx"}
        assert base_record(dict_engine, "BASE", "line") == {"app": "nginx"}

    def test_records_are_fresh_per_line(self, dict_engine):
        dict_engine.captures["BASE"] = {"app": "nginx"}
        first = base_record(dict_engine, "BASE", "a")
        first["extra"] = "x"
        assert "extra" not in base_record(dict_engine, "BASE", "b")


class TestProcess:

    def test_line_to_point_with_real_engine(self):
        engine = PatternEngine()
        template = TranslateSpec(
            pattern="%{WORD:app} %{GREEDYDATA:msg}",
            key="app",
            tag_fields="app",
        )
        rules = [
            FilterRule(
                pattern="%{WORD:verb} %{NUMBER:bytes}",
                key="msg",
                good="bytes",
                tags="verb",
                valid={"app": "nginx"},
            ),
        ]
        point = process("nginx GET 512", engine, template, rules, {"env": "prod"})

        assert point.name == "nginx"
        assert point.tags == {"env": "prod", "app": "nginx", "verb": "GET"}
        assert point.fields == {"bytes": 512}

    def test_unmatched_record_uses_base_fields(self, dict_engine):
        dict_engine.captures["BASE"] = {"app": "cron", "count": "3"}
        template = TranslateSpec(pattern="BASE", key="app", value_fields="count")
        rules = [FilterRule(good="bytes", valid={"app": "nginx"})]
        point = process("x", dict_engine, template, rules, {})
        assert point.name == "cron"
        assert point.fields == {"count": 3}


class TestRun:

    @pytest.mark.asyncio
    async def test_sends_every_line_in_order(self, dict_engine):
        template = TranslateSpec(key="m", value_fields="message")
        send = _Collector()

        stats = await run(
            _lines(["a\n", "b\n", "c"]), dict_engine, template, [], {}, send
        )

        assert [p.fields["message"] for p in send.points] == ["a", "b", "c"]
        assert stats.lines == 3
        assert stats.points == 3

    @pytest.mark.asyncio
    async def test_blank_lines_are_ignored(self, dict_engine):
        template = TranslateSpec(key="m", value_fields="message")
        send = _Collector()
        stats = await run(_lines(["a", "", "  ", "b"]), dict_engine, template, [], {}, send)
        assert stats.lines == 2
        assert len(send.points) == 2

    @pytest.mark.asyncio
    async def test_abort_policy_propagates(self, dict_engine):
        template = TranslateSpec(
            key="m", value_fields="message", ts_layout="%Y", ts_field="message",
        )
        send = _Collector()
        with pytest.raises(TimestampError):
            await run(
                _lines(["2024", "bad", "2025"]), dict_engine, template, [], {}, send,
                ErrorPolicy.ABORT,
            )
        assert len(send.points) == 1

    @pytest.mark.asyncio
    async def test_skip_policy_counts_and_continues(self, dict_engine):
        template = TranslateSpec(
            key="m", value_fields="message", ts_layout="%Y", ts_field="message",
        )
        send = _Collector()
        stats = await run(
            _lines(["2024", "bad", "2025"]), dict_engine, template, [], {}, send,
            ErrorPolicy.SKIP,
        )
        assert [p.fields["message"] for p in send.points] == [2024, 2025]
        assert stats.skipped == 1
        assert "bad" in stats.last_error

    @pytest.mark.asyncio
    async def test_extraction_error_under_skip(self, dict_engine):
        dict_engine.captures["BAD"] = ExtractionError("broken")
        template = TranslateSpec(key="m", value_fields="message")
        rules = [FilterRule(pattern="BAD", key="message")]
        send = _Collector()
        stats = await run(
            _lines(["a", "b"]), dict_engine, template, rules, {}, send, ErrorPolicy.SKIP,
        )
        assert stats.skipped == 2
        assert send.points == []

    @pytest.mark.asyncio
    async def test_stats_accumulate_across_runs(self, dict_engine):
        template = TranslateSpec(key="m", value_fields="message")
        stats = DriverStats()
        send = _Collector()
        await run(_lines(["a"]), dict_engine, template, [], {}, send, stats=stats)
        await run(_lines(["b"]), dict_engine, template, [], {}, send, stats=stats)
        assert stats.points == 2
