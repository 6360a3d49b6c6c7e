"""Tests for the file line source."""

import pytest

from logflux.adapters.base import SourceState
from logflux.adapters.file_source import FileSource
from logflux.errors import StartupError


class TestFileSource:

    @pytest.mark.asyncio
    async def test_yields_lines_then_ends(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("first\nsecond\r\nthird")
        source = FileSource(str(path))

        got = [line async for line in source.lines()]
        await source.close()

        assert got == ["first", "second", "third"]
        health = source.health()
        assert health.lines_delivered == 3
        assert health.state is SourceState.EXHAUSTED
        assert health.source_type == "file"

    @pytest.mark.asyncio
    async def test_missing_file_is_startup_error(self, tmp_path):
        source = FileSource(str(tmp_path / "nope.log"))
        with pytest.raises(StartupError):
            await source.open()
        assert source.health().state is SourceState.FAILED
