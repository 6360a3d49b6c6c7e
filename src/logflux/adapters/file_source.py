"""File line source.

Reads a log file line by line. Reads run in a worker thread so a
slow disk does not stall the sender's flush loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import IO, AsyncIterator, Optional

from logflux.adapters.base import BaseSource, SourceState
from logflux.errors import StartupError

logger = logging.getLogger("logflux.adapters.file")


class FileSource(BaseSource):
    """Yields each line of a text file, then ends."""

    def __init__(self, path: str, encoding: str = "utf-8"):
        super().__init__()
        self.path = path
        self.encoding = encoding
        self._fh: Optional[IO[str]] = None

    @property
    def source_type(self) -> str:
        return "file"

    @property
    def endpoint(self) -> str:
        return self.path

    async def open(self) -> None:
        self._state = SourceState.OPENING
        try:
            self._fh = open(self.path, encoding=self.encoding, errors="replace")
        except OSError as e:
            self._state = SourceState.FAILED
            raise StartupError(f"cannot open {self.path}: {e}") from e
        self._state = SourceState.OPEN
        logger.info("Reading %s", self.path)

    async def lines(self) -> AsyncIterator[str]:
        if self._fh is None:
            await self.open()
        while self._fh is not None:
            line = await asyncio.to_thread(self._fh.readline)
            if not line:
                self._state = SourceState.EXHAUSTED
                break
            self._record_line()
            yield line.rstrip("\r\n")

    async def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self._state is not SourceState.EXHAUSTED:
            self._state = SourceState.CLOSED
