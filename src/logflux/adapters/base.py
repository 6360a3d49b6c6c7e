"""Abstract line source interface.

Every input implements this contract: open the source, yield raw text
lines as an async iterator, report health, and release resources. The
iterator ends when the source is exhausted or closed. Sources do NOT
parse, filter by rule, or transform lines; that is the pipeline's job.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator

logger = logging.getLogger("logflux.adapters")


class SourceState(str, Enum):
    """Source lifecycle states."""
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class SourceHealth:
    """Health snapshot for a line source."""
    state: SourceState = SourceState.CLOSED
    source_type: str = ""
    endpoint: str = ""
    last_line_at: datetime | None = None
    lines_delivered: int = 0
    dropped: int = 0
    errors: int = 0
    checked_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class BaseSource(ABC):
    """Abstract base for all logflux line sources.

    The contract:
    - open(): acquire the underlying file/socket, raising on failure
    - lines(): yield raw lines until exhausted or closed
    - health(): report current state and counters
    - close(): release resources; an active lines() iterator ends
    """

    def __init__(self) -> None:
        self._state = SourceState.CLOSED
        self._lines_delivered = 0
        self._dropped = 0
        self._errors = 0
        self._last_line_at: datetime | None = None

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier (e.g. 'file', 'syslog')."""
        ...

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Human readable location of the source."""
        ...

    @abstractmethod
    async def open(self) -> None:
        """Acquire the source. Raises StartupError on failure."""
        ...

    @abstractmethod
    def lines(self) -> AsyncIterator[str]:
        """Yield raw lines, without trailing newlines, in arrival order."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release all resources."""
        ...

    def health(self) -> SourceHealth:
        return SourceHealth(
            state=self._state,
            source_type=self.source_type,
            endpoint=self.endpoint,
            last_line_at=self._last_line_at,
            lines_delivered=self._lines_delivered,
            dropped=self._dropped,
            errors=self._errors,
        )

    def _record_line(self) -> None:
        """Track line delivery. Call from subclass on each yielded line."""
        self._lines_delivered += 1
        self._last_line_at = datetime.now(timezone.utc)

    def _record_error(self, msg: str) -> None:
        self._errors += 1
        logger.warning(
            "Source %s error [%s]: %s", self.source_type, self.endpoint, msg,
        )
