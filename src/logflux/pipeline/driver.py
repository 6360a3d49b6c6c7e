"""Pipeline driver.

Pulls lines from a source, turns each into a record with the base
pattern, runs the filter chain and the translator over it and hands
the point to the sender. Every line gets its own record dict, so
extraction in one record never leaks into the next.

Per-record failures follow the configured ErrorPolicy: ABORT stops
the run by re-raising, SKIP logs, counts and moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterable, Awaitable, Callable, Mapping, Sequence

from logflux.errors import RecordError
from logflux.models.points import MetricPoint
from logflux.models.rules import FilterRule, TranslateSpec
from logflux.pipeline.filters import Extractor, evaluate
from logflux.pipeline.translate import translate

logger = logging.getLogger("logflux.pipeline")

Send = Callable[[MetricPoint], Awaitable[None]]


class ErrorPolicy(str, Enum):
    """What to do when a single record fails."""
    ABORT = "abort"
    SKIP = "skip"


@dataclass
class DriverStats:
    """Counters for one or more pipeline runs."""
    lines: int = 0
    points: int = 0
    skipped: int = 0
    last_error: str = ""
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


def base_record(engine: Extractor, pattern: str, line: str) -> dict[str, str]:
    """Build the raw record for a line.

    With no base pattern the whole line is stored under "message".
    A line the pattern does not match gives an empty record.
    """
    if not pattern:
        return {"message": line}
    return engine.parse(pattern, line)


def process(
    line: str,
    engine: Extractor,
    template: TranslateSpec,
    rules: Sequence[FilterRule],
    static_tags: Mapping[str, str],
) -> MetricPoint:
    """Turn one line into a point. Raises RecordError on failure."""
    record = base_record(engine, template.pattern, line)
    if logger.isEnabledFor(logging.DEBUG):
        for k, v in record.items():
            logger.debug("Key: %s Value: %s", k, v)
    effective = evaluate(record, rules, template, engine)
    return translate(record, static_tags, effective)


async def run(
    lines: AsyncIterable[str],
    engine: Extractor,
    template: TranslateSpec,
    rules: Sequence[FilterRule],
    static_tags: Mapping[str, str],
    send: Send,
    policy: ErrorPolicy = ErrorPolicy.ABORT,
    stats: DriverStats | None = None,
) -> DriverStats:
    """Process every line from lines until the stream ends.

    Raises the first RecordError under ErrorPolicy.ABORT.
    """
    stats = stats if stats is not None else DriverStats()
    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        stats.lines += 1
        try:
            point = process(line, engine, template, rules, static_tags)
        except RecordError as e:
            stats.last_error = str(e)
            if policy is ErrorPolicy.ABORT:
                logger.error("Record %d failed, aborting: %s", stats.lines, e)
                raise
            stats.skipped += 1
            logger.warning("Skipping record %d: %s", stats.lines, e)
            continue
        await send(point)
        stats.points += 1
    logger.info(
        "Stream ended: %d lines, %d points, %d skipped",
        stats.lines, stats.points, stats.skipped,
    )
    return stats
