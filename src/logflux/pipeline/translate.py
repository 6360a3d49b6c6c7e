"""Record to MetricPoint translation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping

from pydantic import ValidationError

from logflux.errors import PointError, TimestampError
from logflux.models.points import MetricPoint
from logflux.models.rules import TranslateSpec
from logflux.pipeline.coerce import coerce


def point_name(record: Mapping[str, str], template: TranslateSpec) -> str:
    """Value of record[template.key] when present, else the key itself."""
    return record.get(template.key, template.key)


def resolve_timestamp(record: Mapping[str, str], template: TranslateSpec) -> datetime:
    """Parse the configured timestamp field, or fall back to now (UTC).

    Parsed values without a zone are taken as UTC.
    """
    if not (template.ts_layout and template.ts_field):
        return datetime.now(timezone.utc)
    raw = record.get(template.ts_field, "")
    try:
        ts = datetime.strptime(raw, template.ts_layout)
    except ValueError as e:
        raise TimestampError(
            f"cannot parse {template.ts_field}={raw!r} as {template.ts_layout!r}"
        ) from e
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def translate(
    record: Mapping[str, str],
    static_tags: Mapping[str, str],
    template: TranslateSpec,
) -> MetricPoint:
    """Build a MetricPoint from a filtered record.

    Missing tag fields become empty tags and missing value fields become
    empty strings. Raises TimestampError when the timestamp field does
    not parse and PointError when no valid point can be built.
    """
    tags = dict(static_tags)
    for name in template.tag_names():
        tags[name] = record.get(name, "")

    fields = {name: coerce(record.get(name, "")) for name in template.value_names()}
    ts = resolve_timestamp(record, template)

    try:
        return MetricPoint(
            name=point_name(record, template),
            tags=tags,
            fields=fields,
            timestamp=ts,
        )
    except ValidationError as e:
        raise PointError(str(e)) from e
