"""Metric point model.

The MetricPoint is the unit the batching sender queues and writes. It
is immutable once built; the translator produces it and nothing
downstream modifies it.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Union

from pydantic import BaseModel, Field, field_validator

FieldValue = Union[int, float, str]


class MetricPoint(BaseModel):
    """A named, tagged, timestamped time-series point."""
    name: str = Field(
        min_length=1,
        description="Measurement name"
    )
    tags: dict[str, str] = Field(
        default_factory=dict,
        description="Indexed tag set"
    )
    fields: dict[str, FieldValue] = Field(
        description="Field set; at least one field is required"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event time, always timezone-aware"
    )

    class Config:
        frozen = True

    @field_validator("fields")
    @classmethod
    def _check_fields(cls, value: dict[str, FieldValue]) -> dict[str, FieldValue]:
        if not value:
            raise ValueError("point without fields is unsupported")
        for key, field in value.items():
            if isinstance(field, float) and not math.isfinite(field):
                raise ValueError(f"field {key!r} is not a finite number: {field}")
        return value

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
