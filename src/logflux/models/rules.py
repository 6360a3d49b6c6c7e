"""Extraction rule models.

A TranslateSpec is the base template describing which record fields
become the point name, tags, values and timestamp. FilterRules refine
it per record: the first rule whose preconditions hold may extract
extra fields with a grok pattern and appends its own value and tag
field names to a copy of the template.

Field lists are space-delimited strings, matching the configuration
file format.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TranslateSpec(BaseModel):
    """Base template controlling how a record becomes a MetricPoint."""
    pattern: str = Field(
        default="",
        description="Grok expression applied to each raw line to build the record"
    )
    key: str = Field(
        default="",
        description="Record field holding the point name; used literally when absent"
    )
    ts_layout: str = Field(
        default="",
        description="strptime format used to parse ts_field"
    )
    ts_field: str = Field(
        default="",
        description="Record field holding the event timestamp"
    )
    tag_fields: str = Field(
        default="",
        description="Space delimited list of record fields to use as tags"
    )
    value_fields: str = Field(
        default="",
        description="Space delimited list of record fields to use as values"
    )

    class Config:
        frozen = True

    def tag_names(self) -> list[str]:
        return self.tag_fields.split()

    def value_names(self) -> list[str]:
        return self.value_fields.split()

    def extended(self, values: str, tags: str) -> TranslateSpec:
        """Return a copy with extra value and tag field names appended."""
        return self.model_copy(update={
            "value_fields": f"{self.value_fields} {values}",
            "tag_fields": f"{self.tag_fields} {tags}",
        })


class FilterRule(BaseModel):
    """One entry of the ordered filter chain."""
    pattern: str = Field(
        default="",
        description="Optional grok expression applied to the value at key"
    )
    key: str = Field(
        default="",
        description="Record field the pattern is applied against"
    )
    good: str = Field(
        default="",
        description="Space delimited list of fields to treat as numeric values"
    )
    tags: str = Field(
        default="",
        description="Space delimited list of fields to treat as tags"
    )
    valid: Optional[dict[str, str]] = Field(
        default=None,
        description="Field -> expected value preconditions, all must hold"
    )

    class Config:
        frozen = True

    def accepts(self, record: dict[str, str]) -> bool:
        """True when every precondition holds. Missing fields compare as ""."""
        if not self.valid:
            return True
        return all(record.get(k, "") == v for k, v in self.valid.items())
