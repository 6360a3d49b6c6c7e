"""Filter chain evaluation.

Rules are tried in order and the first eligible one wins. A rule is
eligible when all of its `valid` preconditions hold for the record;
an ineligible rule is simply passed over. An eligible rule with a
pattern extracts named captures from record[rule.key] into the record,
replacing any existing value of the same name, then contributes its
value and tag field names to a copy of the template.

When no rule is eligible the template comes back untouched, so an
unmatched record still produces a point from the base fields.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from logflux.models.rules import FilterRule, TranslateSpec

logger = logging.getLogger("logflux.pipeline.filters")


class Extractor(Protocol):
    def parse(self, pattern: str, text: str) -> dict[str, str]:
        ...


def unquoted(s: str) -> str:
    """Drop the enclosing quotes of a double-quoted capture."""
    if s.startswith('"'):
        return s[1:-1]
    return s


def refine(
    record: dict[str, str],
    rule: FilterRule,
    template: TranslateSpec,
    engine: Extractor,
) -> TranslateSpec | None:
    """Apply a single rule to record.

    Returns the augmented template, or None when the rule's
    preconditions do not hold. Raises ExtractionError when the
    pattern engine fails.
    """
    if not rule.accepts(record):
        return None
    if rule.pattern:
        matched = engine.parse(rule.pattern, record.get(rule.key, ""))
        # overwrites existing fields of the same name
        for k, v in matched.items():
            record[k] = unquoted(v)
    return template.extended(rule.good, rule.tags)


def evaluate(
    record: dict[str, str],
    rules: Sequence[FilterRule],
    template: TranslateSpec,
    engine: Extractor,
) -> TranslateSpec:
    """Run the filter chain over record and return the effective template.

    record is the caller's working copy and is updated in place with
    any extracted captures.
    """
    for index, rule in enumerate(rules):
        effective = refine(record, rule, template, engine)
        if effective is not None:
            logger.debug("Filter %d matched", index)
            return effective
    return template
