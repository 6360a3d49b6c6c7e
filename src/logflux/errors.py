"""Exception hierarchy shared by every logflux component.

Per-record errors derive from RecordError so the pipeline driver can
apply its skip/abort policy to them as a group. Destination errors are
transient and never leave the batching sender.
"""


class LogfluxError(Exception):
    """Base class for all logflux errors."""


class StartupError(LogfluxError):
    """Configuration, connection or construction failure at startup."""


class RecordError(LogfluxError):
    """A single record could not be turned into a point."""


class ExtractionError(RecordError):
    """The pattern engine rejected a pattern or its input."""


class TimestampError(RecordError):
    """The configured timestamp field did not parse with the layout."""


class PointError(RecordError):
    """A metric point could not be constructed from the record."""


class DestinationError(LogfluxError):
    """A batch write to the time-series destination failed."""


class SenderClosed(LogfluxError):
    """A point was submitted after the sender was closed."""
