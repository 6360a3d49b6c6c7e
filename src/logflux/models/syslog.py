"""Syslog message and pre-filter models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# RFC 3164 timestamp rendering used for lines handed to the pipeline
LINE_TS_FORMAT = "%b {day} %H:%M:%S"


class SyslogMessage(BaseModel):
    """A decoded syslog message as delivered by the listener."""
    facility: int = Field(ge=0, le=23)
    severity: int = Field(ge=0, le=7)
    hostname: str = ""
    content: str = ""
    timestamp: datetime

    class Config:
        frozen = True

    def to_line(self) -> str:
        """Render as 'Mmm d hh:mm:ss host content', the pipeline's input form."""
        ts = self.timestamp.strftime(LINE_TS_FORMAT.format(day=self.timestamp.day))
        return f"{ts} {self.hostname} {self.content}"


class FacilityFilter(BaseModel):
    """Coarse pre-filter applied by the listener before the filter chain.

    facility must match exactly. severity, when greater than zero, is
    the highest (least urgent) severity let through. hostname, when
    set, must match exactly.
    """
    facility: int = Field(ge=0, le=23)
    severity: int = Field(default=0, ge=0, le=7)
    hostname: str = ""

    class Config:
        frozen = True

    def admits(self, msg: SyslogMessage) -> bool:
        if self.facility != msg.facility:
            return False
        if self.severity > 0 and msg.severity > self.severity:
            return False
        if self.hostname and self.hostname != msg.hostname:
            return False
        return True
