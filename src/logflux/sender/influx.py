"""InfluxDB destination.

Writes batches through influxdb_client_3 in synchronous mode, so a
failed write raises straight back to the batching sender, which owns
all retrying. The liveness check is a plain HTTP GET on /ping, which
InfluxDB 1.x, 2.x and 3.x all answer.

Both calls block; the sender runs them in a worker thread.
"""

from __future__ import annotations

import logging
from typing import Sequence

import requests
from influxdb_client_3 import (
    SYNCHRONOUS,
    InfluxDBClient3,
    Point,
    WritePrecision,
    write_client_options,
)

from logflux.config import InfluxConfig
from logflux.errors import DestinationError
from logflux.models.points import MetricPoint

logger = logging.getLogger("logflux.sender.influx")


def to_influx_point(point: MetricPoint) -> Point:
    """Convert a MetricPoint into an influxdb_client_3 Point."""
    p = Point(point.name)
    for key, value in point.tags.items():
        p = p.tag(key, value)
    for key, value in point.fields.items():
        p = p.field(key, value)
    return p.time(point.timestamp, WritePrecision.NS)


class InfluxWriter:
    """PointWriter backed by an InfluxDB server."""

    def __init__(self, config: InfluxConfig):
        self.config = config
        self.endpoint = config.url
        self.target = config.target
        self._client = InfluxDBClient3(
            host=config.url,
            database=config.target,
            token=config.auth_token,
            write_client_options=write_client_options(write_options=SYNCHRONOUS),
            timeout=config.timeout * 1000,
        )
        logger.debug("InfluxDB writer for %s -> %s", self.endpoint, self.target)

    def ping(self) -> None:
        """Raise DestinationError unless the server answers /ping."""
        try:
            resp = requests.get(
                f"{self.endpoint}/ping", timeout=self.config.timeout
            )
        except requests.RequestException as e:
            raise DestinationError(f"ping {self.endpoint} failed: {e}") from e
        if resp.status_code not in (200, 204):
            raise DestinationError(
                f"ping {self.endpoint} failed: HTTP {resp.status_code}"
            )
        version = resp.headers.get("X-Influxdb-Version", "unknown")
        logger.info("InfluxDB %s at %s is alive", version, self.endpoint)

    def write(self, points: Sequence[MetricPoint]) -> None:
        """Write one batch. Raises DestinationError on any failure."""
        records = [to_influx_point(p) for p in points]
        try:
            self._client.write(record=records, write_precision=WritePrecision.NS)
        except Exception as e:
            raise DestinationError(
                f"write of {len(records)} points to {self.target} failed: {e}"
            ) from e

    def close(self) -> None:
        self._client.close()
