"""Health API.

A small FastAPI app exposing the running pipeline's state. It is
served by uvicorn alongside the pipeline when --api-port is given.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI

from logflux import __version__
from logflux.adapters.base import BaseSource
from logflux.pipeline.driver import DriverStats
from logflux.sender.batching import BatchingSender, SenderState

logger = logging.getLogger("logflux.api")


@dataclass
class RunStatus:
    """Live handles the API reports on."""
    sender: Optional[BatchingSender] = None
    source: Optional[BaseSource] = None
    pipeline: DriverStats = field(default_factory=DriverStats)


def create_app(status: RunStatus) -> FastAPI:
    app = FastAPI(
        title="logflux",
        description="Grok-driven log ingestion into InfluxDB",
        version=__version__,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        body: dict[str, Any] = {
            "status": "ok",
            "version": __version__,
            "pipeline": asdict(status.pipeline),
            "sender": None,
            "source": None,
        }
        if status.sender is not None:
            stats = status.sender.stats()
            body["sender"] = asdict(stats)
            if stats.state is SenderState.RETRYING:
                body["status"] = "degraded"
        if status.source is not None:
            body["source"] = asdict(status.source.health())
        return body

    return app


class APIServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to logflux."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


def build_server(status: RunStatus, host: str, port: int) -> APIServer:
    config = uvicorn.Config(
        create_app(status), host=host, port=port, log_config=None,
    )
    logger.info("Health API on %s:%d", host, port)
    return APIServer(config)
