"""logflux configuration.

Extraction rules, static tags and destination settings come from a
JSON config file validated with pydantic. Run-time switches come from
the command line, and secrets and the log level may come from
LOGFLUX_* environment variables so they need not live in the file.

Settings is built once in main and passed to each component; nothing
reads configuration from module globals.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from logflux import __version__
from logflux.errors import StartupError
from logflux.models.rules import FilterRule, TranslateSpec
from logflux.models.syslog import FacilityFilter

logger = logging.getLogger("logflux.config")

SYSLOG_PORT = 514
DEFAULT_CONFIG = "config.json"
DEFAULT_PATTERNS = "patterns"


class InfluxConfig(BaseModel):
    """Connection settings for the InfluxDB destination."""
    host: str = "localhost"
    port: int = 8086
    ssl: bool = False
    username: str = ""
    password: str = ""
    token: str = ""
    database: str = ""
    retention_policy: str = "default"
    timeout: int = Field(default=10, description="HTTP timeout in seconds")

    @property
    def url(self) -> str:
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def target(self) -> str:
        """Write target in database/retention_policy form."""
        if self.retention_policy:
            return f"{self.database}/{self.retention_policy}"
        return self.database

    @property
    def auth_token(self) -> str:
        """API token, or username:password for 1.x compatible servers."""
        if self.token:
            return self.token
        if self.username:
            return f"{self.username}:{self.password}"
        return ""


class SenderConfig(BaseModel):
    """Batching sender tuning. Durations are in seconds."""
    batch_size: int = Field(default=64, ge=1)
    queue_size: int = Field(default=8192, ge=1)
    flush_period: float = Field(default=60, gt=0)
    retry_backoff: float = Field(default=30, ge=0)
    drain_timeout: float = Field(default=30, ge=0)


class AppConfig(BaseModel):
    """Contents of the JSON config file."""
    translate: TranslateSpec = Field(default_factory=TranslateSpec)
    tags: dict[str, str] = Field(default_factory=dict)
    filters: list[FilterRule] = Field(default_factory=list)
    influxdb: InfluxConfig = Field(default_factory=InfluxConfig)
    sender: SenderConfig = Field(default_factory=SenderConfig)
    facilities: list[FacilityFilter] = Field(default_factory=list)
    on_record_error: Literal["abort", "skip"] = "abort"


def load_config(path: str) -> AppConfig:
    """Read and validate a config file. Raises StartupError."""
    try:
        with open(path, encoding="utf-8") as fh:
            raw: dict[str, Any] = json.load(fh)
    except OSError as e:
        raise StartupError(f"cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise StartupError(f"config file {path} is not valid JSON: {e}") from e
    try:
        config = AppConfig.model_validate(raw)
    except ValidationError as e:
        raise StartupError(f"invalid config file {path}: {e}") from e
    logger.info(
        "Loaded %s: %d filters, %d static tags",
        path, len(config.filters), len(config.tags),
    )
    return config


class Settings:
    """Everything a run needs, resolved from flags, environment and file.

    Args:
        args: Parsed command line options (see logflux.main). Missing
            attributes fall back to their defaults.
        config: Pre-built AppConfig; when omitted the config file is read.
    """

    def __init__(self, args: Any = None, config: Optional[AppConfig] = None):
        def opt(name: str, default: Any) -> Any:
            value = getattr(args, name, None)
            return default if value is None else value

        # Core
        self.version = __version__
        self.debug = bool(opt("debug", False))
        self.log_level = "debug" if self.debug else os.environ.get(
            "LOGFLUX_LOG_LEVEL", "info"
        )

        # Input
        self.listen = bool(opt("listen", False))
        self.file = opt("file", "")
        self.ip = opt("ip", "0.0.0.0")
        self.tcp_port = int(opt("tcp", SYSLOG_PORT))
        self.udp_port = int(opt("udp", SYSLOG_PORT))
        self.patterns_dir = opt("patterns", DEFAULT_PATTERNS)

        # API
        self.api_port = int(opt("api_port", 0))

        # Config file
        self.config_path = opt(
            "config", os.environ.get("LOGFLUX_CONFIG", DEFAULT_CONFIG)
        )
        self.config = config if config is not None else load_config(self.config_path)
        self._apply_secrets()

        self.on_record_error = (
            "skip" if opt("skip_errors", False) else self.config.on_record_error
        )

    def _apply_secrets(self) -> None:
        influx = self.config.influxdb
        update: dict[str, str] = {}
        token = os.environ.get("LOGFLUX_INFLUX_TOKEN", "")
        password = os.environ.get("LOGFLUX_INFLUX_PASSWORD", "")
        if token:
            update["token"] = token
        if password:
            update["password"] = password
        if update:
            self.config = self.config.model_copy(
                update={"influxdb": influx.model_copy(update=update)}
            )
