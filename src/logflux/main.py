"""logflux application entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Callable, Optional, Sequence

from logflux import __version__
from logflux.adapters.base import BaseSource
from logflux.adapters.file_source import FileSource
from logflux.adapters.syslog_listener import SyslogSource
from logflux.api import RunStatus, build_server
from logflux.config import DEFAULT_PATTERNS, SYSLOG_PORT, Settings
from logflux.errors import ExtractionError, RecordError, StartupError
from logflux.pipeline import driver
from logflux.pipeline.patterns import PatternEngine
from logflux.sender.batching import BatchingSender, PointWriter
from logflux.sender.influx import InfluxWriter
from logflux.utils.logging import configure_logging

logger = logging.getLogger("logflux")

EXIT_OK = 0
EXIT_STARTUP = 1
EXIT_RECORD = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="logflux",
        description="Ship grok-extracted log metrics to InfluxDB",
    )
    parser.add_argument("-d", dest="debug", action="store_true", help="debug")
    parser.add_argument(
        "-l", dest="listen", action="store_true", help="listen for syslog messages"
    )
    parser.add_argument("-f", dest="file", default="", help="file to process")
    parser.add_argument("-i", dest="ip", default="0.0.0.0", help="ip to bind to")
    parser.add_argument("-t", dest="tcp", type=int, default=SYSLOG_PORT, help="tcp port")
    parser.add_argument("-u", dest="udp", type=int, default=SYSLOG_PORT, help="udp port")
    parser.add_argument(
        "-p", dest="patterns", default=DEFAULT_PATTERNS, help="patterns dir"
    )
    parser.add_argument("-c", "--config", dest="config", default=None, help="config file")
    parser.add_argument(
        "--api-port", dest="api_port", type=int, default=0,
        help="serve the health API on this port (0 disables)",
    )
    parser.add_argument(
        "--skip-errors", dest="skip_errors", action="store_true",
        help="skip records that fail instead of stopping",
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def build_engine(settings: Settings) -> PatternEngine:
    """Create the pattern engine and compile every configured pattern.

    A pattern that does not compile is a startup error, not a
    per-record one.
    """
    engine = PatternEngine(settings.patterns_dir)
    patterns = [settings.config.translate.pattern]
    patterns += [rule.pattern for rule in settings.config.filters]
    for pattern in filter(None, patterns):
        try:
            engine.validate(pattern)
        except ExtractionError as e:
            raise StartupError(str(e)) from e
    return engine


async def stop_on(stop: asyncio.Event, source: BaseSource) -> None:
    """Close source once stop is set, ending its line stream."""
    await stop.wait()
    logger.info("Stop requested, closing %s", source.source_type)
    await source.close()


def build_source(settings: Settings) -> Optional[BaseSource]:
    if settings.listen:
        return SyslogSource(
            ip=settings.ip,
            tcp_port=settings.tcp_port,
            udp_port=settings.udp_port,
            filters=settings.config.facilities,
        )
    if settings.file:
        return FileSource(settings.file)
    return None


async def run(
    settings: Settings,
    writer_factory: Callable[..., PointWriter] = InfluxWriter,
    stop: Optional[asyncio.Event] = None,
) -> int:
    """Run the pipeline until the source ends. Returns an exit status.

    SIGINT and SIGTERM set stop; callers may pass their own event to
    end a run from outside.
    """
    stop = stop or asyncio.Event()
    config = settings.config
    engine = build_engine(settings)
    writer = writer_factory(config.influxdb)
    sender = await BatchingSender.open(writer, config.sender)

    source = build_source(settings)
    status = RunStatus(sender=sender, source=source)
    server = None
    server_task = None
    if settings.api_port:
        server = build_server(status, settings.ip, settings.api_port)
        server_task = asyncio.create_task(server.serve())

    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    if source is not None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except (NotImplementedError, RuntimeError):
                continue
            handled.append(sig)

    stopper: Optional[asyncio.Task] = None
    code = EXIT_OK
    try:
        if source is None:
            logger.warning("No input: pass -f FILE or -l to listen")
        else:
            await source.open()
            stopper = asyncio.create_task(stop_on(stop, source))
            await driver.run(
                source.lines(),
                engine,
                config.translate,
                config.filters,
                config.tags,
                sender.submit,
                driver.ErrorPolicy(settings.on_record_error),
                status.pipeline,
            )
    except RecordError as e:
        logger.error("Stopped on record error: %s", e)
        code = EXIT_RECORD
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)
        if stopper is not None:
            if not stopper.done():
                stopper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stopper
        if source is not None:
            await source.close()
        await sender.close()
        close = getattr(writer, "close", None)
        if close is not None:
            close()
        if server is not None:
            server.should_exit = True
            await server_task
    return code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging("debug" if args.debug else "info")
    try:
        settings = Settings(args)
        configure_logging(settings.log_level)
        logger.info("logflux v%s starting", settings.version)
        return asyncio.run(run(settings))
    except StartupError as e:
        logger.error("Fatal: %s", e)
        return EXIT_STARTUP


if __name__ == "__main__":
    sys.exit(main())
