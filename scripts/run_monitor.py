#!/usr/bin/env python3
"""
Whale monitor for the XRP Ledger.

Subscribes to the public transaction stream on one or more equivalent servers,
classifies every Payment and delivers alerts for high-value transfers.

Usage:
    python -m scripts.run_monitor --config whalestream.yaml
    python -m scripts.run_monitor --min-threshold 250000 --dry-run
    python -m scripts.run_monitor --endpoints wss://s1.ripple.com/,wss://s2.ripple.com/ --duration-s 60

- Graceful shutdown via SIGINT/SIGTERM or --duration-s timeout
- Exit status 2 on invalid configuration
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any

from prometheus_client.registry import CollectorRegistry

from whalestream.classifier import TransferClassifier
from whalestream.config import AppConfig, load_config
from whalestream.connectors.exporter import MetricsExporter
from whalestream.connectors.metrics_server import start_metrics_server, stop_metrics_server
from whalestream.connectors.registry import StreamRegistry
from whalestream.connectors.supervisor import StreamSupervisor
from whalestream.connectors.types import StreamConfig
from whalestream.delivery import AlertRouter
from whalestream.errors import ConfigError
from whalestream.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class WhaleMonitor:
    """
    Wires streams, delivery and the status server together.

    Data flow (per stream):
        Transport -> StreamSupervisor -> TransferClassifier
            -> AlertDispatcher (bounded queue) -> AlertRouter -> sinks
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._router = AlertRouter.from_config(config.delivery)
        self._streams = StreamRegistry()
        for stream_config in config.streams:
            self._streams.register(
                StreamSupervisor(
                    stream_config,
                    TransferClassifier.from_stream_config(stream_config),
                    self._router,
                    drain_timeout_s=config.delivery.drain_timeout_s,
                )
            )

        self._metrics_registry = CollectorRegistry()
        self._exporter = MetricsExporter(registry=self._metrics_registry)
        self._shutdown = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._start_monotonic = 0.0

    @property
    def streams(self) -> StreamRegistry:
        return self._streams

    @property
    def router(self) -> AlertRouter:
        return self._router

    @property
    def exporter(self) -> MetricsExporter:
        return self._exporter

    def get_health_info(self) -> dict[str, Any]:
        """Stream status for /healthz."""
        uptime_s = round(time.monotonic() - self._start_monotonic, 1) if self._start_monotonic else 0.0
        return {
            "status": "ok",
            "uptime_s": uptime_s,
            "streams": [s.to_dict() for s in self._streams.statuses()],
        }

    def get_ready_info(self) -> tuple[bool, dict[str, Any]]:
        """Ready when every stream is CONNECTED."""
        states = {s.purpose: s.connection_state.value for s in self._streams.statuses()}
        ready = self._streams.all_connected()
        info: dict[str, Any] = {"ready": ready, "streams": states}
        if not ready:
            info["reason"] = "not all streams connected"
        return ready, info

    def update_metrics(self) -> None:
        self._exporter.update(self._streams)

    def request_shutdown(self) -> None:
        """Request graceful shutdown; safe to call from a signal handler."""
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._shutdown.set)
        else:
            self._shutdown.set()

    async def run(self, duration_s: float | None = None) -> None:
        """Run until shutdown is requested or duration_s elapses."""
        self._loop = asyncio.get_running_loop()
        self._start_monotonic = time.monotonic()

        await self._streams.start_all()
        logger.info("Monitor running", extra={"streams": len(self._streams)})

        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=duration_s)
        except TimeoutError:
            logger.info("Duration elapsed, stopping", extra={"duration_s": duration_s})

    async def stop(self) -> None:
        abandoned = await self._streams.stop_all(grace_s=self._config.shutdown_grace_s)
        if abandoned:
            logger.warning("Some streams were abandoned", extra={"purposes": abandoned})
        await self._router.close()
        self.update_metrics()
        self._log_summary()

    def _log_summary(self) -> None:
        for supervisor in self._streams.supervisors:
            cm = supervisor.classifier.metrics
            sm = supervisor.metrics
            dm = supervisor.dispatcher.metrics
            logger.info(
                "Stream summary",
                extra={
                    "purpose": supervisor.purpose,
                    "frames_received": sm.frames_received,
                    "connects": sm.connects,
                    "reconnect_attempts": sm.reconnect_attempts,
                    "accepted": cm.accepted,
                    "parse_errors": cm.parse_errors,
                    "rejected": dict(cm.rejected),
                    "alerts_delivered": dm.delivered,
                    "alerts_failed": dm.failed,
                    "alerts_dropped": dm.dropped,
                },
            )


def setup_signal_handlers(monitor: WhaleMonitor) -> None:
    """
    Setup signal handlers for graceful shutdown.

    The handler only sets the shutdown event; run() returns and the caller stops
    the monitor, so stop() never runs twice concurrently.
    """

    def signal_handler(sig: int, frame: object) -> None:
        logger.info("Received signal %s, initiating shutdown", signal.Signals(sig).name)
        monitor.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Apply CLI flags on top of the file config (flags win)."""
    stream_changes: dict[str, Any] = {}
    if args.endpoints:
        stream_changes["endpoints"] = [e.strip() for e in args.endpoints.split(",") if e.strip()]
    if args.min_threshold is not None:
        stream_changes["min_threshold"] = args.min_threshold
    if args.max_threshold is not None:
        stream_changes["max_threshold"] = args.max_threshold

    streams: list[StreamConfig] = config.streams
    if stream_changes:
        streams = [dataclasses.replace(s, **stream_changes) for s in config.streams]

    delivery = config.delivery
    if args.dry_run:
        delivery = dataclasses.replace(delivery, dry_run=True)

    app_changes: dict[str, Any] = {"streams": streams, "delivery": delivery}
    if args.metrics_port is not None:
        app_changes["metrics_port"] = args.metrics_port
    if args.log_level is not None:
        app_changes["log_level"] = args.log_level
    if args.log_json is not None:
        app_changes["log_json"] = args.log_json
    return dataclasses.replace(config, **app_changes)


async def run_monitor(config: AppConfig, duration_s: float | None = None) -> int:
    """
    Run the monitor.

    Returns:
        Exit code (0 = success).
    """
    monitor = WhaleMonitor(config)

    metrics_runner = None
    if config.metrics_port > 0:
        metrics_runner = await start_metrics_server(
            monitor.exporter.registry,
            port=config.metrics_port,
            health_fn=monitor.get_health_info,
            ready_fn=monitor.get_ready_info,
            on_scrape=monitor.update_metrics,
        )

    setup_signal_handlers(monitor)

    try:
        await monitor.run(duration_s)
        return EXIT_OK
    except Exception as e:
        logger.exception("Monitor failed: %s", e)
        return EXIT_FAILURE
    finally:
        await monitor.stop()
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monitor the XRP Ledger for high-value transfers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: built-in defaults)",
    )
    parser.add_argument(
        "--endpoints",
        type=str,
        default=None,
        help="Comma-separated ws:// or wss:// servers (applies to every stream)",
    )
    parser.add_argument(
        "--min-threshold",
        type=str,
        default=None,
        help="Minimum alert amount in XRP (default: 100000)",
    )
    parser.add_argument(
        "--max-threshold",
        type=str,
        default=None,
        help="Maximum alert amount in XRP (default: 50000000)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for /metrics, /healthz, /readyz (0 to disable, default: 9090)",
    )
    parser.add_argument(
        "--duration-s",
        type=float,
        default=None,
        help="Run for N seconds then stop gracefully (default: run until SIGINT/SIGTERM)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log alerts instead of sending them",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="JSON log lines (default: on)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.duration_s is not None and args.duration_s <= 0:
        print(f"error: --duration-s must be > 0, got {args.duration_s}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        config = load_config(args.config) if args.config else AppConfig()
        config = apply_overrides(config, args)
    except ConfigError as e:
        print(f"error: invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(level=config.log_level, json_format=config.log_json)

    logger.info("Starting whale monitor")
    for stream in config.streams:
        logger.info(
            "  Stream %s: %d endpoints, thresholds [%s, %s]",
            stream.purpose,
            len(stream.endpoints),
            stream.min_threshold,
            stream.max_threshold,
        )
    logger.info("  Duration: %s", f"{args.duration_s}s" if args.duration_s else "until signal")
    logger.info("  Delivery: %s", "dry-run" if config.delivery.dry_run else "live")

    return asyncio.run(run_monitor(config, args.duration_s))


if __name__ == "__main__":
    sys.exit(main())
