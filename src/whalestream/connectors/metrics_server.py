"""
Minimal HTTP server for /metrics, /healthz and /readyz.

- GET /metrics: Prometheus exposition of the given registry
- GET /healthz: JSON status of every stream (always 200 while the process runs)
- GET /readyz: 200 when every stream is CONNECTED, else 503
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import orjson
from aiohttp import web
from prometheus_client import generate_latest

if TYPE_CHECKING:
    from prometheus_client.registry import CollectorRegistry

logger = logging.getLogger(__name__)

# aiohttp route handler
_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

# Returns the /healthz body
HealthFn = Callable[[], dict[str, Any]]

# Returns (is_ready, /readyz body)
ReadyFn = Callable[[], tuple[bool, dict[str, Any]]]

# Called before each scrape so counters are current
ScrapeHook = Callable[[], None]


def _json_response(info: dict[str, Any], status: int = 200) -> web.Response:
    return web.Response(body=orjson.dumps(info), status=status, content_type="application/json")


def _make_metrics_handler(
    registry: CollectorRegistry,
    on_scrape: ScrapeHook | None = None,
) -> _Handler:
    """GET /metrics: refresh via on_scrape, then expose the registry."""

    async def handler(request: web.Request) -> web.Response:
        if on_scrape is not None:
            on_scrape()
        return web.Response(
            body=generate_latest(registry),
            content_type="text/plain; version=0.0.4",
            charset="utf-8",
        )

    return handler


def _make_healthz_handler(health_fn: HealthFn | None = None) -> _Handler:
    async def handler(request: web.Request) -> web.Response:
        info = health_fn() if health_fn is not None else {"status": "ok"}
        return _json_response(info)

    return handler


def _make_readyz_handler(ready_fn: ReadyFn | None = None) -> _Handler:
    async def handler(request: web.Request) -> web.Response:
        if ready_fn is None:
            return _json_response({"ready": True})
        ready, info = ready_fn()
        return _json_response(info, status=200 if ready else 503)

    return handler


def create_metrics_app(
    registry: CollectorRegistry,
    *,
    health_fn: HealthFn | None = None,
    ready_fn: ReadyFn | None = None,
    on_scrape: ScrapeHook | None = None,
) -> web.Application:
    """
    Create aiohttp Application with /metrics, /healthz and /readyz routes.

    Args:
        registry: Prometheus CollectorRegistry to serve.
        health_fn: Optional callback for /healthz stream status.
        ready_fn: Optional readiness predicate for /readyz.
        on_scrape: Optional hook run before each /metrics scrape.

    Returns:
        Application with the three routes registered.
    """
    app = web.Application()
    app.router.add_get("/metrics", _make_metrics_handler(registry, on_scrape))
    app.router.add_get("/healthz", _make_healthz_handler(health_fn))
    app.router.add_get("/readyz", _make_readyz_handler(ready_fn))
    return app


async def start_metrics_server(
    registry: CollectorRegistry,
    host: str = "0.0.0.0",
    port: int = 9090,
    *,
    health_fn: HealthFn | None = None,
    ready_fn: ReadyFn | None = None,
    on_scrape: ScrapeHook | None = None,
) -> web.AppRunner:
    """
    Serve create_metrics_app() on host:port.

    Returns:
        AppRunner (call stop_metrics_server() on shutdown).
    """
    app = create_metrics_app(registry, health_fn=health_fn, ready_fn=ready_fn, on_scrape=on_scrape)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Status server listening", extra={"host": host, "port": port})
    return runner


async def stop_metrics_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Status server stopped")
