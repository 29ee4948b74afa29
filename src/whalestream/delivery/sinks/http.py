"""
Shared HTTP delivery for webhook-style sinks.

POSTs a JSON payload with a bounded number of retries; 429 responses honour the
server's retry hint, capped so one alert cannot stall the queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from whalestream.delivery.sinks.base import AlertSink, DeliveryResult

logger = logging.getLogger(__name__)

MAX_RETRY_SLEEP_S = 5.0
DEFAULT_RETRY_AFTER_S = 60.0
RETRY_SLEEP_S = 1.0


class HttpAlertSink(AlertSink):
    """Base class for sinks that deliver through one HTTP POST per alert."""

    def __init__(self, *, timeout_s: float, max_retries: int) -> None:
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _retry_after(self, resp: aiohttp.ClientResponse) -> float:
        """Seconds to wait after a 429. Subclasses read provider-specific hints."""
        header = resp.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        return DEFAULT_RETRY_AFTER_S

    def _is_success(self, status: int) -> bool:
        return 200 <= status < 300

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        for attempt in range(self._max_retries + 1):
            last_attempt = attempt >= self._max_retries
            try:
                session = await self._get_session()
                async with session.post(url, json=payload, headers=headers) as resp:
                    status = resp.status

                    if self._is_success(status):
                        return DeliveryResult(
                            success=True,
                            sink_name=self.name,
                            status_code=status,
                        )

                    # Rate limited
                    if status == 429:
                        retry_after = await self._retry_after(resp)
                        logger.warning(
                            "Sink rate limited",
                            extra={"sink": self.name, "retry_after": retry_after, "attempt": attempt},
                        )
                        if not last_attempt:
                            await asyncio.sleep(min(retry_after, MAX_RETRY_SLEEP_S))
                            continue
                        return DeliveryResult(
                            success=False,
                            sink_name=self.name,
                            error=f"Rate limited (retry_after={retry_after})",
                            status_code=status,
                            retry_after_s=retry_after,
                        )

                    error_text = await resp.text()
                    logger.error(
                        "Sink send failed",
                        extra={"sink": self.name, "status": status, "attempt": attempt},
                    )
                    # Client errors other than 429 will not succeed on retry
                    if not last_attempt and status >= 500:
                        await asyncio.sleep(RETRY_SLEEP_S)
                        continue
                    return DeliveryResult(
                        success=False,
                        sink_name=self.name,
                        error=f"HTTP {status}: {error_text[:200]}",
                        status_code=status,
                    )

            except (aiohttp.ClientError, TimeoutError) as e:
                logger.error(
                    "Sink connection error",
                    extra={"sink": self.name, "error": str(e), "attempt": attempt},
                )
                if not last_attempt:
                    await asyncio.sleep(RETRY_SLEEP_S)
                    continue
                return DeliveryResult(
                    success=False,
                    sink_name=self.name,
                    error=f"Connection error: {e}",
                )

        return DeliveryResult(
            success=False,
            sink_name=self.name,
            error="Max retries exceeded",
        )

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
