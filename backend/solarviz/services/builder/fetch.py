"""GeoTIFF acquisition over HTTP.

Downloads raster payloads with httpx and decodes them into RasterImage
objects.  One attempt per URL: no retries, no backoff.  Independent downloads
for one layer run concurrently through ``gather_or_cancel``, which cancels the
remaining downloads as soon as one fails.

Usage
-----
    async with httpx.AsyncClient(timeout=30.0) as client:
        mask, dsm = await gather_or_cancel([
            fetch_raster(client, urls.mask_url),
            fetch_raster(client, urls.dsm_url),
        ])
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Iterable, Optional

import httpx

from solarviz.models.raster import RasterImage
from solarviz.services.builder.tiff import decode_geotiff
from solarviz.services.raster_cache import RasterCache

logger = logging.getLogger(__name__)

_KEY_PARAM_RE = re.compile(r"(key=)[^&]+")


class TransportError(RuntimeError):
    """Raised when a raster download fails or returns a non-success status."""

    def __init__(self, message: str, *, url: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def redact_url(url: str) -> str:
    return _KEY_PARAM_RE.sub(r"\1***", url)


async def fetch_bytes(client: httpx.AsyncClient, url: str) -> bytes:
    safe_url = redact_url(url)
    started = time.monotonic()
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        raise TransportError(f"Download failed for {safe_url}: {exc}", url=safe_url) from exc

    elapsed_ms = (time.monotonic() - started) * 1000.0
    if response.status_code >= 400:
        body = response.text[:500] if response.content else ""
        logger.warning(
            "GeoTIFF download failed status=%d url=%s body=%r",
            response.status_code,
            safe_url,
            body,
        )
        raise TransportError(
            f"Download failed for {safe_url}: HTTP {response.status_code}",
            url=safe_url,
            status_code=response.status_code,
        )

    logger.debug(
        "Downloaded %s (%.1f KB) in %.0f ms",
        safe_url,
        len(response.content) / 1024.0,
        elapsed_ms,
    )
    return response.content


async def fetch_raster(
    client: httpx.AsyncClient,
    url: str,
    cache: Optional[RasterCache] = None,
) -> RasterImage:
    if cache is not None:
        cached = cache.get(url)
        if cached is not None:
            logger.debug("Raster cache hit: %s", redact_url(url))
            return cached

    payload = await fetch_bytes(client, url)
    raster = await asyncio.to_thread(decode_geotiff, payload)
    if cache is not None:
        cache.put(url, raster)
    return raster


async def gather_or_cancel(aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """Await every awaitable; on the first failure cancel the rest and re-raise.

    Results come back in input order.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    if pending:
        logger.debug("Cancelling %d sibling download(s) after failure", len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()
    return [task.result() for task in tasks]
