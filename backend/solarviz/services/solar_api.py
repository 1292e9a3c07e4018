"""Google Solar API access: dataLayers lookup and GeoTIFF download URLs.

Authentication is attached by ``SolarApiKeyAuth`` on the client the caller
builds; the layer pipeline itself never sees the key.
"""

from __future__ import annotations

import logging
from typing import Any, Generator
from urllib.parse import urlsplit

import httpx

from solarviz.models.layers import ImageryQuality
from solarviz.services.builder.fetch import TransportError, redact_url

logger = logging.getLogger(__name__)

DATA_LAYERS_VIEW = "FULL_LAYERS"


class SolarApiKeyAuth(httpx.Auth):
    """Append ``key=<api key>`` to requests addressed to the Solar API host."""

    def __init__(self, api_key: str, base_url: str) -> None:
        self.api_key = api_key
        self.host = urlsplit(base_url).hostname or ""

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if request.url.host == self.host and "key" not in request.url.params:
            request.url = request.url.copy_add_param("key", self.api_key)
        yield request


def data_layers_params(
    latitude: float,
    longitude: float,
    radius_meters: float,
    required_quality: ImageryQuality | str = ImageryQuality.HIGH,
) -> dict[str, str]:
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"latitude {latitude} outside -90..90")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"longitude {longitude} outside -180..180")
    if radius_meters <= 0:
        raise ValueError(f"radius_meters must be positive, got {radius_meters}")
    quality = ImageryQuality(required_quality)
    return {
        "location.latitude": f"{latitude:.7f}",
        "location.longitude": f"{longitude:.7f}",
        "radiusMeters": f"{radius_meters:g}",
        "requiredQuality": quality.value,
        "view": DATA_LAYERS_VIEW,
    }


async def fetch_data_layers(
    client: httpx.AsyncClient,
    base_url: str,
    *,
    latitude: float,
    longitude: float,
    radius_meters: float,
    required_quality: ImageryQuality | str = ImageryQuality.HIGH,
) -> dict[str, Any]:
    """Return the raw ``dataLayers:get`` JSON for a location."""
    url = f"{base_url.rstrip('/')}/dataLayers:get"
    params = data_layers_params(latitude, longitude, radius_meters, required_quality)
    try:
        response = await client.get(url, params=params)
    except httpx.HTTPError as exc:
        raise TransportError(f"dataLayers request failed: {exc}", url=url) from exc

    logger.info("dataLayers:get %s -> %d", redact_url(str(response.request.url)), response.status_code)
    if response.status_code >= 400:
        raise TransportError(
            f"dataLayers request failed: HTTP {response.status_code}: {response.text[:500]}",
            url=url,
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(f"dataLayers response is not JSON: {exc}", url=url) from exc


def geotiff_url(base_url: str, geotiff_id: str) -> str:
    return str(httpx.URL(f"{base_url.rstrip('/')}/geoTiff:get", params={"id": geotiff_id}))
