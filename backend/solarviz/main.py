"""solarviz API: Solar API data layers rendered as map overlays."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from fastapi import Body, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from PIL import Image

from .config import settings
from .models.layers import DataLayersResponse, ImageryQuality, Layer
from .models.registry import UnsupportedLayerError, get_layer_spec, list_layer_specs
from .services.builder.fetch import TransportError, redact_url
from .services.builder.pipeline import LayerLoader
from .services.builder.shade import DEFAULT_SHADE_HOURS, SUMMER_SOLSTICE_DAY
from .services.builder.tiff import DecodeError
from .services.raster_cache import RasterCache
from .services.solar_api import SolarApiKeyAuth, fetch_data_layers, geotiff_url

logger = logging.getLogger(__name__)

SOLAR_API_BASE_URL = settings.solar_api_base_url()
RASTER_CACHE = RasterCache(settings.raster_cache_max())

_http_client: Optional[httpx.AsyncClient] = None


def _build_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    api_key = settings.solar_api_key()
    auth = SolarApiKeyAuth(api_key, SOLAR_API_BASE_URL) if api_key else None
    return httpx.AsyncClient(
        timeout=settings.fetch_timeout_seconds(),
        follow_redirects=True,
        auth=auth,
        transport=transport,
    )


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = _build_client()
    return _http_client


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    del app
    yield
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()


app = FastAPI(title="solarviz API", version="1.0.0", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _parse_hours(raw: Optional[str]) -> tuple[int, ...]:
    if raw is None or not raw.strip():
        return DEFAULT_SHADE_HOURS
    try:
        return tuple(int(item) for item in raw.split(",") if item.strip())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid hours list: {raw!r}") from exc


def _require_api_key() -> None:
    if settings.solar_api_key() is None:
        raise HTTPException(status_code=503, detail="Solar API key not configured")


def _encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG", compress_level=settings.png_compress_level())
    return buf.getvalue()


def _serialize_layer(layer: Layer) -> dict[str, Any]:
    frames = []
    for idx, bitmap in enumerate(layer.bitmaps):
        label = layer.frame_labels[idx] if idx < len(layer.frame_labels) else None
        frames.append(
            {
                "index": idx,
                "label": label,
                "width": bitmap.width,
                "height": bitmap.height,
                "png_base64": base64.b64encode(_encode_png(bitmap)).decode("ascii"),
            }
        )
    return {
        "id": layer.id.value,
        "bounds": layer.bounds.as_dict(),
        "legend": layer.legend.as_dict() if layer.legend else None,
        "frames": frames,
    }


async def _load_layer(
    layer_id: str,
    data_layers: DataLayersResponse,
    *,
    day_of_year: int,
    hours: tuple[int, ...],
) -> Layer:
    loader = LayerLoader(client=get_http_client(), cache=RASTER_CACHE)
    try:
        return await loader.get_layer(layer_id, data_layers, day_of_year=day_of_year, hours=hours)
    except UnsupportedLayerError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DecodeError as exc:
        logger.warning("Layer %s: undecodable raster: %s", layer_id, exc)
        raise HTTPException(status_code=502, detail=f"Undecodable raster: {exc}") from exc
    except (IndexError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransportError as exc:
        logger.warning("Layer %s: download failed: %s", layer_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


async def _resolve_data_layers(
    lat: float,
    lng: float,
    radius_meters: Optional[float],
    required_quality: str,
) -> dict[str, Any]:
    _require_api_key()
    try:
        return await fetch_data_layers(
            get_http_client(),
            SOLAR_API_BASE_URL,
            latitude=lat,
            longitude=lng,
            radius_meters=radius_meters if radius_meters is not None else settings.default_radius_meters(),
            required_quality=required_quality,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransportError as exc:
        status = exc.status_code if exc.status_code and exc.status_code < 500 else 502
        raise HTTPException(status_code=status, detail=str(exc)) from exc


@app.get("/api/v1/health")
def health():
    return {"ok": True, "cache_entries": len(RASTER_CACHE)}


@app.get("/api/v1/layers")
def list_layers():
    layers = []
    for spec in list_layer_specs():
        layers.append(
            {
                "id": spec.id.value,
                "palette": spec.palette.kind.value,
                "masked": spec.masked,
                "frames": len(spec.frame_bands) if not spec.hourly else None,
            }
        )
    return {"layers": layers}


@app.post("/api/v1/layers/{layer_id}")
async def render_layer(
    layer_id: str,
    payload: dict[str, Any] = Body(...),
    day_of_year: int = Query(SUMMER_SOLSTICE_DAY),
    hours: Optional[str] = Query(None),
):
    try:
        data_layers = DataLayersResponse.from_api(payload)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    layer = await _load_layer(layer_id, data_layers, day_of_year=day_of_year, hours=_parse_hours(hours))
    return await asyncio.to_thread(_serialize_layer, layer)


@app.get("/api/v1/layers/{layer_id}/{frame:int}.png")
async def layer_frame_png(
    layer_id: str,
    frame: int,
    lat: float = Query(...),
    lng: float = Query(...),
    radius_meters: Optional[float] = Query(None),
    required_quality: str = Query(ImageryQuality.HIGH.value),
    day_of_year: int = Query(SUMMER_SOLSTICE_DAY),
    hours: Optional[str] = Query(None),
):
    try:
        get_layer_spec(layer_id)
    except UnsupportedLayerError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    shade_hours = _parse_hours(hours)

    payload = await _resolve_data_layers(lat, lng, radius_meters, required_quality)
    try:
        data_layers = DataLayersResponse.from_api(payload)
    except ValueError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    layer = await _load_layer(layer_id, data_layers, day_of_year=day_of_year, hours=shade_hours)
    if not 0 <= frame < len(layer.bitmaps):
        raise HTTPException(
            status_code=404,
            detail=f"Frame {frame} not found; layer {layer.id.value} has {len(layer.bitmaps)}",
        )
    return Response(
        content=await asyncio.to_thread(_encode_png, layer.bitmaps[frame]),
        media_type="image/png",
        headers={"Cache-Control": "private, max-age=300"},
    )


@app.get("/api/solar/dataLayers")
async def proxy_data_layers(
    lat: float = Query(...),
    lng: float = Query(...),
    radius_meters: Optional[float] = Query(None),
    required_quality: str = Query(ImageryQuality.HIGH.value),
):
    return await _resolve_data_layers(lat, lng, radius_meters, required_quality)


@app.get("/api/solar/geotiff")
async def proxy_geotiff(geotiff_id: str = Query(..., alias="id", min_length=1)):
    _require_api_key()
    url = geotiff_url(SOLAR_API_BASE_URL, geotiff_id)
    try:
        upstream = await get_http_client().get(url)
    except httpx.HTTPError as exc:
        logger.exception("GeoTIFF proxy failed for %s", redact_url(url))
        raise HTTPException(status_code=502, detail=f"GeoTIFF download failed: {exc}") from exc

    if upstream.status_code >= 400:
        logger.warning("GeoTIFF proxy upstream status=%d for %s", upstream.status_code, redact_url(url))
        return Response(content=upstream.content, status_code=upstream.status_code)

    logger.info("GeoTIFF proxy downloaded %d bytes", len(upstream.content))
    return Response(content=upstream.content, media_type="image/tiff")


@app.post("/api/v1/cache/clear")
def clear_cache():
    return {"cleared": RASTER_CACHE.clear()}
