"""GeoTIFF decoding: raw bytes → RasterImage.

The payload is opened in memory with rasterio and read band by band; bounds
are the dataset extent reprojected to EPSG:4326 (Solar API layers are
delivered in UTM).

Usage
-----
    from solarviz.services.builder.tiff import decode_geotiff

    raster = decode_geotiff(payload)
    raster.width, raster.height, raster.band_count, raster.bounds

decode_geotiff is CPU bound; async callers run it with asyncio.to_thread.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
import rasterio
from rasterio.errors import CRSError, NotGeoreferencedWarning, RasterioError
from rasterio.io import MemoryFile
from rasterio.warp import transform_bounds

from solarviz.models.raster import Bounds, RasterImage

logger = logging.getLogger(__name__)

# Byte order marker + magic: classic TIFF (42) and BigTIFF (43).
TIFF_SIGNATURES = (b"II*\x00", b"MM\x00*", b"II+\x00", b"MM\x00+")

SUPPORTED_DTYPES = frozenset(
    {
        "uint8", "uint16", "uint32", "uint64",
        "int8", "int16", "int32", "int64",
        "float32", "float64",
    }
)

WGS84 = "EPSG:4326"


class DecodeError(ValueError):
    """Raised when a byte stream is not a decodable GeoTIFF."""


def _check_signature(data: bytes) -> None:
    if len(data) < 8:
        raise DecodeError(f"Stream too short for a TIFF header ({len(data)} bytes)")
    if data[:4] not in TIFF_SIGNATURES:
        raise DecodeError(f"Missing TIFF signature (got {data[:4]!r})")


def _check_geotransform(src: rasterio.DatasetReader) -> None:
    transform = src.transform
    if transform.is_identity:
        raise DecodeError(
            "Required georeferencing tags are missing "
            "(ModelPixelScale + ModelTiepoint or ModelTransformation)"
        )
    if transform.b != 0.0 or transform.d != 0.0:
        raise DecodeError("Rotated or sheared geotransforms are not supported")
    if transform.a <= 0 or transform.e >= 0:
        raise DecodeError(f"Geotransform is not north-up (a={transform.a}, e={transform.e})")


def _wgs84_bounds(src: rasterio.DatasetReader) -> tuple[Bounds, str | None]:
    left, bottom, right, top = src.bounds
    crs = src.crs.to_string() if src.crs else None
    # Without a CRS the model space is taken to be lon/lat already.
    if src.crs is not None and src.crs.to_epsg() != 4326:
        left, bottom, right, top = transform_bounds(src.crs, WGS84, left, bottom, right, top)
    try:
        return Bounds(north=top, south=bottom, east=right, west=left), crs
    except ValueError as exc:
        raise DecodeError(f"Degenerate raster extent: {exc}") from exc


def decode_geotiff(data: bytes) -> RasterImage:
    """Decode a GeoTIFF byte stream into a RasterImage with WGS84 bounds."""
    data = bytes(data)
    _check_signature(data)

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NotGeoreferencedWarning)
            with MemoryFile(data) as memfile, memfile.open() as src:
                unsupported = sorted(set(src.dtypes) - SUPPORTED_DTYPES)
                if unsupported:
                    raise DecodeError(f"Unsupported sample format: {', '.join(unsupported)}")
                _check_geotransform(src)
                bounds, crs = _wgs84_bounds(src)
                stack = src.read()
                nodata = src.nodata
                driver = src.driver
                compression = src.compression.value if src.compression else "none"
    except (RasterioError, CRSError) as exc:
        raise DecodeError(f"Unreadable GeoTIFF: {exc}") from exc

    count, height, width = stack.shape
    bands = tuple(np.ascontiguousarray(stack[idx]).reshape(-1) for idx in range(count))

    logger.debug(
        "Decoded %s %dx%d bands=%d dtype=%s compression=%s crs=%s bounds=%s",
        driver,
        width,
        height,
        count,
        stack.dtype,
        compression,
        crs,
        bounds,
    )
    return RasterImage(
        width=width,
        height=height,
        bands=bands,
        bounds=bounds,
        nodata=float(nodata) if nodata is not None else None,
        crs=crs,
    )
