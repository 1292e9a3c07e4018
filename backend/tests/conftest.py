from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import numpy as np
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_origin

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Small patch of Valletta in EPSG:4326, 0.00001° pixels.
WEST = 14.5
NORTH = 35.9
PIXEL_DEG = 0.00001


def write_geotiff(
    path: Path,
    data: np.ndarray,
    *,
    crs: Optional[str] = "EPSG:4326",
    transform: Any = None,
    **creation: Any,
) -> bytes:
    """Write (bands, H, W) or (H, W) data as a GeoTIFF and return its bytes."""
    if data.ndim == 2:
        data = data[np.newaxis, ...]
    count, height, width = data.shape
    if transform is None:
        transform = from_origin(WEST, NORTH, PIXEL_DEG, PIXEL_DEG)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=count,
        dtype=data.dtype,
        crs=CRS.from_string(crs) if crs else None,
        transform=transform,
        **creation,
    ) as dst:
        dst.write(data)
    return path.read_bytes()


@pytest.fixture
def geotiff_bytes(tmp_path: Path) -> Callable[..., bytes]:
    counter = {"n": 0}

    def _make(data: np.ndarray, **kwargs: Any) -> bytes:
        counter["n"] += 1
        return write_geotiff(tmp_path / f"fixture_{counter['n']}.tif", data, **kwargs)

    return _make


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
