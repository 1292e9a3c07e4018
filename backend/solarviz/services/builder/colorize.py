"""Raster → RGBA bitmap rendering.

    render(raster, palette, mask=mask, index=band) -> PIL.Image (RGBA)

Three palette kinds:
  - continuous: normalize against the palette domain, interpolate between
    evenly spaced color stops.
  - binary: classify against the palette threshold, two colors only.
  - rgbPassthrough: bands 0–2 become R, G, B directly.

Every kind honors the optional mask raster: pixels whose mask value is at or
below MASK_THRESHOLD (or not finite) get alpha 0.  Nodata and non-finite
samples are transparent as well.  Rendering has no module-level state.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np
from PIL import Image

from solarviz.models.raster import RasterImage
from solarviz.services.colormaps import MASK_THRESHOLD, Palette, PaletteKind, stops_to_rgb

logger = logging.getLogger(__name__)


def render(
    raster: RasterImage,
    palette: Palette,
    *,
    mask: Optional[RasterImage] = None,
    index: int = 0,
) -> Image.Image:
    """Render one band (or the RGB bands) of ``raster`` to an RGBA image."""
    if palette.kind is PaletteKind.CONTINUOUS:
        rgba = _colorize_continuous(raster, palette, index)
    elif palette.kind is PaletteKind.BINARY:
        rgba = _colorize_binary(raster, palette, index)
    elif palette.kind is PaletteKind.RGB:
        rgba = _colorize_rgb(raster)
    else:
        raise ValueError(f"Unsupported palette kind: {palette.kind!r}")

    if mask is not None:
        rgba[~mask_to_grid(mask, raster.width, raster.height), 3] = 0

    return Image.fromarray(rgba.reshape(raster.height, raster.width, 4))


def render_frames(
    raster: RasterImage,
    palette: Palette,
    indices: Iterable[int],
    *,
    mask: Optional[RasterImage] = None,
) -> list[Image.Image]:
    return [render(raster, palette, mask=mask, index=idx) for idx in indices]


def compute_domain(values: np.ndarray, nodata: Optional[float] = None) -> tuple[float, float]:
    """Return (min, max) of the valid samples: sort, take first and last.

    Non-finite samples and the nodata sentinel are excluded.  An empty set
    yields (0.0, 0.0).
    """
    values = np.asarray(values).reshape(-1)
    valid = np.isfinite(values) if values.dtype.kind == "f" else np.ones(values.shape, dtype=bool)
    if nodata is not None and np.isfinite(nodata):
        valid &= values != nodata
    if not valid.any():
        logger.warning("No valid samples to compute a color domain from; using (0, 0)")
        return 0.0, 0.0
    ordered = np.sort(values[valid])
    return float(ordered[0]), float(ordered[-1])


# ---------------------------------------------------------------------------
# Mask
# ---------------------------------------------------------------------------


def mask_to_grid(mask: RasterImage, width: int, height: int) -> np.ndarray:
    """Flat boolean "on roof" array for a width x height grid.

    A mask on a different grid covering the same bounds is resampled with
    nearest neighbour.
    """
    values = mask.band(0)
    keep = mask.valid_mask(0)
    with np.errstate(invalid="ignore"):
        keep &= values > MASK_THRESHOLD
    if mask.width == width and mask.height == height:
        return keep

    logger.debug(
        "Resampling %dx%d mask onto %dx%d raster grid",
        mask.width,
        mask.height,
        width,
        height,
    )
    rows = (np.arange(height) * mask.height) // height
    cols = (np.arange(width) * mask.width) // width
    grid = keep.reshape(mask.height, mask.width)
    return grid[np.ix_(rows, cols)].reshape(-1)


# ---------------------------------------------------------------------------
# Continuous: normalize → interpolate between stops
# ---------------------------------------------------------------------------


def _colorize_continuous(raster: RasterImage, palette: Palette, index: int) -> np.ndarray:
    values = raster.band(index)
    valid = raster.valid_mask(index)
    t = np.where(valid, palette.normalize(values), 0.0)

    stops = stops_to_rgb(palette.colors)
    positions = np.linspace(0.0, 1.0, num=len(stops))
    rgba = np.empty((values.size, 4), dtype=np.uint8)
    for channel in range(3):
        interpolated = np.interp(t, positions, stops[:, channel])
        rgba[:, channel] = np.clip(np.rint(interpolated), 0, 255).astype(np.uint8)
    rgba[:, 3] = np.where(valid, 255, 0).astype(np.uint8)
    return rgba


# ---------------------------------------------------------------------------
# Binary: threshold → one of two colors
# ---------------------------------------------------------------------------


def _colorize_binary(raster: RasterImage, palette: Palette, index: int) -> np.ndarray:
    values = raster.band(index)
    valid = raster.valid_mask(index)
    with np.errstate(invalid="ignore"):
        above = valid & (values > palette.threshold)

    low, high = stops_to_rgb(palette.colors).astype(np.uint8)
    rgba = np.empty((values.size, 4), dtype=np.uint8)
    rgba[:, :3] = np.where(above[:, None], high, low)
    rgba[:, 3] = np.where(valid, 255, 0).astype(np.uint8)
    return rgba


# ---------------------------------------------------------------------------
# RGB passthrough: bands 0–2 → R, G, B
# ---------------------------------------------------------------------------


def _colorize_rgb(raster: RasterImage) -> np.ndarray:
    if raster.band_count < 3:
        raise IndexError(f"RGB rendering needs 3 bands, raster has {raster.band_count}")

    size = raster.width * raster.height
    rgba = np.empty((size, 4), dtype=np.uint8)
    valid = np.ones(size, dtype=bool)
    for channel in range(3):
        band = raster.band(channel)
        if band.dtype.kind == "f":
            valid &= np.isfinite(band)
            band = np.nan_to_num(np.rint(band), nan=0.0, posinf=255.0, neginf=0.0)
        rgba[:, channel] = np.clip(band, 0, 255).astype(np.uint8)
    rgba[:, 3] = np.where(valid, 255, 0).astype(np.uint8)
    return rgba
