from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def __post_init__(self) -> None:
        if not self.north > self.south:
            raise ValueError(f"Bounds north={self.north} must exceed south={self.south}")
        if not self.east > self.west:
            raise ValueError(f"Bounds east={self.east} must exceed west={self.west}")

    def as_dict(self) -> dict[str, float]:
        return {
            "north": float(self.north),
            "south": float(self.south),
            "east": float(self.east),
            "west": float(self.west),
        }


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Decoded raster: flat row-major bands sharing one grid and one extent."""

    width: int
    height: int
    bands: tuple[np.ndarray, ...]
    bounds: Bounds
    nodata: Optional[float] = None
    crs: Optional[str] = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Raster dimensions must be positive, got {self.width}x{self.height}")
        if not self.bands:
            raise ValueError("Raster must carry at least one band")
        bands = tuple(np.asarray(band).reshape(-1) for band in self.bands)
        expected = self.width * self.height
        for idx, band in enumerate(bands):
            if band.size != expected:
                raise ValueError(
                    f"Band {idx} has {band.size} samples, expected {expected} "
                    f"({self.width}x{self.height})"
                )
        object.__setattr__(self, "bands", bands)

    @property
    def band_count(self) -> int:
        return len(self.bands)

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    def band(self, index: int) -> np.ndarray:
        if not 0 <= index < len(self.bands):
            raise IndexError(
                f"Band index {index} out of range for raster with {len(self.bands)} band(s)"
            )
        return self.bands[index]

    def band_grid(self, index: int) -> np.ndarray:
        return self.band(index).reshape(self.height, self.width)

    def valid_mask(self, index: int = 0) -> np.ndarray:
        """Flat boolean mask of finite samples that are not the nodata value."""
        values = self.band(index)
        if values.dtype.kind == "f":
            valid = np.isfinite(values)
        else:
            valid = np.ones(values.shape, dtype=bool)
        if self.nodata is not None and np.isfinite(self.nodata):
            valid &= values != self.nodata
        return valid
