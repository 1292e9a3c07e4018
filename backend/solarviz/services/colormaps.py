"""Palette definitions for Solar API data layer overlays.

A palette is a list of evenly spaced hex color stops plus the numeric domain
that raster values are normalized against before lookup.  Continuous palettes
interpolate between stops; binary palettes classify against a threshold; RGB
palettes carry no colors and pass the imagery bands through.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

IRON_PALETTE = (
    "#00000c", "#00001f", "#000033", "#000047", "#00005b", "#00006f", "#000083", "#000097",
    "#0000ab", "#0000bf", "#0000d3", "#0000e7", "#0000fb", "#0014ff", "#0028ff", "#003cff",
    "#0050ff", "#0064ff", "#0078ff", "#008cff", "#00a0ff", "#00b4ff", "#00c8ff", "#00dcff",
    "#00f0ff", "#14ffeb", "#28ffd7", "#3cffc3", "#50ffaf", "#64ff9b", "#78ff87", "#8cff73",
    "#a0ff5f", "#b4ff4b", "#c8ff37", "#dcff23", "#f0ff0f", "#fffa00", "#ffe600", "#ffd200",
    "#ffbe00", "#ffaa00", "#ff9600", "#ff8200", "#ff6e00", "#ff5a00", "#ff4600", "#ff3200",
    "#ff1e00", "#ff0a00", "#f00000", "#dc0000", "#c80000", "#b40000", "#a00000", "#8c0000",
    "#780000", "#640000", "#500000",
)

# Grey ramp used for the elevation model.
RAINBOW_PALETTE = (
    "#3d3d3d", "#414141", "#464646", "#4a4a4a", "#4f4f4f", "#535353", "#585858", "#5c5c5c",
    "#616161", "#656565", "#6a6a6a", "#6e6e6e", "#737373", "#777777", "#7c7c7c", "#808080",
    "#858585", "#898989", "#8e8e8e", "#929292", "#979797", "#9b9b9b", "#a0a0a0", "#a4a4a4",
    "#a9a9a9", "#adadad", "#b2b2b2", "#b6b6b6", "#bbbbbb", "#bfbfbf", "#c4c4c4", "#c8c8c8",
    "#cdcdcd", "#d1d1d1", "#d6d6d6", "#dadada", "#dfdfdf", "#e3e3e3", "#e8e8e8", "#ececec",
    "#f1f1f1", "#f5f5f5", "#fafafa",
)

BINARY_PALETTE = ("#000000", "#ffffff")

SUNLIGHT_PALETTE = (
    "#0a1c3a", "#1a2f52", "#2a426a", "#3a5582", "#4a689a",
    "#5a7bb2", "#6a8eca", "#7aa1e2", "#8ab4fa",
)

MONTHLY_FLUX_DOMAIN = (0.0, 200.0)

# Mask samples at or below this value are off-roof.
MASK_THRESHOLD = 0.0
BINARY_THRESHOLD = 0.0


class PaletteKind(str, Enum):
    CONTINUOUS = "continuous"
    BINARY = "binary"
    RGB = "rgbPassthrough"


def hex_to_rgba_u8(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    hex_str = hex_color.strip().lstrip("#")
    if len(hex_str) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    r = int(hex_str[0:2], 16)
    g = int(hex_str[2:4], 16)
    b = int(hex_str[4:6], 16)
    a = int(alpha)
    return r, g, b, a


def stops_to_rgb(colors_hex: tuple[str, ...] | list[str]) -> np.ndarray:
    """Return an (N, 3) float array of stop colors."""
    return np.array([hex_to_rgba_u8(color)[:3] for color in colors_hex], dtype=np.float64)


@dataclass(frozen=True)
class Palette:
    kind: PaletteKind
    colors: tuple[str, ...] = field(default_factory=tuple)
    domain_min: float = 0.0
    domain_max: float = 1.0
    threshold: float = BINARY_THRESHOLD

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", PaletteKind(self.kind))
        object.__setattr__(self, "colors", tuple(self.colors))
        for color in self.colors:
            hex_to_rgba_u8(color)
        if self.kind is PaletteKind.CONTINUOUS and len(self.colors) < 2:
            raise ValueError("Continuous palette needs at least two color stops")
        if self.kind is PaletteKind.BINARY and len(self.colors) != 2:
            raise ValueError(f"Binary palette needs exactly two colors, got {len(self.colors)}")
        if self.domain_max < self.domain_min:
            raise ValueError(
                f"Palette domain is inverted: min={self.domain_min} max={self.domain_max}"
            )

    def with_domain(self, domain_min: float, domain_max: float) -> "Palette":
        return replace(self, domain_min=float(domain_min), domain_max=float(domain_max))

    def normalize(self, values: np.ndarray) -> np.ndarray:
        """Map raw values to [0, 1]; a collapsed domain maps everything to 0."""
        span = self.domain_max - self.domain_min
        values = np.asarray(values, dtype=np.float64)
        if span <= 0:
            return np.zeros(values.shape, dtype=np.float64)
        with np.errstate(invalid="ignore"):
            return np.clip((values - self.domain_min) / span, 0.0, 1.0)


def continuous(colors: tuple[str, ...], domain: tuple[float, float] = (0.0, 1.0)) -> Palette:
    return Palette(PaletteKind.CONTINUOUS, colors, float(domain[0]), float(domain[1]))


def binary(colors: tuple[str, ...] = BINARY_PALETTE, threshold: float = BINARY_THRESHOLD) -> Palette:
    return Palette(PaletteKind.BINARY, colors, 0.0, 1.0, threshold)


def rgb_passthrough() -> Palette:
    return Palette(PaletteKind.RGB, (), 0.0, 255.0)
