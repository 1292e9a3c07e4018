from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from PIL import Image

from .raster import Bounds


class LayerId(str, Enum):
    MASK = "mask"
    DSM = "dsm"
    RGB = "rgb"
    ANNUAL_FLUX = "annualFlux"
    MONTHLY_FLUX = "monthlyFlux"
    HOURLY_SHADE = "hourlyShade"


class ImageryQuality(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    BASE = "BASE"


@dataclass(frozen=True)
class ImageryDate:
    year: int
    month: int
    day: int

    @classmethod
    def from_api(cls, payload: Optional[Mapping[str, Any]]) -> Optional["ImageryDate"]:
        if not payload:
            return None
        return cls(
            year=int(payload.get("year", 0)),
            month=int(payload.get("month", 0)),
            day=int(payload.get("day", 0)),
        )

    def isoformat(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


@dataclass(frozen=True)
class DataLayersResponse:
    """Per-layer download URLs returned by the Solar API ``dataLayers:get``."""

    mask_url: str = ""
    dsm_url: str = ""
    rgb_url: str = ""
    annual_flux_url: str = ""
    monthly_flux_url: str = ""
    hourly_shade_urls: tuple[str, ...] = field(default_factory=tuple)
    imagery_quality: ImageryQuality = ImageryQuality.HIGH
    imagery_date: Optional[ImageryDate] = None
    imagery_processed_date: Optional[ImageryDate] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "hourly_shade_urls", tuple(self.hourly_shade_urls))
        try:
            object.__setattr__(self, "imagery_quality", ImageryQuality(self.imagery_quality))
        except ValueError as exc:
            raise ValueError(f"Unknown imagery quality: {self.imagery_quality!r}") from exc

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "DataLayersResponse":
        return cls(
            mask_url=str(payload.get("maskUrl") or ""),
            dsm_url=str(payload.get("dsmUrl") or ""),
            rgb_url=str(payload.get("rgbUrl") or ""),
            annual_flux_url=str(payload.get("annualFluxUrl") or ""),
            monthly_flux_url=str(payload.get("monthlyFluxUrl") or ""),
            hourly_shade_urls=tuple(str(url) for url in payload.get("hourlyShadeUrls") or ()),
            imagery_quality=payload.get("imageryQuality") or ImageryQuality.HIGH,
            imagery_date=ImageryDate.from_api(payload.get("imageryDate")),
            imagery_processed_date=ImageryDate.from_api(payload.get("imageryProcessedDate")),
        )


@dataclass(frozen=True)
class Legend:
    colors: tuple[str, ...]
    min_label: str
    max_label: str

    def as_dict(self) -> dict[str, Any]:
        return {"colors": list(self.colors), "min": self.min_label, "max": self.max_label}


@dataclass(frozen=True, eq=False)
class Layer:
    id: LayerId
    bounds: Bounds
    bitmaps: tuple[Image.Image, ...]
    legend: Optional[Legend] = None
    frame_labels: tuple[str, ...] = field(default_factory=tuple)
