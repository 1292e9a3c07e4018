from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from solarviz.services.colormaps import (
    BINARY_PALETTE,
    IRON_PALETTE,
    MONTHLY_FLUX_DOMAIN,
    RAINBOW_PALETTE,
    Palette,
    PaletteKind,
    binary,
    continuous,
    rgb_passthrough,
)

from .layers import DataLayersResponse, LayerId, Legend

logger = logging.getLogger(__name__)

MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _meters(value: float) -> str:
    return f"{value:.1f} m"


def _kwh_per_m2_year(value: float) -> str:
    # Half-up rounding: 2.5 -> 3, not the banker's 2 of format().
    return f"{math.floor(value + 0.5):d} kWh/m²/year"


class UnsupportedLayerError(KeyError):
    """Raised for a layer id outside the LayerId enumeration."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unsupported layer"


@dataclass(frozen=True)
class LayerSpec:
    """Retrieval plan and renderer configuration for one layer variant.

    ``source`` names the DataLayersResponse URL field holding the data raster;
    ``None`` means the frames come from the hourly shade subsampler.  When
    ``data_domain`` is set the palette domain is replaced by the min/max of the
    decoded band before rendering.
    """

    id: LayerId
    source: Optional[str]
    palette: Palette
    masked: bool = True
    data_domain: bool = False
    frame_bands: tuple[int, ...] = (0,)
    frame_labels: tuple[str, ...] = ()
    legend_labels: Optional[tuple[str, str]] = None
    label_format: Optional[Callable[[float], str]] = None

    @property
    def hourly(self) -> bool:
        return self.source is None

    def source_url(self, response: DataLayersResponse) -> str:
        if self.source is None:
            raise ValueError(f"Layer {self.id.value} has no single source raster")
        return getattr(response, self.source)

    def legend_for(self, palette: Palette) -> Optional[Legend]:
        if palette.kind is PaletteKind.RGB:
            return None
        if self.label_format is not None:
            return Legend(
                colors=palette.colors,
                min_label=self.label_format(palette.domain_min),
                max_label=self.label_format(palette.domain_max),
            )
        if self.legend_labels is not None:
            return Legend(palette.colors, *self.legend_labels)
        return None


LAYER_REGISTRY: dict[LayerId, LayerSpec] = {
    LayerId.MASK: LayerSpec(
        id=LayerId.MASK,
        source="mask_url",
        palette=binary(BINARY_PALETTE),
        masked=False,
        legend_labels=("No roof", "Roof"),
    ),
    LayerId.DSM: LayerSpec(
        id=LayerId.DSM,
        source="dsm_url",
        palette=continuous(RAINBOW_PALETTE),
        data_domain=True,
        label_format=_meters,
    ),
    LayerId.RGB: LayerSpec(
        id=LayerId.RGB,
        source="rgb_url",
        palette=rgb_passthrough(),
    ),
    LayerId.ANNUAL_FLUX: LayerSpec(
        id=LayerId.ANNUAL_FLUX,
        source="annual_flux_url",
        palette=continuous(IRON_PALETTE),
        data_domain=True,
        label_format=_kwh_per_m2_year,
    ),
    LayerId.MONTHLY_FLUX: LayerSpec(
        id=LayerId.MONTHLY_FLUX,
        source="monthly_flux_url",
        palette=continuous(IRON_PALETTE, MONTHLY_FLUX_DOMAIN),
        frame_bands=tuple(range(12)),
        frame_labels=MONTH_LABELS,
        legend_labels=("Low", "High"),
    ),
    LayerId.HOURLY_SHADE: LayerSpec(
        id=LayerId.HOURLY_SHADE,
        source=None,
        palette=binary(BINARY_PALETTE),
        legend_labels=("Shadow", "Sunlight"),
    ),
}


def get_layer_spec(layer_id: LayerId | str) -> LayerSpec:
    try:
        key = LayerId(layer_id)
    except ValueError:
        raise UnsupportedLayerError(f"Unknown layer: {layer_id}") from None
    spec = LAYER_REGISTRY.get(key)
    if spec is None:
        raise UnsupportedLayerError(f"No renderer registered for layer: {key.value}")
    return spec


def list_layer_specs() -> list[LayerSpec]:
    return [LAYER_REGISTRY[layer_id] for layer_id in LayerId if layer_id in LAYER_REGISTRY]
