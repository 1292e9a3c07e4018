"""Layer pipeline: orchestrates fetch → decode → colorize for one layer id.

    loader = LayerLoader(client=client, cache=cache)
    layer = await loader.get_layer("dsm", data_layers)

For a requested layer the loader looks up its LayerSpec, downloads the mask
and the data raster(s) concurrently, renders every frame and returns a Layer.
Either the whole Layer comes back or the first error is raised; nothing is
partially populated.

CLI usage (debugging):
    python -m solarviz.services.builder.pipeline \\
        --data-layers ./dataLayers.json --layer annualFlux --out ./out
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

import httpx

from solarviz.models.layers import DataLayersResponse, Layer, LayerId
from solarviz.models.raster import RasterImage
from solarviz.models.registry import LayerSpec, get_layer_spec
from solarviz.services.builder.colorize import compute_domain, render, render_frames
from solarviz.services.builder.fetch import fetch_raster, gather_or_cancel
from solarviz.services.builder.shade import (
    DEFAULT_SHADE_HOURS,
    SUMMER_SOLSTICE_DAY,
    hour_label,
    select_hourly_shade_urls,
)
from solarviz.services.raster_cache import RasterCache

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class LayerLoader:
    """Builds Layers from a DataLayersResponse.

    ``client`` is borrowed when given; otherwise each ``get_layer`` call opens
    and closes its own client.  ``cache`` is optional and owned by the caller.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[RasterCache] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.client = client
        self.cache = cache
        self.timeout = timeout

    async def get_layer(
        self,
        layer_id: LayerId | str,
        response: DataLayersResponse,
        *,
        day_of_year: int = SUMMER_SOLSTICE_DAY,
        hours: Iterable[int] = DEFAULT_SHADE_HOURS,
    ) -> Layer:
        spec = get_layer_spec(layer_id)
        hours = tuple(hours)
        urls = self._plan(spec, response, day_of_year, hours)
        logger.info("Loading layer %s (%d raster(s))", spec.id.value, len(urls))

        started = time.monotonic()
        if self.client is not None:
            rasters = await self._fetch_all(self.client, urls)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                rasters = await self._fetch_all(client, urls)

        layer = await asyncio.to_thread(self._build, spec, rasters, hours)
        logger.info(
            "Loaded layer %s: %d bitmap(s) in %.0f ms",
            spec.id.value,
            len(layer.bitmaps),
            (time.monotonic() - started) * 1000.0,
        )
        return layer

    def _plan(
        self,
        spec: LayerSpec,
        response: DataLayersResponse,
        day_of_year: int,
        hours: tuple[int, ...],
    ) -> list[str]:
        """Return the download URLs for a layer, mask first when used."""
        if spec.hourly:
            data_urls = select_hourly_shade_urls(response.hourly_shade_urls, day_of_year, hours)
        else:
            data_urls = [spec.source_url(response)]

        urls = ([response.mask_url] if spec.masked else []) + data_urls
        for url in urls:
            if not url:
                raise ValueError(f"DataLayersResponse has no URL for a {spec.id.value} raster")
        return urls

    async def _fetch_all(self, client: httpx.AsyncClient, urls: list[str]) -> list[RasterImage]:
        return await gather_or_cancel(fetch_raster(client, url, self.cache) for url in urls)

    def _build(self, spec: LayerSpec, rasters: list[RasterImage], hours: tuple[int, ...]) -> Layer:
        if spec.masked:
            mask, data = rasters[0], rasters[1:]
        else:
            mask, data = None, rasters

        palette = spec.palette
        if spec.data_domain:
            domain_min, domain_max = compute_domain(data[0].band(0), data[0].nodata)
            palette = palette.with_domain(domain_min, domain_max)
            logger.debug("Layer %s domain: [%s, %s]", spec.id.value, domain_min, domain_max)

        if spec.hourly:
            bitmaps = [render(raster, palette, mask=mask) for raster in data]
            labels = tuple(hour_label(hour) for hour in hours)
        else:
            bitmaps = render_frames(data[0], palette, spec.frame_bands, mask=mask)
            labels = spec.frame_labels

        bounds = (mask if mask is not None else data[0]).bounds
        return Layer(
            id=spec.id,
            bounds=bounds,
            bitmaps=tuple(bitmaps),
            legend=spec.legend_for(palette),
            frame_labels=tuple(labels),
        )


async def get_layer(
    layer_id: LayerId | str,
    response: DataLayersResponse,
    *,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[RasterCache] = None,
    day_of_year: int = SUMMER_SOLSTICE_DAY,
    hours: Iterable[int] = DEFAULT_SHADE_HOURS,
) -> Layer:
    loader = LayerLoader(client=client, cache=cache)
    return await loader.get_layer(layer_id, response, day_of_year=day_of_year, hours=hours)


def _write_layer(layer: Layer, out_dir: Path) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for idx, bitmap in enumerate(layer.bitmaps):
        label = layer.frame_labels[idx] if idx < len(layer.frame_labels) else str(idx)
        safe_label = label.replace(":", "")
        path = out_dir / f"{layer.id.value}_{idx:02d}_{safe_label}.png"
        bitmap.save(path, format="PNG")
        written.append(path)
    sidecar = {
        "id": layer.id.value,
        "bounds": layer.bounds.as_dict(),
        "legend": layer.legend.as_dict() if layer.legend else None,
        "frames": [path.name for path in written],
    }
    sidecar_path = out_dir / f"{layer.id.value}.json"
    sidecar_path.write_text(json.dumps(sidecar, indent=2))
    written.append(sidecar_path)
    return written


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render one Solar API data layer to PNG files")
    parser.add_argument("--data-layers", required=True, help="Path to a dataLayers:get JSON response")
    parser.add_argument("--layer", required=True, choices=[layer_id.value for layer_id in LayerId])
    parser.add_argument("--out", default="./out", help="Output directory")
    parser.add_argument("--day-of-year", type=int, default=SUMMER_SOLSTICE_DAY)
    parser.add_argument("--hours", default=",".join(str(h) for h in DEFAULT_SHADE_HOURS))
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    payload = json.loads(Path(args.data_layers).read_text())
    response = DataLayersResponse.from_api(payload)
    hours = [int(item) for item in args.hours.split(",") if item.strip()]
    layer = asyncio.run(get_layer(args.layer, response, day_of_year=args.day_of_year, hours=hours))
    for path in _write_layer(layer, Path(args.out)):
        logger.info("Wrote %s", path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
