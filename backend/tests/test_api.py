import base64
import io
import sys
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import numpy as np
import pytest
from PIL import Image

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from solarviz import main as main_module

pytestmark = pytest.mark.anyio

API_KEY = "test-secret"


class FakeSolarApi:
    """Stands in for solar.googleapis.com: dataLayers:get and geoTiff:get."""

    def __init__(self, payloads: dict[str, bytes]) -> None:
        self.payloads = payloads
        self.requests: list[httpx.Request] = []
        self.base_url = main_module.SOLAR_API_BASE_URL

    def geotiff_url(self, geotiff_id: str) -> str:
        return f"{self.base_url}/geoTiff:get?id={geotiff_id}"

    def data_layers(self) -> dict:
        return {
            "imageryDate": {"year": 2022, "month": 4, "day": 6},
            "imageryQuality": "HIGH",
            "maskUrl": self.geotiff_url("mask"),
            "dsmUrl": self.geotiff_url("dsm"),
            "rgbUrl": self.geotiff_url("rgb"),
            "annualFluxUrl": self.geotiff_url("annual"),
            "monthlyFluxUrl": self.geotiff_url("monthly"),
            "hourlyShadeUrls": [self.geotiff_url(f"shade-{idx}") for idx in range(365 * 24)],
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/dataLayers:get"):
            return httpx.Response(200, json=self.data_layers())
        geotiff_id = request.url.params.get("id", "")
        key = "shade" if geotiff_id.startswith("shade-") else geotiff_id
        if key not in self.payloads:
            return httpx.Response(404, json={"error": {"message": "Not found"}})
        return httpx.Response(200, content=self.payloads[key])


@pytest.fixture
def solar_api(geotiff_bytes) -> FakeSolarApi:
    mask = np.ones((6, 8), dtype=np.uint8)
    monthly = np.stack([np.full((6, 8), month * 10.0, dtype=np.float32) for month in range(12)])
    return FakeSolarApi(
        {
            "mask": geotiff_bytes(mask),
            "dsm": geotiff_bytes(np.linspace(5.0, 9.0, 48, dtype=np.float32).reshape(6, 8)),
            "monthly": geotiff_bytes(monthly, interleave="band"),
            "shade": geotiff_bytes(np.ones((6, 8), dtype=np.uint8)),
            "broken": b"not a tiff",
        }
    )


@pytest.fixture
async def client(
    solar_api: FakeSolarApi,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncIterator[httpx.AsyncClient]:
    monkeypatch.setenv("SOLARVIZ_SOLAR_API_KEY", API_KEY)
    upstream = main_module._build_client(transport=httpx.MockTransport(solar_api))
    monkeypatch.setattr(main_module, "_http_client", upstream)
    main_module.RASTER_CACHE.clear()

    transport = httpx.ASGITransport(app=main_module.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    await upstream.aclose()


def _decode_png(raw: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(raw))
    image.load()
    return image


async def test_health_endpoint(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["ok"] is True


async def test_layers_endpoint_lists_every_variant(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/layers")

    assert response.status_code == 200
    rows = {row["id"]: row for row in response.json()["layers"]}
    assert set(rows) == {"mask", "dsm", "rgb", "annualFlux", "monthlyFlux", "hourlyShade"}
    assert rows["monthlyFlux"]["frames"] == 12
    assert rows["hourlyShade"]["frames"] is None
    assert rows["rgb"]["palette"] == "rgbPassthrough"


async def test_render_layer_returns_png_frames(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.post("/api/v1/layers/dsm", json=solar_api.data_layers())

    assert response.status_code == 200
    payload = response.json()
    assert payload["id"] == "dsm"
    assert payload["legend"]["min"] == "5.0 m"
    assert payload["legend"]["max"] == "9.0 m"
    assert payload["bounds"]["north"] > payload["bounds"]["south"]
    assert len(payload["frames"]) == 1
    image = _decode_png(base64.b64decode(payload["frames"][0]["png_base64"]))
    assert image.mode == "RGBA"
    assert image.size == (8, 6)


async def test_render_hourly_shade_with_custom_hours(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.post(
        "/api/v1/layers/hourlyShade",
        params={"day_of_year": 10, "hours": "6,18"},
        json=solar_api.data_layers(),
    )

    assert response.status_code == 200
    labels = [frame["label"] for frame in response.json()["frames"]]
    assert labels == ["06:00", "18:00"]
    requested = {request.url.params.get("id") for request in solar_api.requests}
    assert requested == {"mask", "shade-246", "shade-258"}


async def test_download_requests_carry_the_api_key(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.post("/api/v1/layers/mask", json=solar_api.data_layers())

    assert response.status_code == 200
    assert solar_api.requests
    assert all(request.url.params.get("key") == API_KEY for request in solar_api.requests)


async def test_unknown_layer_is_404(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.post("/api/v1/layers/bogus", json=solar_api.data_layers())

    assert response.status_code == 404
    assert "bogus" in response.json()["detail"]
    assert solar_api.requests == []


@pytest.mark.parametrize(
    "params",
    [{"day_of_year": 400}, {"hours": "25"}, {"hours": "noon"}],
)
async def test_invalid_shade_sampling_is_422(
    client: httpx.AsyncClient,
    solar_api: FakeSolarApi,
    params: dict,
) -> None:
    response = await client.post("/api/v1/layers/hourlyShade", params=params, json=solar_api.data_layers())

    assert response.status_code == 422


async def test_missing_layer_url_is_422(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    payload = solar_api.data_layers()
    payload["dsmUrl"] = ""

    response = await client.post("/api/v1/layers/dsm", json=payload)

    assert response.status_code == 422


async def test_upstream_failures_are_502(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    missing = solar_api.data_layers()
    missing["rgbUrl"] = solar_api.geotiff_url("gone")
    broken = solar_api.data_layers()
    broken["dsmUrl"] = solar_api.geotiff_url("broken")

    not_found = await client.post("/api/v1/layers/rgb", json=missing)
    undecodable = await client.post("/api/v1/layers/dsm", json=broken)

    assert not_found.status_code == 502
    assert undecodable.status_code == 502
    assert "Undecodable" in undecodable.json()["detail"]


async def test_frame_png_resolves_data_layers(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.get(
        "/api/v1/layers/monthlyFlux/3.png",
        params={"lat": 35.9, "lng": 14.5},
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert _decode_png(response.content).size == (8, 6)
    data_layers_request = solar_api.requests[0]
    assert data_layers_request.url.path.endswith("/dataLayers:get")
    assert data_layers_request.url.params["view"] == "FULL_LAYERS"
    assert data_layers_request.url.params["radiusMeters"] == "50"


async def test_frame_png_unknown_layer_is_404_without_upstream_calls(
    client: httpx.AsyncClient,
    solar_api: FakeSolarApi,
) -> None:
    response = await client.get("/api/v1/layers/bogus/0.png", params={"lat": 35.9, "lng": 14.5})

    assert response.status_code == 404
    assert "bogus" in response.json()["detail"]
    assert solar_api.requests == []


async def test_frame_png_bad_hours_is_422_without_upstream_calls(
    client: httpx.AsyncClient,
    solar_api: FakeSolarApi,
) -> None:
    response = await client.get(
        "/api/v1/layers/hourlyShade/0.png",
        params={"lat": 35.9, "lng": 14.5, "hours": "noon"},
    )

    assert response.status_code == 422
    assert solar_api.requests == []


async def test_frame_png_out_of_range_is_404(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/v1/layers/dsm/1.png", params={"lat": 35.9, "lng": 14.5})

    assert response.status_code == 404


async def test_geotiff_proxy_streams_upstream_bytes(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    response = await client.get("/api/solar/geotiff", params={"id": "mask"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/tiff"
    assert response.content == solar_api.payloads["mask"]
    assert solar_api.requests[-1].url.params["key"] == API_KEY


async def test_geotiff_proxy_passes_upstream_errors(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/solar/geotiff", params={"id": "gone"})

    assert response.status_code == 404


async def test_solar_proxies_require_api_key(client: httpx.AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOLARVIZ_SOLAR_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_SOLAR_API_KEY", raising=False)

    geotiff = await client.get("/api/solar/geotiff", params={"id": "mask"})
    data_layers = await client.get("/api/solar/dataLayers", params={"lat": 35.9, "lng": 14.5})

    assert geotiff.status_code == 503
    assert data_layers.status_code == 503


async def test_data_layers_proxy_validates_location(client: httpx.AsyncClient) -> None:
    response = await client.get("/api/solar/dataLayers", params={"lat": 95.0, "lng": 14.5})

    assert response.status_code == 422


async def test_cache_clear_endpoint(client: httpx.AsyncClient, solar_api: FakeSolarApi) -> None:
    await client.post("/api/v1/layers/mask", json=solar_api.data_layers())

    response = await client.post("/api/v1/cache/clear")

    assert response.status_code == 200
    assert response.json() == {"cleared": 1}
