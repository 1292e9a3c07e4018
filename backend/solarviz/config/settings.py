from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)

ENV_FETCH_TIMEOUT_SECONDS = "SOLARVIZ_FETCH_TIMEOUT_SECONDS"
ENV_RASTER_CACHE_MAX = "SOLARVIZ_RASTER_CACHE_MAX"
ENV_SOLAR_API_BASE_URL = "SOLARVIZ_SOLAR_API_BASE_URL"
ENV_SOLAR_API_KEY = "SOLARVIZ_SOLAR_API_KEY"
ENV_FALLBACK_SOLAR_API_KEY = "GOOGLE_SOLAR_API_KEY"
ENV_DEFAULT_RADIUS_METERS = "SOLARVIZ_DEFAULT_RADIUS_METERS"
ENV_PNG_COMPRESS_LEVEL = "SOLARVIZ_PNG_COMPRESS_LEVEL"

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_RASTER_CACHE_MAX = 32
DEFAULT_SOLAR_API_BASE_URL = "https://solar.googleapis.com/v1"
DEFAULT_RADIUS_METERS = 50.0
DEFAULT_PNG_COMPRESS_LEVEL = 6


def _int_from_env(env_name: str, fallback: int, *, min_value: int) -> int:
    raw = os.getenv(env_name, "").strip()
    if not raw:
        return fallback
    try:
        parsed = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", env_name, raw, fallback)
        return fallback
    return max(min_value, parsed)


def _float_from_env(env_name: str, fallback: float, *, min_value: float) -> float:
    raw = os.getenv(env_name, "").strip()
    if not raw:
        return fallback
    try:
        parsed = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", env_name, raw, fallback)
        return fallback
    return max(min_value, parsed)


def fetch_timeout_seconds() -> float:
    return _float_from_env(ENV_FETCH_TIMEOUT_SECONDS, DEFAULT_FETCH_TIMEOUT_SECONDS, min_value=0.1)


def raster_cache_max() -> int:
    return _int_from_env(ENV_RASTER_CACHE_MAX, DEFAULT_RASTER_CACHE_MAX, min_value=1)


def solar_api_base_url() -> str:
    return os.getenv(ENV_SOLAR_API_BASE_URL, DEFAULT_SOLAR_API_BASE_URL).strip().rstrip("/")


def solar_api_key() -> str | None:
    key = os.getenv(ENV_SOLAR_API_KEY, "").strip() or os.getenv(ENV_FALLBACK_SOLAR_API_KEY, "").strip()
    return key or None


def default_radius_meters() -> float:
    return _float_from_env(ENV_DEFAULT_RADIUS_METERS, DEFAULT_RADIUS_METERS, min_value=1.0)


def png_compress_level() -> int:
    return min(9, _int_from_env(ENV_PNG_COMPRESS_LEVEL, DEFAULT_PNG_COMPRESS_LEVEL, min_value=0))
