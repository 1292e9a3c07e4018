"""Bounded LRU of decoded rasters keyed by download URL.

One instance is created by whoever owns the process (the API app creates one
at import) and handed to every LayerLoader that should share it.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Optional

from solarviz.models.raster import RasterImage

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 32


class RasterCache:
    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, RasterImage] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> Optional[RasterImage]:
        with self._lock:
            raster = self._entries.get(url)
            if raster is None:
                self.misses += 1
                return None
            self._entries.move_to_end(url)
            self.hits += 1
            return raster

    def put(self, url: str, raster: RasterImage) -> None:
        with self._lock:
            self._entries[url] = raster
            self._entries.move_to_end(url)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                logger.debug("Evicted oldest raster from cache (max_entries=%d)", self.max_entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.info("Cleared raster cache (%d entries)", count)
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._entries
