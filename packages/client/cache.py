from __future__ import annotations
from collections import OrderedDict
from decimal import ROUND_DOWN, Decimal
from typing import Optional, Tuple

from packages.schemas.types import BoundingBox, Report

CacheKey = Tuple[float, float, float, float]


def quantize(value: float, precision: int) -> float:
    # Decimal over the shortest repr keeps truncation exact: 18.42419 and 18.42411 both -> 18.4241
    step = Decimal(1).scaleb(-precision)
    return float(Decimal(repr(value)).quantize(step, rounding=ROUND_DOWN))


def bounds_key(bounds: BoundingBox, precision: int = 4) -> CacheKey:
    return tuple(quantize(v, precision) for v in bounds)


class BoundsCache:
    """
    LRU of fetched report sets per quantized viewport.
    Entries are tuples and are only ever replaced or evicted, never edited.
    """

    def __init__(self, capacity: int = 64, precision: int = 4):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.precision = precision
        self._entries: "OrderedDict[CacheKey, Tuple[Report, ...]]" = OrderedDict()

    def key_for(self, bounds: BoundingBox) -> CacheKey:
        return bounds_key(bounds, self.precision)

    def get(self, key: CacheKey) -> Optional[Tuple[Report, ...]]:
        reports = self._entries.get(key)
        if reports is not None:
            self._entries.move_to_end(key)
        return reports

    def put(self, key: CacheKey, reports) -> Tuple[Report, ...]:
        frozen = tuple(reports)
        self._entries[key] = frozen
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
        return frozen

    def discard(self, key: CacheKey) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
