from __future__ import annotations

import json
import logging
import math
from collections import Counter
from datetime import datetime
from functools import singledispatch
from typing import Any, Iterable, List, Mapping, Optional

from ..entities import EventFeature, Point


logger = logging.getLogger(__name__)

# lon_min, lat_min, lon_max, lat_max
FINLAND_BOUNDS = (19.0, 59.0, 32.0, 71.0)


def valid_point(lat: Any, lon: Any) -> Optional[Point]:
    """Return a ``Point`` for usable coordinates, ``None`` otherwise.

    Missing, non-numeric, non-finite, out-of-range and zero coordinates are
    all rejected; upstream feeds use 0 as a "no position" marker.
    """
    if isinstance(lat, bool) or isinstance(lon, bool):
        return None
    try:
        lat_f, lon_f = float(lat), float(lon)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        return None
    if not lat_f or not lon_f:
        return None
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0):
        return None
    return Point(lon=lon_f, lat=lat_f)


def in_finland(point: Point) -> bool:
    lon_min, lat_min, lon_max, lat_max = FINLAND_BOUNDS
    return lon_min <= point.lon <= lon_max and lat_min <= point.lat <= lat_max


def dump_metadata(values: Mapping[str, Any]) -> str:
    """Serialize feature metadata deterministically (sorted keys, compact)."""
    return json.dumps(values, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


def number(value: float, digits: int = 1) -> str:
    """``85.0`` -> ``"85"``, ``-3.25`` -> ``"-3.2"``."""
    text = f"{value:.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


@singledispatch
def to_feature(record: Any, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    """Convert one raw provider record into a canonical feature.

    Each domain module registers an implementation for its record type.
    Returning ``None`` drops the record.
    """
    raise TypeError(f"no transform registered for {type(record).__name__}")


def normalize(records: Iterable[Any], *, now: Optional[datetime] = None) -> List[EventFeature]:
    """Transform raw records in order, dropping the ones that do not qualify."""
    features: List[EventFeature] = []
    dropped: Counter = Counter()
    for record in records:
        feature = to_feature(record, now=now)
        if feature is None:
            dropped[type(record).__name__] += 1
            continue
        features.append(feature)
    for kind, count in sorted(dropped.items()):
        logger.info("Dropped %d %s records during transform", count, kind)
    return features


__all__ = [
    "FINLAND_BOUNDS",
    "dump_metadata",
    "in_finland",
    "normalize",
    "number",
    "to_feature",
    "valid_point",
]
