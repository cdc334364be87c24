from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entities import Category, EventFeature, Severity
from ..providers.fmi import SnowObservation
from .common import dump_metadata, number, to_feature, valid_point


SOURCE = "Ilmatieteen laitos"


def snow_severity(depth: Optional[float]) -> Severity:
    """Deep snow is high, moderate is medium; an unknown depth counts as low."""
    if depth is None:
        return Severity.LOW
    if depth > 80:
        return Severity.HIGH
    if depth > 30:
        return Severity.MEDIUM
    return Severity.LOW


@to_feature.register
def _snow(record: SnowObservation, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None or record.snow_depth is None:
        return None
    return EventFeature(
        id=f"snow-{record.station_id}",
        point=point,
        category=Category.SNOW,
        severity=snow_severity(record.snow_depth),
        title=record.station_name,
        description=f"Lumensyvyys: {number(record.snow_depth)} cm",
        location_name=record.station_name,
        timestamp=record.timestamp,
        source=SOURCE,
        metadata=dump_metadata({"snowDepth": record.snow_depth}),
    )


__all__ = ["snow_severity"]
