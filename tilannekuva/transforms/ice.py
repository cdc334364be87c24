from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entities import Category, EventFeature, Severity
from ..providers.syke import IceMeasurement
from .common import dump_metadata, number, to_feature, valid_point


def ice_severity(thickness: float) -> Severity:
    if thickness >= 50:
        return Severity.HIGH
    if thickness >= 20:
        return Severity.MEDIUM
    return Severity.LOW


@to_feature.register
def _ice(record: IceMeasurement, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None or record.thickness is None or record.thickness < 0:
        return None
    description = f"Jään paksuus: {number(record.thickness)} cm"
    if record.lake_name:
        description = f"{description} ({record.lake_name})"
    return EventFeature(
        id=f"ice-{record.station_id}",
        point=point,
        category=Category.ICE,
        severity=ice_severity(record.thickness),
        title=record.station_name,
        description=description,
        location_name=record.municipality or record.station_name,
        timestamp=record.timestamp,
        source="SYKE",
        metadata=dump_metadata(
            {
                "iceThickness": record.thickness,
                "municipality": record.municipality,
                "lakeName": record.lake_name,
            }
        ),
        municipality=record.municipality,
    )


__all__ = ["ice_severity"]
