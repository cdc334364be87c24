from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entities import Category, EventFeature, Severity
from ..providers.hsl import VehiclePosition
from .common import dump_metadata, to_feature, valid_point


VEHICLE_LABELS = {
    "bus": "Bussi",
    "tram": "Ratikka",
    "metro": "Metro",
    "train": "Lähijuna",
}


@to_feature.register
def _transit(record: VehiclePosition, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None:
        return None
    label = VEHICLE_LABELS.get(record.vehicle_type, "Ajoneuvo")
    parts = [f"Tyyppi: {label}", f"Reitti: {record.route}"]
    if record.speed is not None:
        # feed reports m/s
        parts.append(f"Nopeus: {int(record.speed * 3.6 + 0.5)} km/h")
    return EventFeature(
        id=f"hsl-{record.vehicle_id}",
        point=point,
        category=Category.TRANSIT,
        severity=Severity.LOW,
        title=f"{label} {record.route}",
        description="\n".join(parts),
        location_name=f"Reitti {record.route}",
        timestamp=record.timestamp,
        source="HSL / Digitransit",
        metadata=dump_metadata(
            {
                "vehicleType": record.vehicle_type,
                "routeShortName": record.route,
                "speed": record.speed,
                "heading": record.heading,
            }
        ),
    )
