from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entities import Category, EventFeature, Severity
from ..providers.rail import TrainPosition
from .common import dump_metadata, to_feature, valid_point


TYPE_LABELS = {
    "IC": "InterCity",
    "S": "S-juna",
    "Pendolino": "Pendolino",
    "commuter": "Lähijuna",
    "cargo": "Tavarajuna",
}


def delay_severity(late_minutes: int) -> Severity:
    if late_minutes > 15:
        return Severity.HIGH
    if late_minutes > 5:
        return Severity.MEDIUM
    return Severity.LOW


def service_type(record: TrainPosition) -> str:
    if record.train_category == "Cargo":
        return "cargo"
    if record.train_category == "Commuter":
        return "commuter"
    if record.train_type == "PYO":
        return "Pendolino"
    if record.train_type == "S":
        return "S"
    # Other long-distance services are shown as InterCity.
    return "IC"


def display_name(record: TrainPosition) -> str:
    if record.train_category == "Commuter" and record.commuter_line:
        return f"{record.commuter_line} {record.train_number}"
    if record.train_type == "PYO":
        return f"Pendolino {record.train_number}"
    return f"{record.train_type} {record.train_number}".strip()


def _describe(record: TrainPosition) -> str:
    parts = [
        f"Tyyppi: {TYPE_LABELS[service_type(record)]}",
        f"Nopeus: {int(record.speed + 0.5)} km/h",
    ]
    if record.late_minutes > 0:
        parts.append(f"Viive: +{record.late_minutes} min")
    elif record.late_minutes < 0:
        parts.append(f"Etuajassa: {record.late_minutes} min")
    return "\n".join(parts)


@to_feature.register
def _train(record: TrainPosition, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None:
        return None
    name = display_name(record)
    return EventFeature(
        id=f"train-{record.train_number}-{record.departure_date}",
        point=point,
        category=Category.TRAIN,
        severity=delay_severity(record.late_minutes),
        title=name,
        description=_describe(record),
        location_name=f"Juna {name}",
        timestamp=record.timestamp,
        source="Fintraffic / rata.digitraffic.fi",
        metadata=dump_metadata(
            {
                "trainType": service_type(record),
                "trainNumber": record.train_number,
                "speed": record.speed,
                "lateMinutes": record.late_minutes,
                "trainCategory": record.train_category,
                "commuterLineID": record.commuter_line,
            }
        ),
    )


__all__ = ["delay_severity", "display_name", "service_type"]
