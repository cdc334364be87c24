"""Traffic situations: category, severity, freshness and position rules."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from ..entities import Category, EventFeature, Point, Severity
from ..providers.traffic import TrafficSituation
from .common import dump_metadata, in_finland, to_feature, valid_point


ACCIDENT_KEYWORDS = (
    "onnettomuus",
    "kolari",
    "törmäys",
    "suistuminen",
    "accident",
    "liikenneonnettomuus",
    "nokkakolari",
)
WEATHER_KEYWORDS = ("sää", "liukkaus", "lumisade", "sumu", "tuuli", "myrsky")
HIGH_KEYWORDS = ("onnettomuus", "suljettu", "vakava")
MEDIUM_KEYWORDS = ("rajoitus", "hidast", "varoitus")

ENDED_GRACE = timedelta(hours=1)
ROAD_WORK_WINDOW = timedelta(days=14)
ANNOUNCEMENT_WINDOW = timedelta(days=7)


def _mentions(names: Sequence[str], keywords: Sequence[str]) -> bool:
    return any(keyword in name.lower() for name in names for keyword in keywords)


def traffic_category(record: TrafficSituation) -> Category:
    if record.situation_type == "ROAD_WORK":
        return Category.ROADWORK
    if record.situation_type == "TRAFFIC_ANNOUNCEMENT":
        if _mentions(record.feature_names, ACCIDENT_KEYWORDS):
            return Category.ACCIDENT
        if _mentions(record.feature_names, WEATHER_KEYWORDS):
            return Category.WEATHER
    # weight restrictions, exempted transports and everything unrecognised
    return Category.DISRUPTION


def traffic_severity(title: Optional[str]) -> Severity:
    text = (title or "").lower()
    if any(keyword in text for keyword in HIGH_KEYWORDS):
        return Severity.HIGH
    if any(keyword in text for keyword in MEDIUM_KEYWORDS):
        return Severity.MEDIUM
    return Severity.LOW


def is_fresh(record: TrafficSituation, now: datetime) -> bool:
    if record.end_time is not None and record.end_time < now - ENDED_GRACE:
        return False
    if record.start_time is not None:
        window = ROAD_WORK_WINDOW if record.situation_type == "ROAD_WORK" else ANNOUNCEMENT_WINDOW
        if record.start_time < now - window:
            return False
    return True


def first_position(geometry_type: Optional[str], coordinates: Any) -> Optional[Point]:
    """Point itself, or the first vertex of a line or multi geometry."""
    try:
        if geometry_type == "Point":
            candidate = coordinates
        elif geometry_type in ("LineString", "MultiPoint"):
            candidate = coordinates[0]
        elif geometry_type == "MultiLineString":
            candidate = coordinates[0][0]
        else:
            return None
    except (IndexError, KeyError, TypeError):
        return None
    if not isinstance(candidate, (list, tuple)) or len(candidate) < 2:
        return None
    return valid_point(candidate[1], candidate[0])


@to_feature.register
def _traffic(record: TrafficSituation, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    if not is_fresh(record, now or record.received_at):
        return None
    point = first_position(record.geometry_type, record.coordinates)
    if point is None or not in_finland(point):
        return None
    location = record.location_description or f"Tie {record.road_number or ''}".strip()
    return EventFeature(
        id=f"traffic-{record.situation_id}",
        point=point,
        category=traffic_category(record),
        severity=traffic_severity(record.title),
        title=record.title or "Liikenneilmoitus",
        description=", ".join(record.feature_names) or record.location_description,
        location_name=location,
        timestamp=record.start_time or record.received_at,
        source=record.sender or "Fintraffic",
        metadata=dump_metadata(
            {
                "situationType": record.situation_type,
                "announcementType": record.announcement_type,
            }
        ),
        end_time=record.end_time,
        municipality=record.municipality,
        road=record.road_number,
    )


__all__ = ["first_position", "is_fresh", "traffic_category", "traffic_severity"]
