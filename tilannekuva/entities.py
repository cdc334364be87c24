from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Category(str, Enum):
    SNOW = "snow"
    ICE = "ice"
    WEATHER = "weather"
    ROAD_WEATHER = "road_weather"
    ACCIDENT = "accident"
    ROADWORK = "roadwork"
    DISRUPTION = "disruption"
    TRAIN = "train"
    TRANSIT = "transit"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Bucket(str, Enum):
    """Quantile class of a value within its reference distribution."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


def format_instant(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Point:
    lon: float
    lat: float

    def as_geojson(self) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": [self.lon, self.lat]}


@dataclass(frozen=True)
class EventFeature:
    """Canonical, already classified point feature shared by every domain.

    ``metadata`` is an opaque JSON string owned by the producing transform;
    nothing downstream parses or rewrites it.
    """

    id: str
    point: Point
    category: Category
    severity: Severity
    title: str
    description: str
    location_name: str
    timestamp: datetime
    source: str
    metadata: str = "{}"
    end_time: Optional[datetime] = None
    municipality: Optional[str] = None
    road: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "locationName": self.location_name,
            "timestamp": format_instant(self.timestamp),
            "source": self.source,
            "metadata": self.metadata,
        }
        if self.end_time is not None:
            properties["endTime"] = format_instant(self.end_time)
        if self.municipality:
            properties["municipality"] = self.municipality
        if self.road:
            properties["road"] = self.road
        return {"type": "Feature", "geometry": self.point.as_geojson(), "properties": properties}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "EventFeature":
        lon, lat = payload["geometry"]["coordinates"][:2]
        props = payload["properties"]
        end_time = props.get("endTime")
        return cls(
            id=props["id"],
            point=Point(lon=float(lon), lat=float(lat)),
            category=Category(props["category"]),
            severity=Severity(props["severity"]),
            title=props["title"],
            description=props["description"],
            location_name=props["locationName"],
            timestamp=parse_instant(props["timestamp"]),
            source=props["source"],
            metadata=props.get("metadata", "{}"),
            end_time=parse_instant(end_time) if end_time else None,
            municipality=props.get("municipality"),
            road=props.get("road"),
        )


@dataclass(frozen=True)
class RegionFeature:
    """Municipality polygon carrying one statistic and its quantile bucket."""

    code: str
    name: str
    geometry: Dict[str, Any]
    value: float
    year: int
    bucket: Optional[Bucket] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "kunta": self.code,
            "nimi": self.name,
            "value": self.value,
            "year": self.year,
            "category": self.bucket.value if self.bucket else None,
        }
        properties.update(self.extra)
        return {"type": "Feature", "geometry": self.geometry, "properties": properties}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RegionFeature":
        props = dict(payload["properties"])
        bucket = props.pop("category", None)
        return cls(
            code=props.pop("kunta"),
            name=props.pop("nimi"),
            geometry=payload["geometry"],
            value=props.pop("value"),
            year=props.pop("year"),
            bucket=Bucket(bucket) if bucket else None,
            extra=props,
        )


LINE_TYPES = frozenset({"LineString", "MultiLineString"})


@dataclass(frozen=True)
class RouteFeature:
    """Line feature such as an icebreaker-assisted fairway; properties pass through."""

    id: str
    name: str
    geometry: Dict[str, Any]
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = dict(self.properties)
        properties.update({"id": self.id, "name": self.name})
        return {"type": "Feature", "geometry": self.geometry, "properties": properties}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RouteFeature":
        props = dict(payload["properties"])
        return cls(id=props.pop("id"), name=props.pop("name"), geometry=payload["geometry"], properties=props)


Feature = Union[EventFeature, RegionFeature, RouteFeature]


@dataclass
class FeatureCollection:
    """Ordered features plus free-form metadata (counts, fetch time, flags)."""

    features: List[Feature] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.features)

    @property
    def degraded(self) -> bool:
        return bool(self.metadata.get("degraded"))

    @classmethod
    def empty(cls, **metadata: Any) -> "FeatureCollection":
        metadata.setdefault("count", 0)
        return cls(features=[], metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [feature.to_dict() for feature in self.features],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FeatureCollection":
        features: List[Feature] = []
        for item in payload.get("features") or []:
            geometry_type = item["geometry"]["type"]
            if geometry_type == "Point":
                features.append(EventFeature.from_dict(item))
            elif geometry_type in LINE_TYPES:
                features.append(RouteFeature.from_dict(item))
            else:
                features.append(RegionFeature.from_dict(item))
        return cls(features=features, metadata=dict(payload.get("metadata") or {}))


__all__ = [
    "Bucket",
    "Category",
    "EventFeature",
    "Feature",
    "FeatureCollection",
    "LINE_TYPES",
    "Point",
    "RegionFeature",
    "RouteFeature",
    "Severity",
    "format_instant",
    "parse_instant",
]
