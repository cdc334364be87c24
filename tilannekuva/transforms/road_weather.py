from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ..entities import Category, EventFeature, Severity
from ..providers.roadweather import RoadWeatherReading
from .common import dump_metadata, to_feature, valid_point


def road_severity(record: RoadWeatherReading) -> Severity:
    road_temp, visibility, condition = record.road_temperature, record.visibility, record.road_condition
    if road_temp is not None and road_temp < -10:
        return Severity.HIGH
    if visibility is not None and visibility < 200:
        return Severity.HIGH
    if condition in ("ICE", "FROST"):
        return Severity.HIGH
    if road_temp is not None and road_temp < 0:
        return Severity.MEDIUM
    if visibility is not None and visibility < 500:
        return Severity.MEDIUM
    if condition in ("SNOW", "WET"):
        return Severity.MEDIUM
    return Severity.LOW


def _visibility(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000:.1f} km"
    return f"{int(meters + 0.5)} m"


def _describe(record: RoadWeatherReading) -> str:
    parts: List[str] = []
    if record.air_temperature is not None:
        parts.append(f"Ilman lämpötila: {record.air_temperature:.1f} °C")
    if record.road_temperature is not None:
        parts.append(f"Tienpinnan lämpötila: {record.road_temperature:.1f} °C")
    if record.wind_speed is not None:
        parts.append(f"Tuuli: {record.wind_speed:.1f} m/s")
    if record.humidity is not None:
        parts.append(f"Kosteus: {record.humidity:.0f} %")
    if record.visibility is not None:
        parts.append(f"Näkyvyys: {_visibility(record.visibility)}")
    if record.road_condition:
        parts.append(f"Tienpinta: {record.road_condition}")
    if record.precipitation_type and record.precipitation_type != "DRY":
        parts.append(f"Sade: {record.precipitation_type}")
    return "\n".join(parts)


@to_feature.register
def _road_weather(record: RoadWeatherReading, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None:
        return None
    return EventFeature(
        id=f"rw-{record.station_id}",
        point=point,
        category=Category.ROAD_WEATHER,
        severity=road_severity(record),
        title=record.name,
        description=_describe(record),
        location_name=record.name,
        timestamp=record.timestamp,
        source="Digitraffic / Fintraffic",
        metadata=dump_metadata(
            {
                "airTemperature": record.air_temperature,
                "roadTemperature": record.road_temperature,
                "humidity": record.humidity,
                "windSpeed": record.wind_speed,
                "visibility": record.visibility,
                "precipitationType": record.precipitation_type,
                "roadCondition": record.road_condition,
            }
        ),
        municipality=record.municipality,
        road=str(record.road_number) if record.road_number else None,
    )


__all__ = ["road_severity"]
