from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ..entities import Category, EventFeature, Severity
from ..providers.fmi import WeatherObservation
from .common import dump_metadata, to_feature, valid_point


def temperature_severity(temperature: Optional[float]) -> Severity:
    if temperature is None:
        return Severity.LOW
    if temperature < -25 or temperature > 35:
        return Severity.HIGH
    if temperature < -15 or temperature > 30:
        return Severity.MEDIUM
    return Severity.LOW


def _describe(record: WeatherObservation) -> str:
    parts: List[str] = []
    if record.temperature is not None:
        parts.append(f"Lämpötila: {record.temperature:.1f} °C")
    if record.wind_speed is not None:
        parts.append(f"Tuuli: {record.wind_speed:.1f} m/s")
    if record.precipitation is not None:
        parts.append(f"Sade (1h): {record.precipitation:.1f} mm")
    if record.humidity is not None:
        parts.append(f"Kosteus: {record.humidity:.0f} %")
    return "\n".join(parts)


@to_feature.register
def _weather(record: WeatherObservation, *, now: Optional[datetime] = None) -> Optional[EventFeature]:
    point = valid_point(record.lat, record.lon)
    if point is None or (record.temperature is None and record.wind_speed is None):
        return None
    return EventFeature(
        id=f"fmi-{record.station_id}",
        point=point,
        category=Category.WEATHER,
        severity=temperature_severity(record.temperature),
        title=record.station_name,
        description=_describe(record),
        location_name=record.station_name,
        timestamp=record.timestamp,
        source="Ilmatieteen laitos",
        metadata=dump_metadata(
            {
                "temperature": record.temperature,
                "windSpeed": record.wind_speed,
                "windDirection": record.wind_direction,
                "precipitation": record.precipitation,
                "humidity": record.humidity,
            }
        ),
    )


__all__ = ["temperature_severity"]
