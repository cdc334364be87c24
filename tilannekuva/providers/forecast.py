"""Open-Meteo hourly forecast on a coarse grid over Finland.

Open-Meteo accepts comma separated coordinate lists and answers with one
result per coordinate pair, in request order.  A single pair is answered
with a bare object instead of a list.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import ProviderError, SourceAdapter, safe_float


OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
HOURLY_FIELDS = "temperature_2m,wind_speed_10m,wind_direction_10m,precipitation,weather_code"


def forecast_grid(
    south: float = 59.5,
    north: float = 70.0,
    west: float = 20.0,
    east: float = 31.0,
    step: float = 1.5,
) -> List[Tuple[float, float]]:
    """(lat, lon) pairs every ``step`` degrees, rounded to one decimal; 64 points by default."""
    points: List[Tuple[float, float]] = []
    lat = south
    while lat <= north:
        lon = west
        while lon <= east:
            points.append((round(lat, 1), round(lon, 1)))
            lon += step
        lat += step
    return points


FORECAST_GRID = forecast_grid()


@dataclass(frozen=True)
class ForecastHour:
    time: str
    temperature: float
    wind_speed: float
    wind_direction: float
    precipitation: float
    weather_code: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "temperature": self.temperature,
            "windSpeed": self.wind_speed,
            "windDirection": self.wind_direction,
            "precipitation": self.precipitation,
            "weatherCode": self.weather_code,
        }


@dataclass(frozen=True)
class ForecastPoint:
    lat: float
    lon: float
    hours: Tuple[ForecastHour, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lon": self.lon, "hours": [hour.to_dict() for hour in self.hours]}


def _value_at(values: Optional[Sequence[Any]], index: int) -> float:
    # Missing hours render as 0 on the map.
    try:
        value = values[index] if values is not None else None
    except (IndexError, TypeError):
        return 0.0
    return safe_float(value) or 0.0


class OpenMeteoGridAdapter(SourceAdapter[ForecastPoint]):
    """48 hour forecast for every grid point in one request."""

    name = "open-meteo"

    def __init__(
        self,
        base_url: str = OPEN_METEO_URL,
        grid: Sequence[Tuple[float, float]] = FORECAST_GRID,
        forecast_days: int = 2,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url
        self.grid = list(grid)
        self.forecast_days = forecast_days

    def fetch(self) -> List[ForecastPoint]:
        params = {
            "latitude": ",".join(str(lat) for lat, _ in self.grid),
            "longitude": ",".join(str(lon) for _, lon in self.grid),
            "hourly": HOURLY_FIELDS,
            "forecast_days": str(self.forecast_days),
            "timezone": "Europe/Helsinki",
        }
        payload = self._get_json(self.base_url, params=params)
        results = payload if isinstance(payload, list) else [payload]
        if not all(isinstance(result, dict) for result in results):
            raise ProviderError("unexpected forecast payload")
        if len(results) > len(self.grid):
            self._log.warning("Open-Meteo answered %d results for %d grid points", len(results), len(self.grid))
        return self._each_record(zip(self.grid, results), self._point)

    @staticmethod
    def _point(item: Tuple[Tuple[float, float], Dict[str, Any]]) -> Optional[ForecastPoint]:
        (lat, lon), result = item
        hourly = result.get("hourly")
        if not hourly:
            return None
        times = hourly.get("time") or []
        hours = tuple(
            ForecastHour(
                time=str(time),
                temperature=_value_at(hourly.get("temperature_2m"), index),
                wind_speed=_value_at(hourly.get("wind_speed_10m"), index),
                wind_direction=_value_at(hourly.get("wind_direction_10m"), index),
                precipitation=_value_at(hourly.get("precipitation"), index),
                weather_code=int(_value_at(hourly.get("weather_code"), index)),
            )
            for index, time in enumerate(times)
        )
        return ForecastPoint(lat=lat, lon=lon, hours=hours)


__all__ = [
    "FORECAST_GRID",
    "ForecastHour",
    "ForecastPoint",
    "OPEN_METEO_URL",
    "OpenMeteoGridAdapter",
    "forecast_grid",
]
