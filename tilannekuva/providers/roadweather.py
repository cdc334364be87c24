from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import ProviderError, SourceAdapter, parse_timestamp, safe_float


STATIONS_URL = "https://tie.digitraffic.fi/api/weather/v1/stations"
DATA_URL = "https://tie.digitraffic.fi/api/weather/v1/stations/data"

# Sensor short name -> RoadWeatherReading field
SENSORS = {
    "ILMA": "air_temperature",
    "TIE_1": "road_temperature",
    "ILMAN_KOSTEUS": "humidity",
    "KESKITUULI": "wind_speed",
    "NAKYVYYS": "visibility",
}


@dataclass(frozen=True)
class RoadWeatherReading:
    station_id: int
    name: str
    lat: float
    lon: float
    road_number: Optional[int]
    municipality: Optional[str]
    air_temperature: Optional[float]
    road_temperature: Optional[float]
    humidity: Optional[float]
    wind_speed: Optional[float]
    visibility: Optional[float]
    precipitation_type: Optional[str]
    road_condition: Optional[str]
    timestamp: datetime


class RoadWeatherAdapter(SourceAdapter[RoadWeatherReading]):
    """Digitraffic road weather stations joined with their latest sensor values."""

    name = "digitraffic-road-weather"

    def __init__(self, stations_url: str = STATIONS_URL, data_url: str = DATA_URL, **kwargs) -> None:
        super().__init__(**kwargs)
        self.stations_url = stations_url
        self.data_url = data_url

    def fetch(self) -> List[RoadWeatherReading]:
        results = self._gather(
            {
                "stations": lambda: self._get_object(self.stations_url),
                "data": lambda: self._get_object(self.data_url),
            }
        )
        if results["stations"] is None:
            raise ProviderError("station list unavailable")
        stations = self._gathering_stations(results["stations"])
        data = results["data"] or {}

        now = self.clock()

        def reading(station_data: Dict[str, Any]) -> Optional[RoadWeatherReading]:
            info = stations.get(station_data.get("id"))
            if info is None:
                return None
            values: Dict[str, Optional[float]] = dict.fromkeys(SENSORS.values())
            for sensor in station_data.get("sensorValues") or []:
                field_name = SENSORS.get(sensor.get("shortName") or sensor.get("name"))
                if field_name:
                    values[field_name] = safe_float(sensor.get("sensorValue"))
            return RoadWeatherReading(
                station_id=station_data["id"],
                name=info["name"],
                lat=info["lat"],
                lon=info["lon"],
                road_number=info["road_number"],
                municipality=info["municipality"],
                precipitation_type=None,
                road_condition=None,
                timestamp=parse_timestamp(station_data.get("dataUpdatedTime"), now),
                **values,
            )

        return self._each_record(data.get("stations"), reading)

    def _gathering_stations(self, payload: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
        def station(feature: Dict[str, Any]):
            props = feature.get("properties") or {}
            if props.get("collectionStatus") != "GATHERING":
                return None
            coordinates = (feature.get("geometry") or {}).get("coordinates") or []
            if len(coordinates) < 2:
                return None
            return props["id"], {
                "name": props.get("name") or f"Station {props['id']}",
                "lat": safe_float(coordinates[1]),
                "lon": safe_float(coordinates[0]),
                "road_number": props.get("roadNumber") or None,
                "municipality": props.get("municipality") or None,
            }

        return dict(self._each_record(payload.get("features"), station))


__all__ = ["RoadWeatherAdapter", "RoadWeatherReading"]
