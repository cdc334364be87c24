"""Finnish Meteorological Institute open data (WFS "simple" stored queries)."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, TypeVar, Union

from .base import ProviderError, SourceAdapter, parse_timestamp, safe_float


BSWFS_NS = "http://xml.fmi.fi/schema/wfs/2.0"
GML_NS = "http://www.opengis.net/gml/3.2"

R = TypeVar("R")


class SimpleElement(NamedTuple):
    lat: float
    lon: float
    time: str
    parameter: str
    value: Optional[float]


@dataclass(frozen=True)
class SnowObservation:
    station_id: str
    station_name: str
    lat: float
    lon: float
    snow_depth: Optional[float]
    timestamp: datetime


@dataclass(frozen=True)
class WeatherObservation:
    station_id: str
    station_name: str
    lat: float
    lon: float
    temperature: Optional[float]
    wind_speed: Optional[float]
    wind_direction: Optional[float]
    precipitation: Optional[float]
    humidity: Optional[float]
    timestamp: datetime


def parse_simple_features(xml_text: Union[str, bytes]) -> List[SimpleElement]:
    """Flatten a BsWfsElement document into (position, time, parameter, value) rows.

    Elements without a position or parameter value are skipped; ``NaN`` and
    empty values become ``None``.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ProviderError(f"invalid xml: {exc}") from exc

    elements: List[SimpleElement] = []
    for element in root.iter(f"{{{BSWFS_NS}}}BsWfsElement"):
        pos = element.find(f".//{{{GML_NS}}}pos")
        value_node = element.find(f"{{{BSWFS_NS}}}ParameterValue")
        if pos is None or not pos.text or value_node is None:
            continue
        coords = pos.text.split()
        if len(coords) < 2:
            continue
        lat, lon = safe_float(coords[0]), safe_float(coords[1])
        if lat is None or lon is None:
            continue
        time_node = element.find(f"{{{BSWFS_NS}}}Time")
        name_node = element.find(f"{{{BSWFS_NS}}}ParameterName")
        elements.append(
            SimpleElement(
                lat=lat,
                lon=lon,
                time=(time_node.text or "").strip() if time_node is not None else "",
                parameter=(name_node.text or "").strip() if name_node is not None else "",
                value=safe_float((value_node.text or "").strip()),
            )
        )
    return elements


def _station_key(lat: float, lon: float) -> str:
    return f"{lat:.4f}_{lon:.4f}"


class FmiWfsAdapter(SourceAdapter[R]):
    base_url = "https://opendata.fmi.fi/wfs"
    stored_query = "fmi::observations::weather::simple"
    accept = "application/xml"
    parameters = ""
    bbox = "19.0,59.5,31.6,70.1"

    def __init__(self, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url or self.base_url

    def _elements(self) -> List[SimpleElement]:
        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "getFeature",
            "storedquery_id": self.stored_query,
            "parameters": self.parameters,
            "bbox": self.bbox,
            "timestep": "60",
            "maxlocations": "500",
        }
        response = self._request("GET", self.base_url, params=params)
        return parse_simple_features(response.content)


class FmiSnowAdapter(FmiWfsAdapter[SnowObservation]):
    """Snow depth (cm) from automatic weather stations."""

    name = "fmi-snow"
    parameters = "snow_aws"

    def fetch(self) -> List[SnowObservation]:
        latest: Dict[str, SimpleElement] = {}
        for element in self._elements():
            key = _station_key(element.lat, element.lon)
            existing = latest.get(key)
            if existing is None or element.time > existing.time:
                latest[key] = element

        now = self.clock()
        results: List[SnowObservation] = []
        for key, element in latest.items():
            if element.value is None or element.value < 0:
                continue
            results.append(
                SnowObservation(
                    station_id=key,
                    station_name=f"Station {element.lat:.2f}N, {element.lon:.2f}E",
                    lat=element.lat,
                    lon=element.lon,
                    snow_depth=element.value,
                    timestamp=parse_timestamp(element.time, now),
                )
            )
        return results


_WEATHER_FIELDS = {
    "temperature": "temperature",
    "t2m": "temperature",
    "windspeedms": "wind_speed",
    "ws_10min": "wind_speed",
    "winddirection": "wind_direction",
    "wd_10min": "wind_direction",
    "precipitation1h": "precipitation",
    "r_1h": "precipitation",
    "humidity": "humidity",
    "rh": "humidity",
}


class FmiWeatherAdapter(FmiWfsAdapter[WeatherObservation]):
    """Latest temperature, wind, precipitation and humidity per station."""

    name = "fmi-weather"
    parameters = "temperature,windspeedms,winddirection,humidity,precipitation1h"

    def fetch(self) -> List[WeatherObservation]:
        stations: Dict[str, dict] = {}
        for element in self._elements():
            key = _station_key(element.lat, element.lon)
            station = stations.setdefault(
                key,
                {"lat": element.lat, "lon": element.lon, "time": element.time, "seen": {}},
            )
            if element.time > station["time"]:
                station["time"] = element.time
            field_name = _WEATHER_FIELDS.get(element.parameter)
            if field_name is None or element.value is None:
                continue
            # Rows arrive in time order per parameter; keep the newest value.
            seen_at = station["seen"].get(field_name)
            if seen_at is None or element.time >= seen_at:
                station[field_name] = element.value
                station["seen"][field_name] = element.time

        now = self.clock()
        results: List[WeatherObservation] = []
        for key, station in stations.items():
            if station.get("temperature") is None and station.get("wind_speed") is None:
                continue
            results.append(
                WeatherObservation(
                    station_id=key,
                    station_name=f"Weather station {station['lat']:.2f}N, {station['lon']:.2f}E",
                    lat=station["lat"],
                    lon=station["lon"],
                    temperature=station.get("temperature"),
                    wind_speed=station.get("wind_speed"),
                    wind_direction=station.get("wind_direction"),
                    precipitation=station.get("precipitation"),
                    humidity=station.get("humidity"),
                    timestamp=parse_timestamp(station["time"], now),
                )
            )
        return results


__all__ = [
    "FmiSnowAdapter",
    "FmiWeatherAdapter",
    "SnowObservation",
    "WeatherObservation",
    "parse_simple_features",
]
