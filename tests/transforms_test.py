from __future__ import annotations

import json
import math
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW
from tilannekuva.entities import Category, FeatureCollection, RouteFeature, Severity
from tilannekuva.providers.fmi import SnowObservation, WeatherObservation
from tilannekuva.providers.hsl import VehiclePosition
from tilannekuva.providers.marine import Dirway
from tilannekuva.providers.rail import TrainPosition
from tilannekuva.providers.roadweather import RoadWeatherReading
from tilannekuva.providers.syke import IceMeasurement
from tilannekuva.providers.traffic import TrafficSituation
from tilannekuva.transforms import normalize, to_feature
from tilannekuva.transforms.common import number, valid_point
from tilannekuva.transforms.ice import ice_severity
from tilannekuva.transforms.road_weather import road_severity
from tilannekuva.transforms.snow import snow_severity
from tilannekuva.transforms.traffic import first_position, is_fresh, traffic_category, traffic_severity
from tilannekuva.transforms.train import delay_severity, display_name
from tilannekuva.transforms.weather import temperature_severity


SNOW_TIME = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def snow(station_id="101", lat=61.5, lon=23.7, depth=85.0) -> SnowObservation:
    return SnowObservation(
        station_id=station_id,
        station_name="Tampere Härmälä",
        lat=lat,
        lon=lon,
        snow_depth=depth,
        timestamp=SNOW_TIME,
    )


def road(**overrides) -> RoadWeatherReading:
    values = dict(
        station_id=1001,
        name="vt1_Espoo",
        lat=60.2,
        lon=24.7,
        road_number=1,
        municipality="Espoo",
        air_temperature=1.0,
        road_temperature=2.0,
        humidity=80.0,
        wind_speed=3.0,
        visibility=2000.0,
        precipitation_type=None,
        road_condition=None,
        timestamp=NOW,
    )
    values.update(overrides)
    return RoadWeatherReading(**values)


def situation(**overrides) -> TrafficSituation:
    values = dict(
        situation_id="GUID1",
        situation_type="TRAFFIC_ANNOUNCEMENT",
        announcement_type="GENERAL",
        geometry_type="Point",
        coordinates=[24.94, 60.17],
        title="Liikennetiedote",
        feature_names=(),
        location_description="Helsinki",
        received_at=NOW,
        start_time=NOW - timedelta(hours=2),
    )
    values.update(overrides)
    return TrafficSituation(**values)


def test_snow_observation_scenario():
    feature = to_feature(snow())

    assert feature.id == "snow-101"
    assert feature.severity is Severity.HIGH
    assert "85" in feature.description
    assert feature.category is Category.SNOW
    assert (feature.point.lon, feature.point.lat) == (23.7, 61.5)
    assert json.loads(feature.metadata) == {"snowDepth": 85.0}


def test_transform_is_pure():
    records = [snow(), snow("102", 65.0, 25.5, 12.0)]

    first = [f.to_dict() for f in normalize(records)]
    second = [f.to_dict() for f in normalize(records)]

    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


@pytest.mark.parametrize(
    "lat, lon",
    [(None, 23.7), (61.5, None), (math.nan, 23.7), (61.5, math.inf), (0.0, 0.0), (95.0, 23.7), ("x", 23.7)],
)
def test_invalid_coordinates_are_dropped(lat, lon):
    assert normalize([snow(lat=lat, lon=lon)]) == []


def test_normalize_keeps_input_order_and_drops_missing_measurement():
    features = normalize([snow("1"), snow("2", depth=None), snow("3", 62.0, 25.0)])

    assert [f.id for f in features] == ["snow-1", "snow-3"]


def test_normalize_rejects_unknown_records():
    with pytest.raises(TypeError):
        normalize([object()])


def test_valid_point_and_number():
    assert valid_point("60.5", "25.0").lat == 60.5
    assert valid_point(True, 25.0) is None
    assert number(85.0) == "85"
    assert number(12.25, 2) == "12.25"
    assert number(-0.01) == "0"


@pytest.mark.parametrize(
    "depth, expected",
    [(None, Severity.LOW), (0, Severity.LOW), (30, Severity.LOW), (31, Severity.MEDIUM), (80, Severity.MEDIUM), (81, Severity.HIGH)],
)
def test_snow_severity(depth, expected):
    assert snow_severity(depth) is expected


@pytest.mark.parametrize(
    "thickness, expected", [(0, Severity.LOW), (19.9, Severity.LOW), (20, Severity.MEDIUM), (50, Severity.HIGH)]
)
def test_ice_severity(thickness, expected):
    assert ice_severity(thickness) is expected


def test_ice_feature():
    record = IceMeasurement(
        station_id="syke-1",
        station_name="Lappajärvi",
        lat=63.2,
        lon=23.67,
        thickness=42,
        timestamp=NOW,
        municipality="Lappajärvi",
        lake_name="Lappajärvi",
    )

    feature = to_feature(record)

    assert feature.id == "ice-syke-1"
    assert feature.severity is Severity.MEDIUM
    assert feature.description == "Jään paksuus: 42 cm (Lappajärvi)"
    assert feature.municipality == "Lappajärvi"


@pytest.mark.parametrize(
    "temperature, expected",
    [(None, Severity.LOW), (-26, Severity.HIGH), (36, Severity.HIGH), (-16, Severity.MEDIUM), (31, Severity.MEDIUM), (20, Severity.LOW)],
)
def test_temperature_severity(temperature, expected):
    assert temperature_severity(temperature) is expected


def test_weather_feature_description():
    record = WeatherObservation(
        station_id="60.1700_24.9400",
        station_name="Helsinki",
        lat=60.17,
        lon=24.94,
        temperature=-5.5,
        wind_speed=3.2,
        wind_direction=180.0,
        precipitation=None,
        humidity=None,
        timestamp=NOW,
    )

    feature = to_feature(record)

    assert feature.id == "fmi-60.1700_24.9400"
    assert feature.description == "Lämpötila: -5.5 °C\nTuuli: 3.2 m/s"
    assert feature.severity is Severity.LOW


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({}, Severity.LOW),
        ({"road_temperature": -11.0}, Severity.HIGH),
        ({"visibility": 150.0}, Severity.HIGH),
        ({"road_condition": "ICE"}, Severity.HIGH),
        ({"road_temperature": -1.0}, Severity.MEDIUM),
        ({"visibility": 400.0}, Severity.MEDIUM),
        ({"road_condition": "WET"}, Severity.MEDIUM),
    ],
)
def test_road_severity(overrides, expected):
    assert road_severity(road(**overrides)) is expected


def test_road_weather_feature():
    feature = to_feature(road(visibility=450.0))

    assert feature.id == "rw-1001"
    assert feature.road == "1"
    assert "Näkyvyys: 450 m" in feature.description
    assert "Näkyvyys" in to_feature(road(visibility=2500.0)).description


def test_traffic_category_rules():
    assert traffic_category(situation(situation_type="ROAD_WORK")) is Category.ROADWORK
    assert traffic_category(situation(situation_type="EXEMPTED_TRANSPORT")) is Category.DISRUPTION
    assert traffic_category(situation(feature_names=("Nokkakolari",))) is Category.ACCIDENT
    assert traffic_category(situation(feature_names=("Liukkaus",))) is Category.WEATHER
    assert traffic_category(situation(feature_names=("Ruuhka",))) is Category.DISRUPTION


def test_traffic_severity_keywords():
    assert traffic_severity("Tie suljettu") is Severity.HIGH
    assert traffic_severity("Nopeusrajoitus") is Severity.MEDIUM
    assert traffic_severity(None) is Severity.LOW


def test_traffic_freshness():
    assert is_fresh(situation(), NOW)
    assert not is_fresh(situation(end_time=NOW - timedelta(hours=2)), NOW)
    assert is_fresh(situation(end_time=NOW - timedelta(minutes=30)), NOW)
    assert not is_fresh(situation(start_time=NOW - timedelta(days=8)), NOW)
    assert is_fresh(situation(situation_type="ROAD_WORK", start_time=NOW - timedelta(days=8)), NOW)
    assert not is_fresh(situation(situation_type="ROAD_WORK", start_time=NOW - timedelta(days=15)), NOW)


def test_first_position():
    assert first_position("LineString", [[25.0, 61.0], [25.1, 61.1]]).lat == 61.0
    assert first_position("MultiLineString", [[[26.0, 62.0]]]).lon == 26.0
    assert first_position("Polygon", [[[26.0, 62.0]]]) is None
    assert first_position("LineString", []) is None


def test_traffic_feature_outside_finland_is_dropped():
    assert normalize([situation(coordinates=[10.0, 55.0])], now=NOW) == []


def test_traffic_feature_uses_explicit_now():
    record = situation(start_time=NOW - timedelta(days=6))

    assert len(normalize([record], now=NOW)) == 1
    assert normalize([record], now=NOW + timedelta(days=2)) == []


def test_traffic_feature_fields():
    feature = to_feature(
        situation(title="Onnettomuus", feature_names=("Liikenneonnettomuus", "Kaista suljettu")), now=NOW
    )

    assert feature.id == "traffic-GUID1"
    assert feature.category is Category.ACCIDENT
    assert feature.severity is Severity.HIGH
    assert feature.description == "Liikenneonnettomuus, Kaista suljettu"
    assert feature.timestamp == NOW - timedelta(hours=2)


def train(**overrides) -> TrainPosition:
    values = dict(
        train_number=27,
        departure_date="2024-01-15",
        train_type="IC",
        train_category="Long-distance",
        commuter_line=None,
        lat=61.5,
        lon=23.8,
        speed=120.0,
        late_minutes=0,
        timestamp=NOW,
    )
    values.update(overrides)
    return TrainPosition(**values)


def test_train_feature():
    feature = to_feature(train(late_minutes=16))

    assert feature.id == "train-27-2024-01-15"
    assert feature.severity is Severity.HIGH
    assert "Viive: +16 min" in feature.description
    assert display_name(train(train_category="Commuter", commuter_line="R")) == "R 27"
    assert display_name(train(train_type="PYO")) == "Pendolino 27"
    assert delay_severity(6) is Severity.MEDIUM
    assert delay_severity(5) is Severity.LOW


def test_transit_feature():
    record = VehiclePosition(
        vehicle_id="v1",
        route="9",
        vehicle_type="tram",
        lat=60.17,
        lon=24.94,
        speed=5.0,
        heading=90.0,
        timestamp=NOW,
    )

    feature = to_feature(record)

    assert feature.id == "hsl-v1"
    assert feature.severity is Severity.LOW
    assert feature.title == "Ratikka 9"
    assert "Nopeus: 18 km/h" in feature.description


def test_dirway_becomes_route_feature():
    record = Dirway(
        dirway_id="NB-1",
        name="Perämeren reitti",
        geometry={"type": "MultiLineString", "coordinates": [[[21.0, 63.0], [22.0, 64.0]]]},
        properties={"issueTime": "2024-01-15T06:00:00Z"},
    )

    feature = to_feature(record, now=NOW)

    assert isinstance(feature, RouteFeature)
    assert feature.to_dict() == {
        "type": "Feature",
        "geometry": record.geometry,
        "properties": {
            "issueTime": "2024-01-15T06:00:00Z",
            "source": "Digitraffic / Väylävirasto",
            "id": "dirway-NB-1",
            "name": "Perämeren reitti",
        },
    }
    restored = FeatureCollection.from_dict(FeatureCollection(features=[feature]).to_dict())
    assert restored.features == [feature]


@pytest.mark.parametrize(
    "geometry",
    [
        {"type": "Point", "coordinates": [21.0, 63.0]},
        {"type": "LineString", "coordinates": []},
        {"type": "Polygon", "coordinates": [[[21.0, 63.0], [22.0, 64.0], [21.0, 63.0]]]},
    ],
)
def test_dirway_without_line_geometry_is_dropped(geometry):
    assert to_feature(Dirway(dirway_id="x", name="x", geometry=geometry), now=NOW) is None
