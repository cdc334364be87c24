from __future__ import annotations

import threading
from datetime import timedelta

from requests_mock import ANY

from conftest import NOW, TimeController
from tilannekuva.cache import MemoryBackend, StaleTolerantCache
from tilannekuva.config import Settings
from tilannekuva.entities import Bucket, FeatureCollection, RouteFeature
from tilannekuva.health import HealthRegistry
from tilannekuva.providers.base import Batch
from tilannekuva.providers.fingrid import EnergyOverview
from tilannekuva.providers.fmi import SnowObservation, WeatherObservation
from tilannekuva.providers.forecast import ForecastHour, ForecastPoint
from tilannekuva.providers.marine import Dirway
from tilannekuva.providers.radar import RadarConfig
from tilannekuva.providers.roadweather import RoadWeatherAdapter, RoadWeatherReading
from tilannekuva.providers.statfin import MunicipalityBoundary, MunicipalityValue
from tilannekuva.services.layers import Adapters, LayerService, build_layer_service


class FakeAdapter:
    def __init__(self, name: str, records=None, error=None) -> None:
        self.name = name
        self.records = list(records or [])
        self.error = error
        self.calls = []

    def collect(self, **params):
        self.calls.append(params)
        if isinstance(self.error, Exception):
            raise self.error
        if self.error:
            return Batch(source=self.name, error=self.error)
        return Batch(source=self.name, records=list(self.records))


class RecordingSink:
    def __init__(self) -> None:
        self.appended = []
        self.done = threading.Event()

    def append(self, layer, collection):
        self.appended.append((layer, len(collection)))
        self.done.set()


def snow_record(station_id="101", depth=85.0):
    return SnowObservation(
        station_id=station_id, station_name="Tampere", lat=61.5, lon=23.7, snow_depth=depth, timestamp=NOW
    )


def weather_record():
    return WeatherObservation(
        station_id="60.1700_24.9400",
        station_name="Helsinki Kaisaniemi",
        lat=60.17,
        lon=24.94,
        temperature=-3.0,
        wind_speed=4.0,
        wind_direction=None,
        precipitation=None,
        humidity=None,
        timestamp=NOW,
    )


def road_record(station_id, lat, lon):
    return RoadWeatherReading(
        station_id=station_id,
        name=f"station {station_id}",
        lat=lat,
        lon=lon,
        road_number=None,
        municipality=None,
        air_temperature=-2.0,
        road_temperature=-1.0,
        humidity=None,
        wind_speed=None,
        visibility=None,
        precipitation_type=None,
        road_condition=None,
        timestamp=NOW,
    )


def make_adapters(**overrides) -> Adapters:
    names = [
        "snow", "ice", "weather", "road_weather", "traffic", "rail",
        "transit", "energy", "population", "crime", "boundaries",
        "dirways", "forecast", "indicators",
    ]
    adapters = {name: FakeAdapter(name) for name in names}
    adapters.update(overrides)
    return Adapters(**adapters)


def make_service(adapters: Adapters, time_controller=None, **kwargs) -> LayerService:
    backend = MemoryBackend(time_func=time_controller or TimeController())
    cache = StaleTolerantCache(backend)
    return LayerService(adapters=adapters, cache=cache, clock=lambda: NOW, **kwargs)


def test_snow_layer_builds_collection():
    service = make_service(make_adapters(snow=FakeAdapter("fmi-snow", [snow_record()])))

    collection = service.snow()

    assert isinstance(collection, FeatureCollection)
    assert [f.id for f in collection.features] == ["snow-101"]
    assert collection.metadata["count"] == 1
    assert collection.metadata["sources"] == {"fmi-snow": 1}
    assert collection.metadata["errors"] == []
    assert collection.metadata["degraded"] is False
    assert collection.metadata["fetchedAt"] == "2024-01-15T12:00:00Z"


def test_layer_is_served_from_cache_within_ttl(time_controller):
    snow = FakeAdapter("fmi-snow", [snow_record()])
    service = make_service(make_adapters(snow=snow), time_controller)

    first = service.snow()
    service.cache.flush()
    second = service.snow()

    assert len(snow.calls) == 1
    assert first.to_dict() == second.to_dict()

    time_controller.advance(LayerService.SNOW_TTL + 1)
    service.snow()
    assert len(snow.calls) == 2


def test_total_upstream_failure_returns_empty_degraded_collection(requests_mock):
    requests_mock.get(ANY, status_code=503)
    requests_mock.post(ANY, status_code=503)
    service = build_layer_service(Settings(), clock=lambda: NOW)

    for layer in (service.snow, service.ice, service.weather, service.road_weather, service.traffic,
                  service.trains, service.transit, service.observations):
        collection = layer()
        assert collection.features == []
        assert collection.degraded is True
        assert collection.metadata["count"] == 0

    population = service.population(2024)
    assert population.features == []
    assert population.degraded is True


def test_unexpected_producer_failure_is_absorbed():
    service = make_service(make_adapters(snow=FakeAdapter("fmi-snow", error=RuntimeError("boom"))))

    collection = service.snow()

    assert collection.features == []
    assert collection.degraded is True
    assert collection.metadata["errors"] == ["snow"]


def test_degraded_result_uses_short_ttl(time_controller):
    snow = FakeAdapter("fmi-snow", error="HTTP 503")
    service = make_service(make_adapters(snow=snow), time_controller)

    assert service.snow().degraded
    service.cache.flush()
    service.snow()
    assert len(snow.calls) == 1

    time_controller.advance(LayerService.DEGRADED_TTL + 1)
    snow.error = None
    snow.records = [snow_record()]
    healed = service.snow()

    assert len(snow.calls) == 2
    assert healed.degraded is False
    assert len(healed) == 1


def test_observations_prefer_fmi_over_road_weather():
    adapters = make_adapters(
        weather=FakeAdapter("fmi-weather", [weather_record()]),
        road_weather=FakeAdapter(
            "digitraffic-road-weather",
            [road_record(1, 60.171, 24.941), road_record(2, 62.0, 26.0)],
        ),
    )
    service = make_service(adapters)

    collection = service.observations()

    assert [f.id for f in collection.features] == ["fmi-60.1700_24.9400", "rw-2"]
    assert collection.metadata["sources"] == {"fmi-weather": 1, "digitraffic-road-weather": 2}


def test_observations_survive_one_failing_source():
    adapters = make_adapters(
        weather=FakeAdapter("fmi-weather", error="timeout"),
        road_weather=FakeAdapter("digitraffic-road-weather", [road_record(2, 62.0, 26.0)]),
    )

    collection = make_service(adapters).observations()

    assert [f.id for f in collection.features] == ["rw-2"]
    assert collection.metadata["errors"] == ["fmi-weather"]
    assert collection.degraded is True


def test_energy_overview_in_metadata():
    overview = EnergyOverview(production=9000, consumption=10000, wind=2000, nuclear=4000, hydro=1500, surplus=-1000)
    service = make_service(make_adapters(energy=FakeAdapter("fingrid", [overview])))

    collection = service.energy()

    assert collection.features == []
    assert collection.metadata["energy"]["other"] == 1500
    assert collection.metadata["energy"]["transfers"] == []


def boundaries():
    return [
        MunicipalityBoundary(code=code, name=name, geometry={"type": "Polygon", "coordinates": []})
        for code, name in [("091", "Helsinki"), ("049", "Espoo"), ("092", "Vantaa"), ("853", "Turku"), ("999", "Empty")]
    ]


def test_population_layer_classifies_by_quantile(time_controller):
    values = [
        MunicipalityValue(code="091", value=674500, year=2024),
        MunicipalityValue(code="049", value=320931, year=2024),
        MunicipalityValue(code="092", value=250000, year=2024),
        MunicipalityValue(code="853", value=200000, year=2024),
    ]
    boundary_adapter = FakeAdapter("statfin-boundaries", boundaries())
    population = FakeAdapter("statfin-population", values)
    service = make_service(make_adapters(population=population, boundaries=boundary_adapter), time_controller)

    collection = service.population(2024)

    buckets = {f.code: f.bucket for f in collection.features}
    assert buckets == {
        "091": Bucket.HIGH,
        "049": Bucket.MEDIUM,
        "092": Bucket.LOW,
        "853": Bucket.LOW,
        "999": Bucket.LOW,
    }
    assert population.calls == [{"year": 2024}]
    assert collection.metadata["classified"] is True
    assert collection.features[0].to_dict()["properties"]["population"] == 674500

    # Boundaries are cached per year and shared between statistics.
    service.cache.flush()
    service.crime(2024)
    assert len(boundary_adapter.calls) == 1


def test_crime_layer_without_values_is_unclassified():
    crime = FakeAdapter("statfin-crime", [])
    service = make_service(make_adapters(crime=crime, boundaries=FakeAdapter("statfin-boundaries", boundaries())))

    collection = service.crime(2023, ["010000", "020000"])

    assert len(collection) == 5
    assert all(f.bucket is None for f in collection.features)
    assert collection.metadata["classified"] is False
    assert crime.calls == [{"year": 2023, "categories": ("010000", "020000")}]


def test_history_sink_receives_fresh_collections():
    sink = RecordingSink()
    service = make_service(make_adapters(snow=FakeAdapter("fmi-snow", [snow_record()])), history=sink)

    service.snow()
    service.cache.flush()

    assert sink.done.wait(timeout=5)
    assert sink.appended == [("snow", 1)]


def test_status_reports_failures():
    registry = HealthRegistry()
    cache = StaleTolerantCache(MemoryBackend(), registry=registry)
    service = LayerService(adapters=make_adapters(), cache=cache, clock=lambda: NOW)

    assert service.status()["status"] == "ok"

    registry.record_success("fmi-snow", NOW - timedelta(minutes=1))
    registry.record_provider_error("syke-ice", "HTTP 500")
    status = service.status()

    assert status["status"] == "degraded"
    assert status["failing"] == ["syke-ice"]
    assert status["cache"]["reachable"] is True
    assert status["providers"]["fmi-snow"]["lastSuccess"] == "2024-01-15T11:59:00+00:00"


def test_status_without_cache_is_degraded():
    service = LayerService(adapters=make_adapters(), clock=lambda: NOW)

    status = service.status()

    assert status["status"] == "degraded"
    assert status["cache"]["enabled"] is False


def test_observations_keep_fmi_when_road_weather_payload_is_malformed(requests_mock):
    requests_mock.get("https://rw.test/stations", json=[{"id": 1}])
    requests_mock.get("https://rw.test/data", json={"stations": []})
    road_weather = RoadWeatherAdapter(stations_url="https://rw.test/stations", data_url="https://rw.test/data")
    adapters = make_adapters(weather=FakeAdapter("fmi-weather", [weather_record()]), road_weather=road_weather)

    collection = make_service(adapters).observations()

    assert [f.id for f in collection.features] == ["fmi-60.1700_24.9400"]
    assert collection.metadata["errors"] == ["digitraffic-road-weather"]
    assert collection.degraded is True


def test_observations_isolate_an_adapter_that_raises():
    adapters = make_adapters(
        weather=FakeAdapter("fmi-weather", [weather_record()]),
        road_weather=FakeAdapter("digitraffic-road-weather", error=RuntimeError("boom")),
    )
    service = make_service(adapters)

    collection = service.observations()

    assert [f.id for f in collection.features] == ["fmi-60.1700_24.9400"]
    assert collection.metadata["errors"] == ["digitraffic-road-weather"]
    assert service.status()["failing"] == ["digitraffic-road-weather"]


def test_crime_accepts_a_single_category_code():
    crime = FakeAdapter("statfin-crime", [])
    service = make_service(make_adapters(crime=crime, boundaries=FakeAdapter("statfin-boundaries", boundaries())))

    service.crime(2023, "SSS")

    assert crime.calls == [{"year": 2023, "categories": ("SSS",)}]


def test_indicator_layer_carries_labels():
    values = [MunicipalityValue(code="091", value=112.4, year=2023)]
    indicators = FakeAdapter("sotkanet", values)
    service = make_service(
        make_adapters(indicators=indicators, boundaries=FakeAdapter("statfin-boundaries", boundaries()))
    )

    collection = service.indicator("5641", 2023)

    assert indicators.calls == [{"year": 2023, "indicator": "5641"}]
    assert collection.metadata["indicator"] == "5641"
    assert collection.metadata["label"] == "Sairastavuusindeksi"
    assert collection.metadata["unit"] == "indeksi"
    helsinki = next(f for f in collection.features if f.code == "091")
    assert helsinki.to_dict()["properties"]["indicatorValue"] == 112.4


def test_unknown_indicator_is_degraded_without_upstream_call():
    indicators = FakeAdapter("sotkanet", [])
    service = make_service(make_adapters(indicators=indicators))

    collection = service.indicator("999999")

    assert collection.degraded is True
    assert collection.features == []
    assert indicators.calls == []


def test_icebreakers_layer_survives_the_cache(time_controller):
    routes = [
        Dirway(
            dirway_id="NB-1",
            name="Perämeren reitti",
            geometry={"type": "LineString", "coordinates": [[21.0, 63.0], [22.0, 64.0]]},
            properties={"issueTime": "2024-01-15T06:00:00Z"},
        ),
        Dirway(dirway_id="NB-2", name="Tyhjä", geometry={"type": "LineString", "coordinates": []}),
    ]
    dirways = FakeAdapter("digitraffic-dirways", routes)
    service = make_service(make_adapters(dirways=dirways), time_controller)

    first = service.icebreakers()
    service.cache.flush()
    second = service.icebreakers()

    assert len(dirways.calls) == 1
    assert [f.id for f in first.features] == ["dirway-NB-1"]
    assert isinstance(second.features[0], RouteFeature)
    assert second.to_dict() == first.to_dict()
    assert second.features[0].properties["source"] == "Digitraffic / Väylävirasto"


def test_radar_layer_lists_frames():
    service = make_service(make_adapters(), radar_config=RadarConfig(frame_count=3))

    collection = service.radar()

    assert collection.features == []
    assert collection.degraded is False
    assert [frame["timestamp"] for frame in collection.metadata["frames"]] == [
        "2024-01-15T11:50:00Z",
        "2024-01-15T11:55:00Z",
        "2024-01-15T12:00:00Z",
    ]


def test_forecast_layer_exposes_points_and_hours():
    hours = (
        ForecastHour("2024-01-15T12:00", -5.0, 3.0, 180.0, 0.0, 3),
        ForecastHour("2024-01-15T13:00", -4.5, 3.5, 190.0, 0.2, 71),
    )
    forecast = FakeAdapter("open-meteo", [ForecastPoint(lat=60.2, lon=24.9, hours=hours)])
    service = make_service(make_adapters(forecast=forecast))

    collection = service.forecast()

    assert collection.metadata["hours"] == ["2024-01-15T12:00", "2024-01-15T13:00"]
    assert collection.metadata["points"][0]["lat"] == 60.2
    assert collection.metadata["points"][0]["hours"][1]["weatherCode"] == 71
    assert collection.metadata["sources"] == {"open-meteo": 1}


def test_forecast_failure_is_degraded():
    service = make_service(make_adapters(forecast=FakeAdapter("open-meteo", error="HTTP 502")))

    collection = service.forecast()

    assert collection.degraded is True
    assert collection.metadata["points"] == []
    assert collection.metadata["hours"] == []
