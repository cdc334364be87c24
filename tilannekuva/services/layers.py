from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union

import requests

from ..aggregate import merge_by_priority
from ..cache import StaleTolerantCache, build_cache
from ..config import Settings
from ..entities import FeatureCollection, format_instant
from ..health import HealthRegistry
from ..providers.base import Batch, RequestConfig, SourceAdapter
from ..providers.fingrid import FingridAdapter
from ..providers.fmi import FmiSnowAdapter, FmiWeatherAdapter
from ..providers.forecast import OpenMeteoGridAdapter
from ..providers.hsl import HslVehicleAdapter
from ..providers.marine import DirwayAdapter
from ..providers.radar import RadarConfig, radar_frames
from ..providers.rail import RailAdapter
from ..providers.roadweather import RoadWeatherAdapter
from ..providers.sotkanet import INDICATORS, SotkanetAdapter
from ..providers.statfin import BoundaryAdapter, CrimeAdapter, MunicipalityBoundary, PopulationAdapter
from ..providers.syke import SykeIceAdapter
from ..providers.traffic import TrafficMessageAdapter
from ..transforms import classify_regions, normalize


class HistorySink(Protocol):
    """Receives freshly computed collections, e.g. to append them to an event store."""

    def append(self, layer: str, collection: FeatureCollection) -> None:
        ...


@dataclass
class Adapters:
    snow: SourceAdapter
    ice: SourceAdapter
    weather: SourceAdapter
    road_weather: SourceAdapter
    traffic: SourceAdapter
    rail: SourceAdapter
    transit: SourceAdapter
    energy: SourceAdapter
    population: SourceAdapter
    crime: SourceAdapter
    boundaries: SourceAdapter
    dirways: SourceAdapter
    forecast: SourceAdapter
    indicators: SourceAdapter


class LayerService:
    """Published layers, each memoized behind the stale-tolerant cache.

    No method here raises: any failure ends up as an empty collection whose
    metadata has ``degraded: true``, cached for ``DEGRADED_TTL`` seconds only.
    """

    DEGRADED_TTL = 30
    BOUNDARIES_TTL = 24 * 60 * 60

    SNOW_TTL = 240
    ICE_TTL = 30 * 60
    WEATHER_TTL = 300
    ROAD_WEATHER_TTL = 300
    OBSERVATIONS_TTL = 240
    TRAFFIC_TTL = 60
    TRAINS_TTL = 10
    TRANSIT_TTL = 10
    ENERGY_TTL = 300
    STATISTICS_TTL = 60 * 60
    RADAR_TTL = 120
    ICEBREAKERS_TTL = 600
    FORECAST_TTL = 30 * 60

    def __init__(
        self,
        *,
        adapters: Adapters,
        cache: Optional[StaleTolerantCache] = None,
        registry: Optional[HealthRegistry] = None,
        history: Optional[HistorySink] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
        radar_config: Optional[RadarConfig] = None,
    ) -> None:
        self.adapters = adapters
        self.registry = registry or (cache.registry if cache is not None else HealthRegistry())
        self.cache = cache or StaleTolerantCache(registry=self.registry)
        self.history = history
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self.radar_config = radar_config or RadarConfig()

    # Public API ---------------------------------------------------------
    def snow(self) -> FeatureCollection:
        return self._layer("snow", "snow:stations", self.SNOW_TTL, lambda: self._features(self.adapters.snow))

    def ice(self) -> FeatureCollection:
        return self._layer("ice", "ice:stations", self.ICE_TTL, lambda: self._features(self.adapters.ice))

    def weather(self) -> FeatureCollection:
        return self._layer(
            "weather", "weather:stations", self.WEATHER_TTL, lambda: self._features(self.adapters.weather)
        )

    def road_weather(self) -> FeatureCollection:
        return self._layer(
            "road_weather",
            "road-weather:stations",
            self.ROAD_WEATHER_TTL,
            lambda: self._features(self.adapters.road_weather),
        )

    def observations(self) -> FeatureCollection:
        """FMI and road weather stations merged; FMI wins a shared grid cell."""
        return self._layer("observations", "weather:observations", self.OBSERVATIONS_TTL, self._observations)

    def traffic(self) -> FeatureCollection:
        return self._layer(
            "traffic", "traffic:all", self.TRAFFIC_TTL, lambda: self._features(self.adapters.traffic)
        )

    def trains(self) -> FeatureCollection:
        return self._layer(
            "trains", "train:locations", self.TRAINS_TTL, lambda: self._features(self.adapters.rail)
        )

    def transit(self) -> FeatureCollection:
        return self._layer(
            "transit", "transit:vehicles", self.TRANSIT_TTL, lambda: self._features(self.adapters.transit)
        )

    def energy(self) -> FeatureCollection:
        return self._layer("energy", "energy:overview", self.ENERGY_TTL, self._energy)

    def population(self, year: int = 2024) -> FeatureCollection:
        return self._layer(
            "population",
            f"population:{year}",
            self.STATISTICS_TTL,
            lambda: self._regions(self.adapters.population, year, "population"),
        )

    def crime(self, year: int = 2023, categories: Union[str, Sequence[str]] = ("SSS",)) -> FeatureCollection:
        if isinstance(categories, str):
            categories = (categories,)
        categories = tuple(categories) or ("SSS",)
        return self._layer(
            "crime",
            f"crime:{year}:{','.join(categories)}",
            self.STATISTICS_TTL,
            lambda: self._regions(self.adapters.crime, year, "totalCrimes", categories=categories),
        )

    def indicator(self, indicator_id: str = "5641", year: int = 2023) -> FeatureCollection:
        """Sotkanet indicator per municipality; only ids in ``INDICATORS`` are served."""
        indicator = INDICATORS.get(str(indicator_id))
        if indicator is None:
            self._log.warning("Unknown Sotkanet indicator %r requested", indicator_id)
            return self._failed("indicator")
        return self._layer(
            "indicator",
            f"sotkanet:{indicator.id}:{year}",
            self.STATISTICS_TTL,
            lambda: self._regions(
                self.adapters.indicators,
                year,
                "indicatorValue",
                indicator=indicator.id,
                labels={"indicator": indicator.id, "label": indicator.label, "unit": indicator.unit},
            ),
        )

    def icebreakers(self) -> FeatureCollection:
        """Icebreaker-assisted fairways as line features."""
        return self._layer(
            "icebreakers", "ice:icebreakers", self.ICEBREAKERS_TTL, lambda: self._features(self.adapters.dirways)
        )

    def forecast(self) -> FeatureCollection:
        return self._layer("forecast", "saakartta:forecast", self.FORECAST_TTL, self._forecast)

    def radar(self) -> FeatureCollection:
        return self._layer("radar", "saakartta:radar", self.RADAR_TTL, self._radar)

    def status(self) -> Dict[str, Any]:
        """Health snapshot: provider failures, cache counters and reachability."""
        snapshot = self.registry.snapshot()
        reachable = self.cache.ping() if self.cache.enabled else False
        providers = snapshot["providers"]
        failing = sorted(self.registry.failing_providers())

        if self.cache.enabled and not reachable:
            overall = "error"
        elif providers and len(failing) == len(providers):
            overall = "error"
        elif failing or not self.cache.enabled:
            overall = "degraded"
        else:
            overall = "ok"
        return {
            "status": overall,
            "checkedAt": format_instant(self.clock()),
            "cache": {"enabled": self.cache.enabled, "reachable": reachable, **snapshot["cache"]},
            "providers": providers,
            "failing": failing,
        }

    # Producers ----------------------------------------------------------
    def _features(self, adapter: SourceAdapter) -> FeatureCollection:
        batch = adapter.collect()
        features = normalize(batch.records, now=self.clock())
        return self._collection(features, [batch])

    def _observations(self) -> FeatureCollection:
        batches = self._parallel({"fmi": self.adapters.weather, "rw": self.adapters.road_weather})
        now = self.clock()
        features = merge_by_priority(
            normalize(batches["fmi"].records, now=now),
            normalize(batches["rw"].records, now=now),
        )
        return self._collection(features, [batches["fmi"], batches["rw"]])

    def _energy(self) -> FeatureCollection:
        batch = self.adapters.energy.collect()
        overview = batch.records[0].to_dict() if batch.records else None
        return self._collection([], [batch], energy=overview)

    def _forecast(self) -> FeatureCollection:
        batch = self.adapters.forecast.collect()
        points = [point.to_dict() for point in batch.records]
        hours = [hour["time"] for hour in points[0]["hours"]] if points else []
        return self._collection([], [batch], points=points, hours=hours)

    def _radar(self) -> FeatureCollection:
        frames = radar_frames(self.clock(), self.radar_config)
        return self._collection([], [], frames=[frame.to_dict() for frame in frames])

    def _regions(
        self,
        adapter: SourceAdapter,
        year: int,
        value_name: str,
        labels: Optional[Dict[str, Any]] = None,
        **params: Any,
    ) -> FeatureCollection:
        boundaries = self._boundaries(year)
        if boundaries.failed:
            return self._collection([], [boundaries])
        values = adapter.collect(year=year, **params)
        features, extra = classify_regions(boundaries.records, values.records, year, value_name)
        return self._collection(features, [boundaries, values], **extra, **(labels or {}))

    def _boundaries(self, year: int) -> Batch:
        return self.cache.get_or_compute(
            f"boundaries:{year}",
            self.BOUNDARIES_TTL,
            lambda: self.adapters.boundaries.collect(year=year),
            dump=_dump_boundaries,
            load=_load_boundaries,
            ttl_for=lambda batch: self.DEGRADED_TTL if batch.failed else self.BOUNDARIES_TTL,
        )

    # Helpers ------------------------------------------------------------
    def _layer(self, name: str, key: str, ttl: int, producer: Callable[[], FeatureCollection]) -> FeatureCollection:
        def compute() -> FeatureCollection:
            try:
                collection = producer()
            except Exception:
                self._log.exception("Layer %s failed, serving an empty collection", name)
                self.registry.record_provider_error(f"layer:{name}", "unexpected failure")
                return self._failed(name)
            self._log.info("Layer %s produced %d features", name, len(collection))
            if self.history is not None:
                self.cache.run_detached(f"history append {name}", self.history.append, name, collection)
            return collection

        try:
            return self.cache.get_or_compute(
                key,
                ttl,
                compute,
                dump=FeatureCollection.to_dict,
                load=FeatureCollection.from_dict,
                ttl_for=lambda collection: self.DEGRADED_TTL if collection.degraded else ttl,
            )
        except Exception:
            self._log.exception("Layer %s failed outside its producer", name)
            return self._failed(name)

    def _collection(self, features: List[Any], batches: Sequence[Batch], **extra: Any) -> FeatureCollection:
        errors = [batch.source for batch in batches if batch.failed]
        metadata: Dict[str, Any] = {
            "count": len(features),
            "fetchedAt": format_instant(self.clock()),
            "sources": {batch.source: len(batch.records) for batch in batches},
            "errors": errors,
            "degraded": bool(errors),
        }
        metadata.update(extra)
        return FeatureCollection(features=list(features), metadata=metadata)

    def _failed(self, name: str) -> FeatureCollection:
        return FeatureCollection.empty(
            fetchedAt=format_instant(self.clock()),
            sources={},
            errors=[name],
            degraded=True,
        )

    def _parallel(self, adapters: Mapping[str, SourceAdapter]) -> Dict[str, Batch]:
        """Collect from ``adapters`` concurrently; results are keyed, never ordered by completion."""
        with ThreadPoolExecutor(max_workers=len(adapters), thread_name_prefix="layer") as pool:
            futures = {key: pool.submit(adapter.collect) for key, adapter in adapters.items()}
            batches: Dict[str, Batch] = {}
            for key, future in futures.items():
                adapter = adapters[key]
                try:
                    batches[key] = future.result()
                except Exception:
                    self._log.exception("Provider %s failed outside collect()", adapter.name)
                    self.registry.record_provider_error(adapter.name, "unexpected failure")
                    batches[key] = Batch(source=adapter.name, error="unexpected failure")
            return batches


def _dump_boundaries(batch: Batch) -> Dict[str, Any]:
    return {
        "source": batch.source,
        "error": batch.error,
        "records": [{"code": b.code, "name": b.name, "geometry": b.geometry} for b in batch.records],
    }


def _load_boundaries(payload: Dict[str, Any]) -> Batch:
    return Batch(
        source=payload["source"],
        error=payload.get("error"),
        records=[MunicipalityBoundary(**record) for record in payload.get("records") or []],
    )


def build_layer_service(
    settings: Settings,
    *,
    session: Optional[requests.Session] = None,
    history: Optional[HistorySink] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> LayerService:
    """Wire cache, registry and every adapter from one ``Settings`` instance."""
    registry = HealthRegistry()
    cache = build_cache(settings, registry=registry, session=session)
    common: Dict[str, Any] = {
        "session": session,
        "request_config": RequestConfig.from_settings(settings),
        "registry": registry,
        "clock": clock,
    }
    adapters = Adapters(
        snow=FmiSnowAdapter(**common),
        ice=SykeIceAdapter(**common),
        weather=FmiWeatherAdapter(**common),
        road_weather=RoadWeatherAdapter(**common),
        traffic=TrafficMessageAdapter(**common),
        rail=RailAdapter(**common),
        transit=HslVehicleAdapter(**common),
        energy=FingridAdapter(settings.fingrid_api_key, **common),
        population=PopulationAdapter(**common),
        crime=CrimeAdapter(**common),
        boundaries=BoundaryAdapter(**common),
        dirways=DirwayAdapter(**common),
        forecast=OpenMeteoGridAdapter(**common),
        indicators=SotkanetAdapter(**common),
    )
    return LayerService(adapters=adapters, cache=cache, registry=registry, history=history, clock=clock)


__all__ = ["Adapters", "HistorySink", "LayerService", "build_layer_service"]
