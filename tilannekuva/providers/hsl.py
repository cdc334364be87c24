from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import ProviderError, SourceAdapter, safe_float


GTFS_RT_URL = "https://cdn.digitransit.fi/out/helsinki-gtfsrt/VehiclePositions.json"
REALTIME_URL = "https://realtime.hsl.fi/realtime/vehicle-positions/v2/hsl"

_TRAIN_ROUTE = re.compile(r"^300[12]")
_TRAM_ROUTE = re.compile(r"^10\d{2}$")


@dataclass(frozen=True)
class VehiclePosition:
    vehicle_id: str
    route: str
    vehicle_type: str
    lat: Optional[float]
    lon: Optional[float]
    speed: Optional[float]
    heading: Optional[float]
    timestamp: datetime


def vehicle_type_for_route(route_id: str) -> str:
    if route_id.startswith("31M") or "metro" in route_id:
        return "metro"
    if _TRAIN_ROUTE.match(route_id):
        return "train"
    if _TRAM_ROUTE.match(route_id):
        return "tram"
    return "bus"


class HslVehicleAdapter(SourceAdapter[VehiclePosition]):
    """HSL vehicle positions from the GTFS-RT JSON feed with a realtime fallback."""

    name = "hsl-vehicles"

    def __init__(self, primary_url: str = GTFS_RT_URL, fallback_url: str = REALTIME_URL, **kwargs) -> None:
        super().__init__(**kwargs)
        self.primary_url = primary_url
        self.fallback_url = fallback_url

    def fetch(self) -> List[VehiclePosition]:
        try:
            payload = self._get_json(self.primary_url)
        except ProviderError as exc:
            self._log.warning("GTFS-RT feed failed (%s), trying realtime fallback", exc)
            payload = self._fallback()
        return self._parse(payload)

    # Helpers ------------------------------------------------------------
    def _fallback(self) -> Any:
        response = self._request("GET", self.fallback_url)
        content_type = response.headers.get("content-type", "")
        if "json" not in content_type:
            raise ProviderError(f"fallback answered {content_type or 'no content type'}")
        return self._json(response)

    def _parse(self, payload: Any) -> List[VehiclePosition]:
        entities = payload.get("entity") if isinstance(payload, dict) else None
        if not isinstance(entities, list):
            raise ProviderError("feed has no entity list")

        now = self.clock()

        def vehicle_position(entity: Dict[str, Any]) -> Optional[VehiclePosition]:
            vehicle: Dict[str, Any] = entity.get("vehicle") or {}
            position = vehicle.get("position") or {}
            lat, lon = safe_float(position.get("latitude")), safe_float(position.get("longitude"))
            if not lat or not lon:
                return None
            route_id = (vehicle.get("trip") or {}).get("routeId") or ""
            label = (vehicle.get("vehicle") or {}).get("label") or route_id or str(entity.get("id"))
            epoch = safe_float(vehicle.get("timestamp"))
            return VehiclePosition(
                vehicle_id=str(entity.get("id")),
                route=label,
                vehicle_type=vehicle_type_for_route(str(route_id)),
                lat=lat,
                lon=lon,
                speed=safe_float(position.get("speed")),
                heading=safe_float(position.get("bearing")),
                timestamp=datetime.fromtimestamp(epoch, timezone.utc) if epoch else now,
            )

        return self._each_record(entities, vehicle_position)


__all__ = ["HslVehicleAdapter", "VehiclePosition", "vehicle_type_for_route"]
